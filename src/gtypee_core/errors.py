"""Typed failure classifications for remote service calls.

A classification is one member of a closed tagged union. Every variant
carries a ``kind`` discriminant so callers can match on
``error.classification.kind`` instead of testing exception types.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Literal


class ErrorKind(StrEnum):
    """Discriminant values for ``ErrorClassification`` variants."""

    AUTH_REQUIRED = "auth_required"
    RATE_LIMIT = "rate_limit"
    CIRCUIT_OPEN = "circuit_open"
    QUOTA_EXCEEDED = "quota_exceeded"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    UNCLASSIFIED = "unclassified"


@dataclass(frozen=True)
class AuthRequired:
    service: str
    account: str
    client: str = ""
    kind: Literal[ErrorKind.AUTH_REQUIRED] = field(
        default=ErrorKind.AUTH_REQUIRED, init=False
    )


@dataclass(frozen=True)
class RateLimit:
    retries: int
    retry_after_ms: int = 0
    kind: Literal[ErrorKind.RATE_LIMIT] = field(
        default=ErrorKind.RATE_LIMIT, init=False
    )


@dataclass(frozen=True)
class CircuitOpen:
    kind: Literal[ErrorKind.CIRCUIT_OPEN] = field(
        default=ErrorKind.CIRCUIT_OPEN, init=False
    )


@dataclass(frozen=True)
class QuotaExceeded:
    resource: str = ""
    kind: Literal[ErrorKind.QUOTA_EXCEEDED] = field(
        default=ErrorKind.QUOTA_EXCEEDED, init=False
    )


@dataclass(frozen=True)
class NotFound:
    resource: str
    id: str = ""
    kind: Literal[ErrorKind.NOT_FOUND] = field(default=ErrorKind.NOT_FOUND, init=False)


@dataclass(frozen=True)
class PermissionDenied:
    resource: str
    action: str = ""
    kind: Literal[ErrorKind.PERMISSION_DENIED] = field(
        default=ErrorKind.PERMISSION_DENIED, init=False
    )


@dataclass(frozen=True)
class Unclassified:
    service: str
    message: str
    kind: Literal[ErrorKind.UNCLASSIFIED] = field(
        default=ErrorKind.UNCLASSIFIED, init=False
    )


ErrorClassification = (
    AuthRequired
    | RateLimit
    | CircuitOpen
    | QuotaExceeded
    | NotFound
    | PermissionDenied
    | Unclassified
)


def render_message(classification: ErrorClassification) -> str:
    """Render a classification into its stable human-readable message."""
    match classification:
        case AuthRequired(service=service, account=account, client=client):
            if client:
                return f"auth required for {service} {account} (client {client})"
            return f"auth required for {service} {account}"
        case RateLimit(retries=retries, retry_after_ms=retry_after_ms):
            if retry_after_ms > 0:
                return (
                    f"rate limit exceeded, retry after {retry_after_ms}ms "
                    f"(attempted {retries} retries)"
                )
            return f"rate limit exceeded after {retries} retries"
        case CircuitOpen():
            return (
                "circuit breaker is open, too many recent failures - "
                "try again later"
            )
        case QuotaExceeded(resource=resource):
            if resource:
                return f"API quota exceeded for {resource}"
            return "API quota exceeded"
        case NotFound(resource=resource, id=resource_id):
            if resource_id:
                return f"{resource} not found: {resource_id}"
            return f"{resource} not found"
        case PermissionDenied(resource=resource, action=action):
            if action:
                return f"permission denied: cannot {action} {resource}"
            return f"permission denied for {resource}"
        case Unclassified(service=service, message=message):
            return f"{service} api request failed: {message}"
    raise TypeError(f"unknown error classification: {classification!r}")


class ApiError(Exception):
    """A classified remote-call failure.

    Attributes:
        classification: The typed failure classification.
    """

    def __init__(self, classification: ErrorClassification) -> None:
        self.classification = classification
        super().__init__(render_message(classification))

    @property
    def kind(self) -> ErrorKind:
        return self.classification.kind


class RemoteCallError(Exception):
    """Failure raised by a remote callable.

    Attributes:
        status: HTTP status code, when the remote side answered.
        headers: Response headers, when available.
        hint: Call-site classification of what the failure means, if known.
    """

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        headers: Mapping[str, str] | None = None,
        hint: ErrorClassification | None = None,
    ) -> None:
        self.status = status
        self.headers: Mapping[str, str] = dict(headers or {})
        self.hint = hint
        super().__init__(message)


class InvalidClientNameError(ValueError):
    """Raised when a credential client name has an invalid format."""

    def __init__(self, raw: str) -> None:
        self.raw = raw
        detail = "empty" if raw.strip() == "" else raw
        super().__init__(f"invalid client name: {detail}")


class InvalidDomainError(ValueError):
    """Raised when a tenant email domain has an invalid format."""

    def __init__(self, raw: str) -> None:
        self.raw = raw
        detail = "empty" if raw.strip().lstrip("@") == "" else raw
        super().__init__(f"invalid domain name: {detail}")


def should_retry_status(status: int) -> bool:
    """Return whether an HTTP status is eligible for retry."""
    return status == 429 or status >= 500


def classify_failure(service: str, error: BaseException) -> ErrorClassification:
    """Map any failure onto exactly one classification.

    Already-classified errors keep their classification, remote failures use
    the call-site hint when one was attached, everything else is
    ``Unclassified``.
    """
    if isinstance(error, ApiError):
        return error.classification
    if isinstance(error, RemoteCallError) and error.hint is not None:
        return error.hint
    return Unclassified(service=service, message=str(error))


def to_cli_error_message(service: str, error: BaseException) -> str:
    """Render a failure as the message shown to CLI users."""
    return render_message(classify_failure(service, error))
