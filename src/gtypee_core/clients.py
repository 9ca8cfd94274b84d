"""Credential client resolution for multi-tenant accounts.

A "client" names one OAuth credential set. Each account resolves to exactly
one client, first match wins:

1. an explicit override,
2. the per-account mapping,
3. the per-domain mapping,
4. a client named after the account's domain, when credentials exist for it,
5. ``DEFAULT_CLIENT_NAME``.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

from gtypee_core.errors import InvalidClientNameError, InvalidDomainError

DEFAULT_CLIENT_NAME = "default"

_ALLOWED_NAME_CHARS = frozenset("abcdefghijklmnopqrstuvwxyz0123456789-_.")
_logger = logging.getLogger(__name__)

CredentialProbe = Callable[[str], bool] | Callable[[str], Awaitable[bool]]


@dataclass(frozen=True)
class TenantResolutionInput:
    """Everything ``resolve_client`` consults apart from the probe."""

    override: str = ""
    account_email: str = ""
    account_clients: Mapping[str, str] = field(default_factory=dict)
    client_domains: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Freeze mapping tables to keep resolution inputs read-only."""
        object.__setattr__(
            self, "account_clients", MappingProxyType(dict(self.account_clients))
        )
        object.__setattr__(
            self, "client_domains", MappingProxyType(dict(self.client_domains))
        )


def _has_only_allowed_chars(value: str) -> bool:
    return all(ch in _ALLOWED_NAME_CHARS for ch in value)


def normalize_client_name(raw: str) -> str:
    """Lowercase and validate a client name.

    Raises:
        InvalidClientNameError: When empty or containing characters outside
            ``[a-z0-9._-]``.
    """
    name = raw.strip().lower()
    if name == "" or not _has_only_allowed_chars(name):
        raise InvalidClientNameError(raw)
    return name


def normalize_client_name_or_default(raw: str) -> str:
    """Like ``normalize_client_name`` but blank input means the default."""
    if raw.strip() == "":
        return DEFAULT_CLIENT_NAME
    return normalize_client_name(raw)


def normalize_domain(raw: str) -> str:
    """Lowercase and validate an email domain, dropping a leading ``@``.

    Raises:
        InvalidDomainError: When empty, missing a ``.``, or containing
            characters outside ``[a-z0-9._-]``.
    """
    domain = raw.strip().lower()
    if domain.startswith("@"):
        domain = domain[1:]
    if domain == "" or "." not in domain or not _has_only_allowed_chars(domain):
        raise InvalidDomainError(raw)
    return domain


def domain_from_email(email: str) -> str:
    """Return the lowercased domain of ``email``, or ``""`` when malformed."""
    normalized = email.strip().lower()
    if normalized == "":
        return ""
    parts = normalized.split("@")
    if len(parts) != 2:
        return ""
    return parts[1].strip()


async def _probe(credential_exists: CredentialProbe, client: str) -> bool:
    result = credential_exists(client)
    if inspect.isawaitable(result):
        return bool(await result)
    return bool(result)


async def resolve_client(
    resolution: TenantResolutionInput,
    credential_exists: CredentialProbe,
) -> str:
    """Pick the credential client for one account.

    ``credential_exists`` is only consulted for the domain fallback, never for
    overrides or mapped clients. It must return ``False`` for missing
    credentials; other errors propagate.

    Raises:
        InvalidClientNameError: When the chosen client name is malformed.
    """
    if resolution.override.strip() != "":
        return normalize_client_name_or_default(resolution.override)

    email = resolution.account_email.strip().lower()
    if email != "":
        account_client = resolution.account_clients.get(email) or ""
        if account_client.strip() != "":
            return normalize_client_name_or_default(account_client)

    domain = domain_from_email(email)
    if domain != "":
        mapped = resolution.client_domains.get(domain) or ""
        if mapped.strip() != "":
            return normalize_client_name_or_default(mapped)

        if await _probe(credential_exists, domain):
            return normalize_client_name(domain)

    return DEFAULT_CLIENT_NAME


def credentials_path_for(client: str, config_dir: Path) -> Path:
    """Return where the OAuth credentials of ``client`` are stored.

    Raises:
        InvalidClientNameError: When ``client`` is not a valid client name.
    """
    normalized = normalize_client_name_or_default(client)
    if normalized == DEFAULT_CLIENT_NAME:
        return config_dir / "credentials.json"
    return config_dir / f"credentials-{normalized}.json"


def build_credentials_file_probe(config_dir: Path) -> Callable[[str], bool]:
    """Build a probe reporting whether a client's credentials file exists.

    Missing files are ``False``; invalid client names and other filesystem
    errors propagate.
    """

    def _credentials_exist(client: str) -> bool:
        path = credentials_path_for(client, config_dir)
        try:
            path.stat()
        except FileNotFoundError:
            return False
        _logger.debug("credentials file found for client %s", client)
        return True

    return _credentials_exist
