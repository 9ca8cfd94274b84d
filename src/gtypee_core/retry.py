from __future__ import annotations

import asyncio
import logging
import math
import random
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from gtypee_core.circuit_breaker import CircuitBreaker
from gtypee_core.errors import (
    ApiError,
    ErrorClassification,
    RateLimit,
    RemoteCallError,
    classify_failure,
    should_retry_status,
)
from gtypee_core.headers import retry_after
from gtypee_core.logging import StructuredLogger, log_error, log_warning

T = TypeVar("T")

RandomSource = Callable[[], float]

_INTEGER_RE = re.compile(r"[+-]?[0-9]+")
_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budgets and base delays for remote calls."""

    max_rate_limit_retries: int = 3
    rate_limit_base_delay_ms: int = 1000
    max_server_error_retries: int = 1
    server_error_retry_delay_ms: int = 1000
    max_delay_ms: int = 900_000

    def __post_init__(self) -> None:
        if self.max_rate_limit_retries < 0:
            raise ValueError("max_rate_limit_retries must be >= 0")
        if self.max_server_error_retries < 0:
            raise ValueError("max_server_error_retries must be >= 0")
        if self.rate_limit_base_delay_ms < 0:
            raise ValueError("rate_limit_base_delay_ms must be >= 0")
        if self.server_error_retry_delay_ms < 0:
            raise ValueError("server_error_retry_delay_ms must be >= 0")
        if self.max_delay_ms < 0:
            raise ValueError("max_delay_ms must be >= 0")

    @property
    def max_attempts(self) -> int:
        return 1 + self.max_rate_limit_retries + self.max_server_error_retries


def parse_retry_after_ms(
    value: str | None,
    *,
    now: Callable[[], datetime] = _utcnow,
) -> int | None:
    """Parse a ``Retry-After`` value into milliseconds.

    Accepts ASCII integer seconds or an HTTP date. Returns ``None`` when the
    value is blank or unparseable, including integers too long to convert.
    """
    raw = (value or "").strip()
    if raw == "":
        return None

    if _INTEGER_RE.fullmatch(raw):
        try:
            seconds = int(raw)
        except ValueError:
            return None
        return max(0, seconds) * 1000

    try:
        parsed = parsedate_to_datetime(raw)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    delta_ms = (parsed - now()).total_seconds() * 1000
    return max(0, math.floor(delta_ms))


def calculate_backoff_ms(
    attempt: int,
    retry_after_hint: str | None,
    base_delay_ms: float,
    random_source: RandomSource = random.random,
    *,
    now: Callable[[], datetime] = _utcnow,
) -> int:
    """Return how long to wait before retry ``attempt`` (0-based).

    A usable ``retry_after_hint`` always wins. Otherwise the delay is
    ``base_delay_ms * 2**attempt`` plus up to half of that again as jitter.
    Never sleeps.
    """
    hinted = parse_retry_after_ms(retry_after_hint, now=now)
    if hinted is not None:
        return hinted

    if base_delay_ms <= 0:
        return 0

    try:
        base = float(base_delay_ms) * 2.0**attempt
    except OverflowError:
        return 0
    if not math.isfinite(base) or base <= 0:
        return 0

    base_ms = math.floor(base)
    jitter_range = base_ms // 2
    if jitter_range <= 0:
        return base_ms

    clamped = max(0.0, min(1.0, random_source()))
    return base_ms + math.floor(clamped * jitter_range)


def counts_as_breaker_failure(error: BaseException) -> bool:
    """Return whether a terminal failure points at an unhealthy remote side.

    Client errors other than 429 mean the remote answered correctly and do
    not trip the breaker.
    """
    if isinstance(error, ApiError):
        return False
    if isinstance(error, RemoteCallError) and error.status is not None:
        return should_retry_status(error.status)
    return True


class RetryBudget:
    """Per-call retry counters, split by rate-limit and server errors."""

    def __init__(self, policy: RetryPolicy) -> None:
        self.policy = policy
        self.rate_limit_retries = 0
        self.server_error_retries = 0

    def consume(self, error: BaseException) -> bool:
        """Spend one retry for ``error`` if it is eligible and budget remains."""
        if not isinstance(error, RemoteCallError) or error.status is None:
            return False
        if error.status == 429:
            if self.rate_limit_retries >= self.policy.max_rate_limit_retries:
                return False
            self.rate_limit_retries += 1
            return True
        if should_retry_status(error.status):
            if self.server_error_retries >= self.policy.max_server_error_retries:
                return False
            self.server_error_retries += 1
            return True
        return False


class wait_remote_backoff(wait_base):
    """Tenacity wait strategy honoring ``Retry-After`` on remote failures.

    Every delay is capped at ``RetryPolicy.max_delay_ms``.
    """

    def __init__(self, budget: RetryBudget, random_source: RandomSource) -> None:
        self._budget = budget
        self._random_source = random_source

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return 0.0
        error = outcome.exception()
        if not isinstance(error, RemoteCallError):
            return 0.0

        hint = retry_after(error.headers)
        policy = self._budget.policy
        if error.status == 429:
            delay_ms = calculate_backoff_ms(
                self._budget.rate_limit_retries - 1,
                hint,
                policy.rate_limit_base_delay_ms,
                self._random_source,
            )
        else:
            hinted = parse_retry_after_ms(hint)
            delay_ms = policy.server_error_retry_delay_ms if hinted is None else hinted
        return min(delay_ms, policy.max_delay_ms) / 1000


def _build_before_sleep(
    logger: StructuredLogger | logging.Logger,
    service: str,
) -> Callable[[RetryCallState], None]:
    def _before_sleep(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = None if outcome is None else outcome.exception()
        next_action = retry_state.next_action
        log_warning(
            logger,
            "remote_call.retry_scheduled",
            service=service,
            attempt=retry_state.attempt_number,
            status=getattr(error, "status", None),
            delay_seconds=0.0 if next_action is None else next_action.sleep,
        )

    return _before_sleep


def build_remote_retrying(
    *,
    budget: RetryBudget,
    random_source: RandomSource = random.random,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    before_sleep: Callable[[RetryCallState], None] | None = None,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` that retries 429/5xx within ``budget``."""
    retry = retry_if_exception(budget.consume)
    wait = wait_remote_backoff(budget, random_source)
    stop = stop_after_attempt(budget.policy.max_attempts)
    if before_sleep is None:
        return AsyncRetrying(
            retry=retry,
            wait=wait,
            stop=stop,
            sleep=sleep,
            reraise=True,
        )
    return AsyncRetrying(
        retry=retry,
        wait=wait,
        stop=stop,
        sleep=sleep,
        before_sleep=before_sleep,
        reraise=True,
    )


def _terminal_classification(
    service: str,
    error: BaseException,
    budget: RetryBudget,
) -> ErrorClassification:
    if (
        isinstance(error, RemoteCallError)
        and error.status == 429
        and error.hint is None
    ):
        retry_after_ms = parse_retry_after_ms(retry_after(error.headers))
        return RateLimit(
            retries=budget.rate_limit_retries,
            retry_after_ms=0 if retry_after_ms is None else retry_after_ms,
        )
    return classify_failure(service, error)


async def call_remote(
    operation: Callable[[], Awaitable[T]],
    *,
    service: str,
    breaker: CircuitBreaker | None = None,
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    random_source: RandomSource = random.random,
    logger: StructuredLogger | logging.Logger | None = None,
) -> T:
    """Run ``operation`` under breaker protection with 429/5xx retries.

    Args:
        operation: Zero-argument async remote call. Failures should be raised
            as ``RemoteCallError`` so status and headers can be inspected.
        service: Service name used in messages and logs.
        breaker: Breaker for the endpoint group, if any.
        policy: Retry budgets and delays. Defaults to ``RetryPolicy()``.
        sleep: Awaitable sleep used between attempts.
        random_source: Jitter source returning values in ``[0, 1)``.
        logger: Logger for retry and failure events.

    Returns:
        The operation result.

    Raises:
        ApiError: When the breaker is open (``CircuitOpen``, before any call)
            or the call failed terminally. The original failure is chained
            as ``__cause__``.
    """
    policy = RetryPolicy() if policy is None else policy
    log = _logger if logger is None else logger
    budget = RetryBudget(policy)
    retrying = build_remote_retrying(
        budget=budget,
        random_source=random_source,
        sleep=sleep,
        before_sleep=_build_before_sleep(log, service),
    )

    try:
        async for attempt in retrying:
            with attempt:
                if breaker is not None:
                    try:
                        breaker.ensure_closed()
                    except ApiError:
                        log_warning(
                            log,
                            "remote_call.rejected",
                            service=service,
                            breaker=breaker.name,
                        )
                        raise
                result = await operation()
    except ApiError:
        raise
    except Exception as error:
        if breaker is not None and counts_as_breaker_failure(error):
            breaker.record_failure()
        classification = _terminal_classification(service, error, budget)
        log_error(
            log,
            "remote_call.failed",
            service=service,
            kind=str(classification.kind),
            status=getattr(error, "status", None),
            retries=budget.rate_limit_retries + budget.server_error_retries,
        )
        raise ApiError(classification) from error

    if breaker is not None:
        breaker.record_success()
    return result
