"""Circuit breaker shell around the pure state transition function."""

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from gtypee_core.circuit_breaker.metrics import BreakerListener
from gtypee_core.circuit_breaker.state import (
    BreakerEvent,
    BreakerSnapshot,
    CircuitState,
    closed_snapshot,
    transition,
)
from gtypee_core.errors import ApiError, CircuitOpen
from gtypee_core.logging import StructuredLogger, log_info, log_warning

Clock = Callable[[], float]

_logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Consecutive failures required before opening.
        reset_timeout: Seconds after the last failure before an open circuit
            closes again.
    """

    failure_threshold: int = 5
    reset_timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.reset_timeout < 0:
            raise ValueError("reset_timeout must be >= 0")


class CircuitBreaker:
    """Consecutive-failure guard for one logical endpoint group.

    Not internally synchronized: use one instance per serialized execution
    context.
    """

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        clock: Clock = time.monotonic,
        listeners: Sequence[BreakerListener] | None = None,
        logger: StructuredLogger | logging.Logger | None = None,
    ) -> None:
        """Build a closed circuit breaker.

        Args:
            name: Endpoint group name used in logs and listener events.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            clock: Zero-argument callable returning the current time in
                seconds.
            listeners: Optional listener hooks for breaker events.
            logger: Logger for open/reset events.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._clock = clock
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._logger = _logger if logger is None else logger
        self._snapshot = closed_snapshot(
            self.config.failure_threshold, self.config.reset_timeout
        )

    @property
    def snapshot(self) -> BreakerSnapshot:
        return self._snapshot

    @property
    def failure_count(self) -> int:
        return self._snapshot.failure_count

    def _emit_state_change(self, old: CircuitState, new: CircuitState) -> None:
        for listener in self._listeners:
            try:
                listener.on_state_change(self.name, old, new)
            except Exception:
                continue

    def _emit_call_rejected(self) -> None:
        for listener in self._listeners:
            try:
                listener.on_call_rejected(self.name)
            except Exception:
                continue

    def _apply(self, event: BreakerEvent) -> bool:
        previous = self._snapshot
        result = transition(previous, event, self._clock())
        self._snapshot = result.snapshot
        if previous.state != result.snapshot.state:
            if result.snapshot.is_open:
                log_warning(
                    self._logger,
                    "circuit_breaker.opened",
                    breaker=self.name,
                    failure_count=result.snapshot.failure_count,
                    threshold=result.snapshot.threshold,
                )
            else:
                log_info(self._logger, "circuit_breaker.reset", breaker=self.name)
            self._emit_state_change(previous.state, result.snapshot.state)
        return result.tripped

    def record_success(self) -> None:
        """Close the circuit and clear the failure count."""
        self._apply(BreakerEvent.SUCCESS)

    def record_failure(self) -> bool:
        """Count one failure.

        Returns:
            ``True`` when the failure count is at or above the threshold,
            i.e. the circuit is now open.
        """
        return self._apply(BreakerEvent.FAILURE)

    def is_open(self) -> bool:
        """Return whether calls must be rejected, closing an expired circuit."""
        self._apply(BreakerEvent.CHECK)
        return self._snapshot.is_open

    def state(self) -> CircuitState:
        return CircuitState.OPEN if self.is_open() else CircuitState.CLOSED

    def ensure_closed(self) -> None:
        """Fail fast before a remote call when the circuit is open.

        Raises:
            ApiError: With a ``CircuitOpen`` classification.
        """
        if self.is_open():
            self._emit_call_rejected()
            raise ApiError(CircuitOpen())


class BreakerRegistry:
    """One ``CircuitBreaker`` per endpoint group, sharing config and clock."""

    def __init__(
        self,
        *,
        config: CircuitBreakerConfig | None = None,
        clock: Clock = time.monotonic,
        listeners: Sequence[BreakerListener] | None = None,
        logger: StructuredLogger | logging.Logger | None = None,
    ) -> None:
        self.config = CircuitBreakerConfig() if config is None else config
        self._clock = clock
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._logger = logger
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, name: str) -> CircuitBreaker:
        """Return the breaker for ``name``, creating a closed one if missing."""
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(
                name,
                config=self.config,
                clock=self._clock,
                listeners=self._listeners,
                logger=self._logger,
            )
            self._breakers[name] = breaker
        return breaker

    def snapshots(self) -> dict[str, BreakerSnapshot]:
        return {name: breaker.snapshot for name, breaker in self._breakers.items()}

    def __contains__(self, name: object) -> bool:
        return name in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)
