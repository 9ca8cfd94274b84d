"""Consecutive-failure circuit breaker.

Key behavior notes:
  - Only ``CLOSED`` and ``OPEN`` exist. An open circuit closes
    unconditionally once more than ``reset_timeout`` seconds passed since the
    last recorded failure; there is no half-open probe.
  - The state machine is the pure ``transition`` function;
    ``CircuitBreaker`` only reads the clock and stores the snapshot.
  - Breakers are not synchronized. Keep one per endpoint group per
    serialized execution context (see ``BreakerRegistry``).
"""

from gtypee_core.circuit_breaker.breaker import (
    BreakerRegistry,
    CircuitBreaker,
    CircuitBreakerConfig,
)
from gtypee_core.circuit_breaker.metrics import BreakerListener
from gtypee_core.circuit_breaker.state import (
    BreakerEvent,
    BreakerSnapshot,
    BreakerTransition,
    CircuitState,
    closed_snapshot,
    transition,
)

__all__ = [
    "BreakerEvent",
    "BreakerListener",
    "BreakerRegistry",
    "BreakerSnapshot",
    "BreakerTransition",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "closed_snapshot",
    "transition",
]
