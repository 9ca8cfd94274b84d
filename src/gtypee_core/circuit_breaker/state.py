"""Circuit breaker state primitives and the pure transition function."""

from dataclasses import dataclass, replace
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"


class BreakerEvent(StrEnum):
    """Inputs accepted by ``transition``."""

    SUCCESS = "success"
    FAILURE = "failure"
    CHECK = "check"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of breaker internals.

    Attributes:
        failure_count: Failures since the last success or auto-reset.
        is_open: Whether calls are currently rejected.
        last_failure_at: Clock reading of the last recorded failure, if any.
        threshold: Failures required before opening.
        reset_window: Seconds after the last failure before an open breaker
            closes again.
    """

    failure_count: int
    is_open: bool
    last_failure_at: float | None
    threshold: int
    reset_window: float

    @property
    def state(self) -> CircuitState:
        return CircuitState.OPEN if self.is_open else CircuitState.CLOSED


@dataclass(frozen=True)
class BreakerTransition:
    """Result of applying one event to a snapshot.

    Attributes:
        snapshot: The state after the event.
        tripped: ``True`` when a failure left the count at or above the
            threshold.
    """

    snapshot: BreakerSnapshot
    tripped: bool = False


def closed_snapshot(threshold: int, reset_window: float) -> BreakerSnapshot:
    """Return the initial healthy state."""
    return BreakerSnapshot(
        failure_count=0,
        is_open=False,
        last_failure_at=None,
        threshold=threshold,
        reset_window=reset_window,
    )


def _reset(snapshot: BreakerSnapshot) -> BreakerSnapshot:
    return replace(snapshot, failure_count=0, is_open=False)


def transition(
    snapshot: BreakerSnapshot, event: BreakerEvent, now: float
) -> BreakerTransition:
    """Apply ``event`` observed at clock reading ``now`` to ``snapshot``.

    There is no half-open state: an open breaker closes unconditionally once
    more than ``reset_window`` seconds passed since the last failure.
    """
    if event is BreakerEvent.SUCCESS:
        return BreakerTransition(snapshot=_reset(snapshot))

    if event is BreakerEvent.FAILURE:
        failure_count = snapshot.failure_count + 1
        tripped = failure_count >= snapshot.threshold
        updated = replace(
            snapshot,
            failure_count=failure_count,
            last_failure_at=now,
            is_open=snapshot.is_open or tripped,
        )
        return BreakerTransition(snapshot=updated, tripped=tripped)

    if not snapshot.is_open:
        return BreakerTransition(snapshot=snapshot)
    last_failure_at = snapshot.last_failure_at
    if last_failure_at is None:
        last_failure_at = now
    if now - last_failure_at > snapshot.reset_window:
        return BreakerTransition(snapshot=_reset(snapshot))
    return BreakerTransition(snapshot=snapshot)
