"""Circuit breaker state primitives."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerMetrics:
    """Point-in-time view of cumulative breaker counters.

    Attributes:
        total_calls: Every ``execute`` call, admitted or rejected.
        successful_calls: Admitted calls whose operation returned.
        failed_calls: Admitted calls whose operation raised.
        rejected_calls: Calls refused while ``OPEN``.
        current_state: Breaker state when the snapshot was taken.
        last_failure_time: Timestamp of the last failure, if any.
        last_state_change_time: Timestamp of the last transition, or of
            construction when the breaker never transitioned.
    """

    total_calls: int
    successful_calls: int
    failed_calls: int
    rejected_calls: int
    current_state: CircuitState
    last_failure_time: datetime | None
    last_state_change_time: datetime

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-friendly mapping for structured logging."""
        last_failure = self.last_failure_time
        return {
            "total_calls": self.total_calls,
            "successful_calls": self.successful_calls,
            "failed_calls": self.failed_calls,
            "rejected_calls": self.rejected_calls,
            "current_state": self.current_state.value,
            "last_failure_time": (
                None if last_failure is None else last_failure.isoformat()
            ),
            "last_state_change_time": self.last_state_change_time.isoformat(),
        }
