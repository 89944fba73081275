"""
SLAClock -- remaining time, due-soon and overdue flags for a deadline.

Responsibility:
    Derives an SLA reading from (deadline, warning threshold, now).  The
    caller supplies whether the associated shipment or task is already
    completed/terminal; this module has no notion of statuses.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O, lock-free.
    Used by read paths (ShipmentSelector.sla_board, TaskService.task_sla)
    and exposed as ``compute_sla`` on the coordinator.

Recomputation model:
    Pull-based.  Nothing here runs a timer; consumers call ``compute`` with
    a fresh ``now`` on their own cadence (60 seconds or less keeps badges
    in step with wall-clock time).

Invariants enforced:
    - remaining_ms = deadline - now, in whole milliseconds.
    - is_overdue = remaining_ms < 0 and not completed.  For a fixed deadline
      and completed=False it is monotonic in ``now``.
    - is_due_soon = 0 <= remaining_ms <= threshold_minutes * 60000.
    - No deadline yields the NO_SLA sentinel, never an error.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

MS_PER_MINUTE = 60_000


class SlaState(str, Enum):
    """Traffic-light state for presentation layers."""

    ON_TRACK = "on_track"
    DUE_SOON = "due_soon"
    OVERDUE = "overdue"
    COMPLETED = "completed"
    NO_SLA = "no_sla"


@dataclass(frozen=True, slots=True)
class SlaReading:
    """Result of one SLA computation."""

    remaining_ms: int | None
    is_overdue: bool
    is_due_soon: bool
    has_deadline: bool = True
    completed: bool = False

    @property
    def state(self) -> SlaState:
        if not self.has_deadline:
            return SlaState.NO_SLA
        if self.completed:
            return SlaState.COMPLETED
        if self.is_overdue:
            return SlaState.OVERDUE
        if self.is_due_soon:
            return SlaState.DUE_SOON
        return SlaState.ON_TRACK

    def to_dict(self) -> dict:
        return {
            "remaining_ms": self.remaining_ms,
            "is_overdue": self.is_overdue,
            "is_due_soon": self.is_due_soon,
            "state": self.state.value,
        }


NO_SLA = SlaReading(
    remaining_ms=None,
    is_overdue=False,
    is_due_soon=False,
    has_deadline=False,
)


def remaining_ms(deadline: datetime, now: datetime) -> int:
    delta = deadline - now
    # floors toward -inf: any instant past the deadline is negative
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


def compute(
    deadline: datetime | None,
    warning_threshold_minutes: int,
    now: datetime,
    *,
    completed: bool = False,
) -> SlaReading:
    """
    Compute the SLA reading for ``deadline`` at ``now``.

    Args:
        deadline: Aware datetime, or None when no SLA is set.
        warning_threshold_minutes: Due-soon window before the deadline.
        now: Aware datetime supplied by the caller's clock.
        completed: True if the associated item is completed or terminal;
            suppresses the overdue flag.

    Returns:
        SlaReading, or NO_SLA when ``deadline`` is None.
    """
    if deadline is None:
        return NO_SLA
    remaining = remaining_ms(deadline, now)
    return SlaReading(
        remaining_ms=remaining,
        is_overdue=remaining < 0 and not completed,
        is_due_soon=0 <= remaining <= warning_threshold_minutes * MS_PER_MINUTE,
        completed=completed,
    )
