"""Approval deadlines.

A deadline is plain data on the budget. Nothing here runs a timer: the
policy computes when a level is due, and ``deadline_status`` classifies a
deadline against a supplied "now" for display.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from budgetflow.domain.base import ValueObject
from budgetflow.domain.state_machines import ApprovalLevel, BudgetStatus

DEFAULT_DUE_SOON_WINDOW = timedelta(days=2)


class DeadlineState(str, Enum):
    """Classification of a deadline relative to now."""

    NONE = "none"
    PASSED = "passed"
    DUE_SOON = "due_soon"
    ON_TRACK = "on_track"


_DEADLINE_TEXT: dict[DeadlineState, str] = {
    DeadlineState.NONE: "No deadline set",
    DeadlineState.PASSED: "Deadline passed",
    DeadlineState.DUE_SOON: "Due soon",
    DeadlineState.ON_TRACK: "On track",
}


@dataclass(frozen=True)
class DeadlineStatus(ValueObject):
    """Derived, non-persisted deadline classification."""

    status: DeadlineState
    text: str

    @classmethod
    def of(cls, state: DeadlineState) -> "DeadlineStatus":
        return cls(status=state, text=_DEADLINE_TEXT[state])


def deadline_status(
    deadline: datetime | None,
    now: datetime,
    due_soon_window: timedelta = DEFAULT_DUE_SOON_WINDOW,
) -> DeadlineStatus:
    """Classify a level deadline.

    Args:
        deadline: Due time of the pending level, or None.
        now: Reference time.
        due_soon_window: How close to the deadline counts as "due soon".

    Returns:
        DeadlineStatus with state and display text.
    """
    if deadline is None:
        return DeadlineStatus.of(DeadlineState.NONE)
    if now >= deadline:
        return DeadlineStatus.of(DeadlineState.PASSED)
    if deadline - now <= due_soon_window:
        return DeadlineStatus.of(DeadlineState.DUE_SOON)
    return DeadlineStatus.of(DeadlineState.ON_TRACK)


@dataclass(frozen=True)
class DeadlinePolicy(ValueObject):
    """How long each approval level has to act.

    Attributes:
        level_durations: Time allowed per level.
    """

    level_durations: dict[ApprovalLevel, timedelta] = field(
        default_factory=lambda: {
            ApprovalLevel.CHECKER: timedelta(hours=48),
            ApprovalLevel.MANAGER: timedelta(hours=72),
            ApprovalLevel.FINANCE: timedelta(hours=120),
        }
    )

    def __hash__(self) -> int:
        return hash(tuple(sorted((k.value, v) for k, v in self.level_durations.items())))

    def deadline_for(self, status: BudgetStatus, now: datetime) -> datetime | None:
        """Deadline for a budget entering ``status`` at ``now``.

        Returns:
            The due time when ``status`` is a pending level, otherwise None.
        """
        level = status.level
        if level is None:
            return None
        return now + self.level_durations[level]

    @classmethod
    def from_hours(cls, checker: float, manager: float, finance: float) -> "DeadlinePolicy":
        return cls(
            level_durations={
                ApprovalLevel.CHECKER: timedelta(hours=checker),
                ApprovalLevel.MANAGER: timedelta(hours=manager),
                ApprovalLevel.FINANCE: timedelta(hours=finance),
            }
        )
