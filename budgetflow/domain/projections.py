"""Read-side projections of a budget's approval state.

Pure helpers that turn a status into what an approval screen shows:
progress steps, badge variant, label and why submission is blocked.
"""

from dataclasses import dataclass
from enum import Enum

from budgetflow.domain.state_machines import ApprovalAction, BudgetStatus, can_perform

SUBMIT_BLOCKED_MESSAGE = "Can only submit draft or revision requested budgets"


class BadgeVariant(str, Enum):
    """Visual style of the status badge shown next to a budget."""

    SUCCESS = "success"
    WARNING = "warning"
    DESTRUCTIVE = "destructive"
    SECONDARY = "secondary"


@dataclass(frozen=True)
class ApprovalStep:
    """One stage of the approval progress bar."""

    step: int
    title: str
    description: str
    completed: bool
    current: bool


_STEP_DEFINITIONS: tuple[tuple[int, str, str], ...] = (
    (1, "Creator", "Budget created"),
    (2, "Checker", "Initial review"),
    (3, "Manager", "Management approval"),
    (4, "Finance", "Final approval"),
)


def approval_steps(status: BudgetStatus) -> list[ApprovalStep]:
    """Progress steps for a status.

    Steps below the status' ordinal are completed. Out-of-band statuses
    (rejected, revision requested) have no current step.
    """
    current = status.step
    return [
        ApprovalStep(
            step=step,
            title=title,
            description=description,
            completed=0 < step < current,
            current=step == current,
        )
        for step, title, description in _STEP_DEFINITIONS
    ]


def status_label(status: BudgetStatus) -> str:
    """Upper-case display label, e.g. ``PENDING CHECKER APPROVAL``."""
    return status.value.replace("_", " ").upper()


def status_badge(status: BudgetStatus) -> BadgeVariant:
    """Badge variant for a status.

    Approved is success, draft and revision requested are warnings, rejected
    is destructive and every pending level is secondary.
    """
    if status == BudgetStatus.APPROVED:
        return BadgeVariant.SUCCESS
    if status in (BudgetStatus.DRAFT, BudgetStatus.REVISION_REQUESTED):
        return BadgeVariant.WARNING
    if status == BudgetStatus.REJECTED:
        return BadgeVariant.DESTRUCTIVE
    return BadgeVariant.SECONDARY


def submit_block_reason(status: BudgetStatus) -> str | None:
    """Why the submit button is disabled, or None when it is enabled."""
    if can_perform(ApprovalAction.SUBMIT, status):
        return None
    return SUBMIT_BLOCKED_MESSAGE
