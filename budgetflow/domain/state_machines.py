"""State machine for the budget approval workflow.

Defines the approval statuses, the three approval levels, the actions a
caller can take, and the single transition table saying which action is
legal from which status and where it leads. Everything here is a pure
function of the status value.
"""

from dataclasses import dataclass
from enum import Enum

from budgetflow.domain.exceptions import InvalidTransitionError


# ============================================================================
# Approval Levels
# ============================================================================


class ApprovalLevel(str, Enum):
    """Sequential approval stages a budget passes before it is approved."""

    CHECKER = "checker"
    MANAGER = "manager"
    FINANCE = "finance"

    @classmethod
    def parse(cls, value: "str | int | ApprovalLevel") -> "ApprovalLevel":
        """Parse a level from its name or its 1-based number.

        Accepts ``"checker"``, ``"Manager"``, ``2`` or ``"2"``.

        Raises:
            ValueError: If the value names no level.
        """
        if isinstance(value, ApprovalLevel):
            return value
        text = str(value).strip().lower()
        if text.isdigit():
            index = int(text) - 1
            if 0 <= index < len(_LEVEL_ORDER):
                return _LEVEL_ORDER[index]
            raise ValueError(f"Unknown approval level number: {value}")
        return cls(text)


_LEVEL_ORDER: tuple[ApprovalLevel, ...] = (
    ApprovalLevel.CHECKER,
    ApprovalLevel.MANAGER,
    ApprovalLevel.FINANCE,
)


# ============================================================================
# Budget Status
# ============================================================================


class BudgetStatus(str, Enum):
    """Budget approval lifecycle states.

    State diagram:
        DRAFT ◄──────────────────────── (created)
          │
          │ submit / approve
          ▼
        PENDING_CHECKER_APPROVAL ──┬──► REJECTED (terminal)
          │ approve                │
          ▼                        │
        PENDING_MANAGER_APPROVAL ──┤
          │ approve                │
          ▼                        │
        PENDING_FINANCE_APPROVAL ──┴──► REVISION_REQUESTED
          │ approve                        │
          ▼                                │ submit (back to checker)
        APPROVED (terminal)                ▼
                                   PENDING_CHECKER_APPROVAL
    """

    DRAFT = "draft"
    PENDING_CHECKER_APPROVAL = "pending_checker_approval"
    PENDING_MANAGER_APPROVAL = "pending_manager_approval"
    PENDING_FINANCE_APPROVAL = "pending_finance_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION_REQUESTED = "revision_requested"

    @property
    def step(self) -> int:
        """Progress-bar step ordinal; -1 for out-of-band states."""
        return _STEP_ORDINALS[self]

    @property
    def level(self) -> ApprovalLevel | None:
        """Approval level currently pending, if any."""
        return _LEVEL_BY_PENDING.get(self)

    def is_editable(self) -> bool:
        """Check if the budget's details may be edited or the draft deleted.

        Returns:
            True for draft and revision_requested.
        """
        return self in _EDITABLE_STATUSES


_STEP_ORDINALS: dict[BudgetStatus, int] = {
    BudgetStatus.DRAFT: 1,
    BudgetStatus.PENDING_CHECKER_APPROVAL: 2,
    BudgetStatus.PENDING_MANAGER_APPROVAL: 3,
    BudgetStatus.PENDING_FINANCE_APPROVAL: 4,
    BudgetStatus.APPROVED: 5,
    BudgetStatus.REJECTED: -1,
    BudgetStatus.REVISION_REQUESTED: -1,
}

_LEVEL_BY_PENDING: dict[BudgetStatus, ApprovalLevel] = {
    BudgetStatus.PENDING_CHECKER_APPROVAL: ApprovalLevel.CHECKER,
    BudgetStatus.PENDING_MANAGER_APPROVAL: ApprovalLevel.MANAGER,
    BudgetStatus.PENDING_FINANCE_APPROVAL: ApprovalLevel.FINANCE,
}

_EDITABLE_STATUSES = frozenset({BudgetStatus.DRAFT, BudgetStatus.REVISION_REQUESTED})


# ============================================================================
# Actions
# ============================================================================


class ApprovalAction(str, Enum):
    """Operations a caller can invoke on a budget."""

    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    REVISE = "revise"

    def allowed_statuses(self) -> list[BudgetStatus]:
        """Statuses from which this action may be performed."""
        return [s for s in BudgetStatus if self in _BUDGET_TRANSITIONS[s]]


def _leave_pending(on_approve: BudgetStatus) -> dict[ApprovalAction, BudgetStatus]:
    return {
        ApprovalAction.APPROVE: on_approve,
        ApprovalAction.REJECT: BudgetStatus.REJECTED,
        ApprovalAction.REVISE: BudgetStatus.REVISION_REQUESTED,
    }


# Budget state transitions (defined outside enum to avoid Enum restrictions).
# The only place that says which action is legal where and what it leads to.
_BUDGET_TRANSITIONS: dict[BudgetStatus, dict[ApprovalAction, BudgetStatus]] = {
    BudgetStatus.DRAFT: {
        ApprovalAction.SUBMIT: BudgetStatus.PENDING_CHECKER_APPROVAL,
        ApprovalAction.APPROVE: BudgetStatus.PENDING_CHECKER_APPROVAL,
    },
    BudgetStatus.PENDING_CHECKER_APPROVAL: _leave_pending(BudgetStatus.PENDING_MANAGER_APPROVAL),
    BudgetStatus.PENDING_MANAGER_APPROVAL: _leave_pending(BudgetStatus.PENDING_FINANCE_APPROVAL),
    BudgetStatus.PENDING_FINANCE_APPROVAL: _leave_pending(BudgetStatus.APPROVED),
    BudgetStatus.APPROVED: {},  # Terminal state
    BudgetStatus.REJECTED: {},  # Terminal state
    BudgetStatus.REVISION_REQUESTED: {
        ApprovalAction.SUBMIT: BudgetStatus.PENDING_CHECKER_APPROVAL,
    },
}


def can_perform(action: ApprovalAction, status: BudgetStatus) -> bool:
    """Check whether an action is offered for a budget in the given status."""
    return action in _BUDGET_TRANSITIONS[status]


def available_actions(status: BudgetStatus) -> list[ApprovalAction]:
    """List the actions that can be performed from a status."""
    return [action for action in ApprovalAction if can_perform(action, status)]


# ============================================================================
# State Transition Result
# ============================================================================


@dataclass(frozen=True)
class StateTransition:
    """A status change applied to a budget.

    Attributes:
        from_state: Previous status.
        to_state: New status.
        action: Action that caused the change.
    """

    from_state: BudgetStatus
    to_state: BudgetStatus
    action: ApprovalAction


def validate_budget_action(
    budget_id: str,
    action: ApprovalAction,
    current_status: BudgetStatus,
) -> BudgetStatus:
    """Validate an action against the current status.

    Returns:
        The status the action leads to.

    Raises:
        InvalidTransitionError: If the action is not available.
    """
    target = _BUDGET_TRANSITIONS[current_status].get(action)
    if target is None:
        raise InvalidTransitionError(
            budget_id=budget_id,
            action=action.value,
            current_status=current_status.value,
            allowed_statuses=[s.value for s in action.allowed_statuses()],
        )
    return target
