"""Domain layer - the budget approval state machine and its aggregate.

- **State machine**: ``BudgetStatus``, ``ApprovalLevel``, ``ApprovalAction``
  and the ``can_perform`` availability predicate
- **Aggregate**: ``BudgetApproval`` with its append-only ``AuditTrailItem`` log
- **Deadlines**: ``DeadlinePolicy`` and the pure ``deadline_status`` function
- **Domain events** and **exceptions**

Example usage:
    from budgetflow.domain import BudgetApproval, DeadlinePolicy, UserRef

    owner = UserRef(id="u-1", email="owner@example.com")
    budget = BudgetApproval.create(created_by=owner, name="Q3 field survey")
    budget.submit(owner, DeadlinePolicy(), expected_status=budget.status)
    print(budget.status)  # BudgetStatus.PENDING_CHECKER_APPROVAL
"""

from budgetflow.domain.base import AggregateRoot, DomainEvent, Entity, ValueObject
from budgetflow.domain.deadlines import (
    DeadlinePolicy,
    DeadlineState,
    DeadlineStatus,
    deadline_status,
)
from budgetflow.domain.entities import (
    ApprovedDetails,
    AuditAction,
    AuditDetails,
    AuditTrailItem,
    BudgetApproval,
    RejectedDetails,
    RevisionRequestedDetails,
    SubmittedDetails,
)
from budgetflow.domain.events import (
    EVENT_REGISTRY,
    BudgetApproved,
    BudgetCreated,
    BudgetDeleted,
    BudgetLevelApproved,
    BudgetRejected,
    BudgetRevisionRequested,
    BudgetSubmitted,
    BudgetUpdated,
    get_event_class,
)
from budgetflow.domain.exceptions import (
    BudgetNotFoundError,
    ConcurrentModificationError,
    DomainError,
    InvalidTransitionError,
    ValidationError,
)
from budgetflow.domain.projections import (
    ApprovalStep,
    BadgeVariant,
    approval_steps,
    status_badge,
    status_label,
    submit_block_reason,
)
from budgetflow.domain.state_machines import (
    ApprovalAction,
    ApprovalLevel,
    BudgetStatus,
    StateTransition,
    available_actions,
    can_perform,
    validate_budget_action,
)
from budgetflow.domain.value_objects import BudgetId, UserRef

__all__ = [
    # Base classes
    "AggregateRoot",
    "DomainEvent",
    "Entity",
    "ValueObject",
    # Entities
    "ApprovedDetails",
    "AuditAction",
    "AuditDetails",
    "AuditTrailItem",
    "BudgetApproval",
    "RejectedDetails",
    "RevisionRequestedDetails",
    "SubmittedDetails",
    # Value Objects
    "BudgetId",
    "UserRef",
    # Deadlines
    "DeadlinePolicy",
    "DeadlineState",
    "DeadlineStatus",
    "deadline_status",
    # State Machine
    "ApprovalAction",
    "ApprovalLevel",
    "BudgetStatus",
    "StateTransition",
    "available_actions",
    "can_perform",
    "validate_budget_action",
    # Projections
    "ApprovalStep",
    "BadgeVariant",
    "approval_steps",
    "status_badge",
    "status_label",
    "submit_block_reason",
    # Domain Events
    "BudgetCreated",
    "BudgetSubmitted",
    "BudgetLevelApproved",
    "BudgetApproved",
    "BudgetRejected",
    "BudgetRevisionRequested",
    "BudgetUpdated",
    "BudgetDeleted",
    "EVENT_REGISTRY",
    "get_event_class",
    # Exceptions
    "DomainError",
    "InvalidTransitionError",
    "ConcurrentModificationError",
    "BudgetNotFoundError",
    "ValidationError",
]
