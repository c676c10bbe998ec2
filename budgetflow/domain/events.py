"""Domain events for the budget approval workflow.

Emitted by the ``BudgetApproval`` aggregate and collected by the
application service after a transition has been persisted, where they are
logged and handed to the registered event handlers (notifications,
integrations).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from budgetflow.domain.base import DomainEvent


@dataclass(frozen=True)
class BudgetCreated(DomainEvent):
    """Event raised when a draft budget is created."""

    event_type: ClassVar[str] = "budget.created"

    budget_id: str = ""
    created_by: str = ""

    def _payload(self) -> dict[str, Any]:
        return {"budget_id": self.budget_id, "created_by": self.created_by}


@dataclass(frozen=True)
class BudgetSubmitted(DomainEvent):
    """Event raised when a budget enters the approval flow."""

    event_type: ClassVar[str] = "budget.submitted"

    budget_id: str = ""
    submitted_by: str = ""
    resubmission: bool = False
    deadline: datetime | None = None

    def _payload(self) -> dict[str, Any]:
        return {
            "budget_id": self.budget_id,
            "submitted_by": self.submitted_by,
            "resubmission": self.resubmission,
            "deadline": self.deadline.isoformat() if self.deadline else None,
        }


@dataclass(frozen=True)
class BudgetLevelApproved(DomainEvent):
    """Event raised when one approval step is passed."""

    event_type: ClassVar[str] = "budget.level_approved"

    budget_id: str = ""
    approved_by: str = ""
    from_status: str = ""
    to_status: str = ""
    deadline: datetime | None = None

    def _payload(self) -> dict[str, Any]:
        return {
            "budget_id": self.budget_id,
            "approved_by": self.approved_by,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "deadline": self.deadline.isoformat() if self.deadline else None,
        }


@dataclass(frozen=True)
class BudgetApproved(DomainEvent):
    """Event raised when the final (finance) level approves the budget."""

    event_type: ClassVar[str] = "budget.approved"

    budget_id: str = ""
    approved_by: str = ""

    def _payload(self) -> dict[str, Any]:
        return {"budget_id": self.budget_id, "approved_by": self.approved_by}


@dataclass(frozen=True)
class BudgetRejected(DomainEvent):
    """Event raised when a budget is rejected."""

    event_type: ClassVar[str] = "budget.rejected"

    budget_id: str = ""
    rejected_by: str = ""
    reason: str = ""
    level: str = ""

    def _payload(self) -> dict[str, Any]:
        return {
            "budget_id": self.budget_id,
            "rejected_by": self.rejected_by,
            "reason": self.reason,
            "level": self.level,
        }


@dataclass(frozen=True)
class BudgetRevisionRequested(DomainEvent):
    """Event raised when an approver sends a budget back for changes."""

    event_type: ClassVar[str] = "budget.revision_requested"

    budget_id: str = ""
    requested_by: str = ""
    changes: tuple[str, ...] = field(default_factory=tuple)

    def _payload(self) -> dict[str, Any]:
        return {
            "budget_id": self.budget_id,
            "requested_by": self.requested_by,
            "changes": list(self.changes),
        }


@dataclass(frozen=True)
class BudgetUpdated(DomainEvent):
    """Event raised when an editable budget's details change."""

    event_type: ClassVar[str] = "budget.updated"

    budget_id: str = ""
    updated_by: str = ""
    changed_fields: tuple[str, ...] = field(default_factory=tuple)

    def _payload(self) -> dict[str, Any]:
        return {
            "budget_id": self.budget_id,
            "updated_by": self.updated_by,
            "changed_fields": list(self.changed_fields),
        }


@dataclass(frozen=True)
class BudgetDeleted(DomainEvent):
    """Event raised when a draft budget is deleted."""

    event_type: ClassVar[str] = "budget.deleted"

    budget_id: str = ""
    deleted_by: str = ""

    def _payload(self) -> dict[str, Any]:
        return {"budget_id": self.budget_id, "deleted_by": self.deleted_by}


EVENT_REGISTRY: dict[str, type[DomainEvent]] = {
    cls.event_type: cls
    for cls in (
        BudgetCreated,
        BudgetSubmitted,
        BudgetLevelApproved,
        BudgetApproved,
        BudgetRejected,
        BudgetRevisionRequested,
        BudgetUpdated,
        BudgetDeleted,
    )
}


def get_event_class(event_type: str) -> type[DomainEvent] | None:
    """Look up an event class by its ``event_type`` string."""
    return EVENT_REGISTRY.get(event_type)
