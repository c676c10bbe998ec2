"""Domain entities for the budget approval workflow.

The ``BudgetApproval`` aggregate owns a budget's approval status, the
deadline of the level currently pending, and the append-only audit trail.
The status is never stored on its own: it is read off the last audit item,
so history and status cannot drift apart.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar

from budgetflow.domain.base import AggregateRoot, utc_now
from budgetflow.domain.deadlines import DeadlinePolicy
from budgetflow.domain.events import (
    BudgetApproved,
    BudgetCreated,
    BudgetDeleted,
    BudgetLevelApproved,
    BudgetRejected,
    BudgetRevisionRequested,
    BudgetSubmitted,
    BudgetUpdated,
)
from budgetflow.domain.exceptions import (
    ConcurrentModificationError,
    InvalidTransitionError,
    ValidationError,
)
from budgetflow.domain.state_machines import (
    ApprovalAction,
    ApprovalLevel,
    BudgetStatus,
    available_actions,
    validate_budget_action,
)
from budgetflow.domain.value_objects import BudgetId, UserRef


# ============================================================================
# Audit Trail
# ============================================================================


class AuditAction(str, Enum):
    """Kinds of audit trail entries."""

    SUBMITTED_FOR_APPROVAL = "submitted_for_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION_REQUESTED = "revision_requested"


@dataclass(frozen=True)
class SubmittedDetails:
    """Details of a submission for approval.

    Attributes:
        approvers: Optional approver references notified of the submission.
        previous_version: Budget version that was sent back for revision,
            when this is a resubmission.
    """

    action: ClassVar[AuditAction] = AuditAction.SUBMITTED_FOR_APPROVAL

    approvers: tuple[str, ...] = ()
    previous_version: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"approvers": list(self.approvers), "previous_version": self.previous_version}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SubmittedDetails":
        return cls(
            approvers=tuple(data.get("approvers") or ()),
            previous_version=data.get("previous_version"),
        )


@dataclass(frozen=True)
class ApprovedDetails:
    """Details of an approval step. ``level`` is None when approving a draft."""

    action: ClassVar[AuditAction] = AuditAction.APPROVED

    comments: str | None = None
    level: ApprovalLevel | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "comments": self.comments,
            "level": self.level.value if self.level else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ApprovedDetails":
        level = data.get("level")
        return cls(
            comments=data.get("comments"),
            level=ApprovalLevel(level) if level else None,
        )


@dataclass(frozen=True)
class RejectedDetails:
    """Details of a rejection."""

    action: ClassVar[AuditAction] = AuditAction.REJECTED

    reason: str
    level: ApprovalLevel

    def to_dict(self) -> dict[str, Any]:
        return {"reason": self.reason, "level": self.level.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RejectedDetails":
        return cls(reason=data["reason"], level=ApprovalLevel(data["level"]))


@dataclass(frozen=True)
class RevisionRequestedDetails:
    """Details of a revision request."""

    action: ClassVar[AuditAction] = AuditAction.REVISION_REQUESTED

    comments: str
    changes: tuple[str, ...]
    return_to_level: ApprovalLevel = ApprovalLevel.CHECKER

    def to_dict(self) -> dict[str, Any]:
        return {
            "comments": self.comments,
            "changes": list(self.changes),
            "return_to_level": self.return_to_level.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RevisionRequestedDetails":
        return cls(
            comments=data.get("comments", ""),
            changes=tuple(data.get("changes") or ()),
            return_to_level=ApprovalLevel(data.get("return_to_level", "checker")),
        )


AuditDetails = SubmittedDetails | ApprovedDetails | RejectedDetails | RevisionRequestedDetails

_DETAILS_BY_ACTION: dict[AuditAction, type[AuditDetails]] = {
    AuditAction.SUBMITTED_FOR_APPROVAL: SubmittedDetails,
    AuditAction.APPROVED: ApprovedDetails,
    AuditAction.REJECTED: RejectedDetails,
    AuditAction.REVISION_REQUESTED: RevisionRequestedDetails,
}


@dataclass(frozen=True)
class AuditTrailItem:
    """One immutable entry of a budget's audit trail.

    Attributes:
        action: What happened.
        performed_by: Who did it.
        performed_at: When it happened.
        from_status: Status before the action.
        to_status: Status after the action.
        details: Action-specific payload; its type always matches ``action``.
    """

    action: AuditAction
    performed_by: UserRef
    performed_at: datetime
    from_status: BudgetStatus
    to_status: BudgetStatus
    details: AuditDetails

    def __post_init__(self) -> None:
        if self.details.action is not self.action:
            raise ValueError(
                f"Audit details {type(self.details).__name__} do not match action "
                f"'{self.action.value}'"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "action": self.action.value,
            "performed_by": self.performed_by.to_dict(),
            "performed_at": self.performed_at.isoformat(),
            "from_status": self.from_status.value,
            "to_status": self.to_status.value,
            "details": self.details.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuditTrailItem":
        """Rebuild an item from ``to_dict`` output."""
        action = AuditAction(data["action"])
        performed_at = data["performed_at"]
        if isinstance(performed_at, str):
            performed_at = datetime.fromisoformat(performed_at)
        return cls(
            action=action,
            performed_by=UserRef.from_dict(data["performed_by"]),
            performed_at=performed_at,
            from_status=BudgetStatus(data["from_status"]),
            to_status=BudgetStatus(data["to_status"]),
            details=_DETAILS_BY_ACTION[action].from_dict(data.get("details") or {}),
        )


# ============================================================================
# Field Checks
# ============================================================================


def _clean_name(name: str) -> str:
    if not name or not name.strip():
        raise ValidationError("name", "must not be empty")
    return name.strip()


def _check_cost(total_planned_cost: int) -> int:
    if total_planned_cost < 0:
        raise ValidationError("total_planned_cost", "must not be negative")
    return total_planned_cost


def _clean_currency(currency: str) -> str:
    code = (currency or "").strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValidationError("currency", f"'{currency}' is not a three-letter currency code")
    return code


# ============================================================================
# Budget Approval Aggregate Root
# ============================================================================


@dataclass(kw_only=True, eq=False)
class BudgetApproval(AggregateRoot[BudgetId]):
    """Budget approval aggregate root.

    Its status changes only through ``submit``, ``approve``, ``reject`` and
    ``request_revision``. Each of them either raises before touching any
    field or appends exactly one audit item. ``update_details`` edits the
    descriptive fields of a draft or returned budget without touching the
    trail. Every mutation takes the status the caller observed.

    Attributes:
        id: Budget identifier.
        name: Human-readable budget name.
        created_by: User who created the budget.
        updated_by: User who last changed it.
        project_id: Owning project, if any.
        currency: ISO currency code of the amounts.
        total_planned_cost: Planned total in minor currency units.
        notes: Free-text notes.
        current_level_deadline: Due time of the pending level.
        audit_trail: Chronological, append-only history.
    """

    id: BudgetId
    name: str
    created_by: UserRef
    updated_by: UserRef | None = None
    project_id: str | None = None
    currency: str = "KES"
    total_planned_cost: int = 0
    notes: str | None = None
    current_level_deadline: datetime | None = None
    audit_trail: tuple[AuditTrailItem, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.updated_by is None:
            self.updated_by = self.created_by

    @classmethod
    def create(
        cls,
        created_by: UserRef,
        name: str,
        budget_id: BudgetId | None = None,
        project_id: str | None = None,
        currency: str = "KES",
        total_planned_cost: int = 0,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> "BudgetApproval":
        """Create a new draft budget.

        Raises:
            ValidationError: If name is blank, the planned cost is negative
                or the currency is not a three-letter code.
        """
        name = _clean_name(name)
        total_planned_cost = _check_cost(total_planned_cost)
        currency = _clean_currency(currency)

        now = now or utc_now()
        budget = cls(
            id=budget_id or BudgetId.generate(),
            name=name,
            created_by=created_by,
            project_id=project_id,
            currency=currency,
            total_planned_cost=total_planned_cost,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        budget._record_event(
            BudgetCreated(
                aggregate_id=str(budget.id),
                aggregate_type="Budget",
                budget_id=str(budget.id),
                created_by=created_by.id,
            )
        )
        return budget

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    @property
    def status(self) -> BudgetStatus:
        """Current status, projected from the last audit item."""
        if not self.audit_trail:
            return BudgetStatus.DRAFT
        return self.audit_trail[-1].to_status

    @property
    def current_level(self) -> ApprovalLevel | None:
        return self.status.level

    @property
    def step(self) -> int:
        return self.status.step

    @property
    def last_action(self) -> AuditTrailItem | None:
        return self.audit_trail[-1] if self.audit_trail else None

    def available_actions(self) -> list[ApprovalAction]:
        return available_actions(self.status)

    def ensure_status(self, expected_status: BudgetStatus | None) -> None:
        """Optimistic check against the status the caller observed.

        Every mutation needs the caller's observed status; a retried
        request therefore cannot advance the budget a second time.

        Raises:
            ValidationError: If no observed status was given.
            ConcurrentModificationError: If the status has changed.
        """
        if expected_status is None:
            raise ValidationError("expected_status", "the status the caller observed is required")
        if expected_status != self.status:
            raise ConcurrentModificationError(
                budget_id=str(self.id),
                expected_status=expected_status.value,
                actual_status=self.status.value,
            )

    # -------------------------------------------------------------------------
    # Editing
    # -------------------------------------------------------------------------

    def update_details(
        self,
        actor: UserRef,
        *,
        expected_status: BudgetStatus | None,
        name: str | None = None,
        notes: str | None = None,
        total_planned_cost: int | None = None,
        currency: str | None = None,
        now: datetime | None = None,
    ) -> tuple[str, ...]:
        """Change the descriptive fields of a draft or returned budget.

        Only the given fields change. An empty ``notes`` string clears the
        notes. No audit item is written; the version still moves on.

        Returns:
            Names of the fields that were given.

        Raises:
            ValidationError: If nothing is given or a value is malformed.
            ConcurrentModificationError: If ``expected_status`` is stale.
            InvalidTransitionError: If not in draft or revision_requested.
        """
        self.ensure_status(expected_status)
        if not self.status.is_editable():
            raise InvalidTransitionError(
                budget_id=str(self.id),
                action="update",
                current_status=self.status.value,
                allowed_statuses=[s.value for s in BudgetStatus if s.is_editable()],
            )

        changes: dict[str, Any] = {}
        if name is not None:
            changes["name"] = _clean_name(name)
        if notes is not None:
            changes["notes"] = notes.strip() or None
        if total_planned_cost is not None:
            changes["total_planned_cost"] = _check_cost(total_planned_cost)
        if currency is not None:
            changes["currency"] = _clean_currency(currency)
        if not changes:
            raise ValidationError("body", "no fields to update")

        for field_name, value in changes.items():
            setattr(self, field_name, value)
        self.updated_by = actor
        self._touch(now or utc_now())

        changed = tuple(changes)
        self._record_event(
            BudgetUpdated(
                aggregate_id=str(self.id),
                aggregate_type="Budget",
                budget_id=str(self.id),
                updated_by=actor.id,
                changed_fields=changed,
            )
        )
        return changed

    def delete(self, actor: UserRef, *, expected_status: BudgetStatus | None) -> None:
        """Check that the budget may be deleted and record the deletion.

        Only drafts can be deleted; anything that entered the approval
        flow keeps its audit trail. Removal itself is the repository's job.

        Raises:
            ValidationError: If no observed status was given.
            ConcurrentModificationError: If ``expected_status`` is stale.
            InvalidTransitionError: If the budget is not a draft.
        """
        self.ensure_status(expected_status)
        if self.status != BudgetStatus.DRAFT:
            raise InvalidTransitionError(
                budget_id=str(self.id),
                action="delete",
                current_status=self.status.value,
                allowed_statuses=[BudgetStatus.DRAFT.value],
            )
        self._record_event(
            BudgetDeleted(
                aggregate_id=str(self.id),
                aggregate_type="Budget",
                budget_id=str(self.id),
                deleted_by=actor.id,
            )
        )

    # -------------------------------------------------------------------------
    # State Transitions
    # -------------------------------------------------------------------------

    def submit(
        self,
        actor: UserRef,
        policy: DeadlinePolicy,
        approvers: tuple[str, ...] = (),
        now: datetime | None = None,
        *,
        expected_status: BudgetStatus | None,
    ) -> AuditTrailItem:
        """Send the budget to the checker level.

        Legal from draft and revision_requested; a resubmission always
        restarts at the checker level.

        Raises:
            ConcurrentModificationError: If ``expected_status`` is stale.
            InvalidTransitionError: If not in draft or revision_requested.
        """
        self.ensure_status(expected_status)
        target = validate_budget_action(str(self.id), ApprovalAction.SUBMIT, self.status)

        now = now or utc_now()
        resubmission = self.status == BudgetStatus.REVISION_REQUESTED
        details = SubmittedDetails(
            approvers=tuple(approvers),
            previous_version=self.version if resubmission else None,
        )
        item = self._append(actor, target, details, policy.deadline_for(target, now), now)
        self._record_event(
            BudgetSubmitted(
                aggregate_id=str(self.id),
                aggregate_type="Budget",
                budget_id=str(self.id),
                submitted_by=actor.id,
                resubmission=resubmission,
                deadline=self.current_level_deadline,
            )
        )
        return item

    def approve(
        self,
        actor: UserRef,
        policy: DeadlinePolicy,
        comments: str | None = None,
        now: datetime | None = None,
        *,
        expected_status: BudgetStatus | None,
    ) -> AuditTrailItem:
        """Pass the current step and move to the next one.

        The level being approved is derived from the current status. On
        reaching ``approved`` the deadline is cleared.

        Raises:
            ConcurrentModificationError: If ``expected_status`` is stale.
            InvalidTransitionError: If not in draft or a pending status.
        """
        self.ensure_status(expected_status)
        target = validate_budget_action(str(self.id), ApprovalAction.APPROVE, self.status)

        now = now or utc_now()
        from_status = self.status
        details = ApprovedDetails(
            comments=(comments or "").strip() or None,
            level=from_status.level,
        )
        item = self._append(actor, target, details, policy.deadline_for(target, now), now)

        if target == BudgetStatus.APPROVED:
            self._record_event(
                BudgetApproved(
                    aggregate_id=str(self.id),
                    aggregate_type="Budget",
                    budget_id=str(self.id),
                    approved_by=actor.id,
                )
            )
        else:
            self._record_event(
                BudgetLevelApproved(
                    aggregate_id=str(self.id),
                    aggregate_type="Budget",
                    budget_id=str(self.id),
                    approved_by=actor.id,
                    from_status=from_status.value,
                    to_status=target.value,
                    deadline=self.current_level_deadline,
                )
            )
        return item

    def reject(
        self,
        actor: UserRef,
        reason: str,
        level: str | int | ApprovalLevel | None = None,
        now: datetime | None = None,
        *,
        expected_status: BudgetStatus | None,
    ) -> AuditTrailItem:
        """Reject the budget at its pending level. Rejection is terminal.

        Args:
            actor: User rejecting the budget.
            reason: Why it was rejected; required.
            level: Level the caller believes it is rejecting at. Optional;
                when given it must match the pending level.

        Raises:
            ConcurrentModificationError: If ``expected_status`` is stale.
            InvalidTransitionError: If not in a pending status.
            ValidationError: If reason is blank or level does not match.
        """
        self.ensure_status(expected_status)
        target = validate_budget_action(str(self.id), ApprovalAction.REJECT, self.status)

        if not reason or not reason.strip():
            raise ValidationError("reason", "a rejection reason is required")

        pending_level = self.status.level
        if level is not None:
            try:
                requested_level = ApprovalLevel.parse(level)
            except ValueError:
                raise ValidationError("level", f"unknown approval level '{level}'") from None
            if requested_level != pending_level:
                raise ValidationError(
                    "level",
                    f"budget is pending at '{pending_level.value}', not '{requested_level.value}'",
                )

        now = now or utc_now()
        details = RejectedDetails(reason=reason.strip(), level=pending_level)
        item = self._append(actor, target, details, None, now)
        self._record_event(
            BudgetRejected(
                aggregate_id=str(self.id),
                aggregate_type="Budget",
                budget_id=str(self.id),
                rejected_by=actor.id,
                reason=details.reason,
                level=pending_level.value,
            )
        )
        return item

    def request_revision(
        self,
        actor: UserRef,
        changes: list[str] | tuple[str, ...],
        comments: str | None = None,
        now: datetime | None = None,
        *,
        expected_status: BudgetStatus | None,
    ) -> AuditTrailItem:
        """Send the budget back to its owner for changes.

        When no comments are given, the comments are the changes joined by
        newlines.

        Raises:
            ConcurrentModificationError: If ``expected_status`` is stale.
            InvalidTransitionError: If not in a pending status.
            ValidationError: If no non-blank change is listed.
        """
        self.ensure_status(expected_status)
        target = validate_budget_action(str(self.id), ApprovalAction.REVISE, self.status)

        cleaned = tuple(c.strip() for c in changes if c and c.strip())
        if not cleaned:
            raise ValidationError("changes", "at least one requested change is required")

        now = now or utc_now()
        details = RevisionRequestedDetails(
            comments=(comments or "").strip() or "\n".join(cleaned),
            changes=cleaned,
        )
        item = self._append(actor, target, details, None, now)
        self._record_event(
            BudgetRevisionRequested(
                aggregate_id=str(self.id),
                aggregate_type="Budget",
                budget_id=str(self.id),
                requested_by=actor.id,
                changes=cleaned,
            )
        )
        return item

    def _append(
        self,
        actor: UserRef,
        target: BudgetStatus,
        details: AuditDetails,
        deadline: datetime | None,
        now: datetime,
    ) -> AuditTrailItem:
        """Commit one transition: audit item, deadline, updated_by, version."""
        item = AuditTrailItem(
            action=details.action,
            performed_by=actor,
            performed_at=now,
            from_status=self.status,
            to_status=target,
            details=details,
        )
        self.audit_trail = (*self.audit_trail, item)
        self.current_level_deadline = deadline
        self.updated_by = actor
        self._touch(now)
        return item
