"""API schemas for the BudgetFlow API.

Pydantic models for request/response validation and serialization.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from budgetflow.domain.deadlines import DeadlineState
from budgetflow.domain.entities import AuditAction
from budgetflow.domain.projections import BadgeVariant
from budgetflow.domain.state_machines import ApprovalAction, ApprovalLevel, BudgetStatus


# ============================================================================
# Common Schemas
# ============================================================================


class ErrorDetail(BaseModel):
    """Detailed error information."""

    field: str | None = Field(default=None, description="Field that caused the error")
    message: str = Field(..., description="Error message")


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: list[ErrorDetail] = Field(
        default_factory=list, description="Additional error details"
    )
    request_id: str | None = Field(
        default=None, description="Request ID for correlation"
    )


class PaginatedResponse(BaseModel):
    """Base paginated response."""

    total: int = Field(..., description="Total number of items")
    page: int = Field(..., description="Current page number")
    page_size: int = Field(..., description="Items per page")
    has_more: bool = Field(..., description="Whether there are more pages")


class UserSchema(BaseModel):
    """Reference to a user."""

    id: str
    first_name: str = ""
    last_name: str = ""
    email: str


# ============================================================================
# Budget Schemas
# ============================================================================


class BudgetCreateRequest(BaseModel):
    """Request to create a draft budget."""

    name: str = Field(..., min_length=1, max_length=255, description="Budget name")
    budget_id: str | None = Field(
        default=None, max_length=64, description="Optional caller-chosen identifier"
    )
    project_id: str | None = Field(default=None, description="Owning project")
    currency: str | None = Field(
        default=None, min_length=3, max_length=3, description="ISO 4217 currency code"
    )
    total_planned_cost: int = Field(
        default=0, ge=0, description="Planned total in minor currency units"
    )
    notes: str | None = Field(default=None, max_length=5000)


class BudgetUpdateRequest(BaseModel):
    """Request to edit a draft or revision-requested budget.

    Omitted fields are left unchanged; an empty ``notes`` clears the notes.
    """

    name: str | None = Field(default=None, min_length=1, max_length=255)
    notes: str | None = Field(default=None, max_length=5000)
    currency: str | None = Field(
        default=None, min_length=3, max_length=3, description="ISO 4217 currency code"
    )
    total_planned_cost: int | None = Field(
        default=None, ge=0, description="Planned total in minor currency units"
    )
    expected_status: BudgetStatus = Field(..., description="Status the caller last observed")


class SubmitRequest(BaseModel):
    """Request to submit a budget for approval."""

    approvers: list[str] = Field(
        default_factory=list, description="Approvers to notify of the submission"
    )
    expected_status: BudgetStatus = Field(..., description="Status the caller last observed")


class ApproveRequest(BaseModel):
    """Request to approve a budget at its current level."""

    comments: str | None = Field(default=None, max_length=5000)
    expected_status: BudgetStatus = Field(..., description="Status the caller last observed")


class RejectRequest(BaseModel):
    """Request to reject a budget."""

    reason: str = Field(..., max_length=5000, description="Why the budget is rejected")
    level: str | None = Field(
        default=None,
        description="Level rejecting the budget (1-3 or checker/manager/finance)",
    )
    expected_status: BudgetStatus = Field(..., description="Status the caller last observed")


class RevisionRequest(BaseModel):
    """Request to send a budget back for revision."""

    changes: list[str] = Field(
        default_factory=list, description="Changes the owner has to make"
    )
    comments: str | None = Field(default=None, max_length=5000)
    expected_status: BudgetStatus = Field(..., description="Status the caller last observed")


class AuditTrailItemSchema(BaseModel):
    """One audit trail entry."""

    action: AuditAction
    performed_by: UserSchema
    performed_at: datetime
    from_status: BudgetStatus
    to_status: BudgetStatus
    details: dict[str, Any] = Field(default_factory=dict)


class DeadlineStatusSchema(BaseModel):
    """Derived deadline classification."""

    status: DeadlineState
    text: str
    deadline: datetime | None = None


class ApprovalStepSchema(BaseModel):
    """One stage of the approval progress bar."""

    step: int
    title: str
    description: str
    completed: bool
    current: bool


class BudgetResponse(BaseModel):
    """Full budget with approval state."""

    id: str = Field(..., description="Budget identifier")
    name: str
    project_id: str | None = None
    currency: str
    total_planned_cost: int
    notes: str | None = None
    status: BudgetStatus
    status_label: str
    badge: BadgeVariant
    step: int = Field(..., description="Progress step ordinal, -1 when out of band")
    current_level: ApprovalLevel | None = None
    current_level_deadline: datetime | None = None
    deadline_status: DeadlineStatusSchema
    available_actions: list[ApprovalAction]
    submit_block_reason: str | None = None
    steps: list[ApprovalStepSchema]
    created_by: UserSchema
    updated_by: UserSchema
    audit_trail: list[AuditTrailItemSchema]
    version: int
    created_at: datetime
    updated_at: datetime


class BudgetSummarySchema(BaseModel):
    """Budget summary for list views."""

    id: str
    name: str
    project_id: str | None = None
    status: BudgetStatus
    badge: BadgeVariant
    current_level_deadline: datetime | None = None
    deadline_status: DeadlineState
    updated_at: datetime


class BudgetsListResponse(PaginatedResponse):
    """Paginated list of budgets."""

    items: list[BudgetSummarySchema] = Field(..., description="List of budgets")


class AuditTrailResponse(BaseModel):
    """A budget's audit trail."""

    budget_id: str
    status: BudgetStatus
    items: list[AuditTrailItemSchema]
