"""Budget API endpoints.

Provides endpoints for the budget approval lifecycle:
- POST /budgets - create a draft budget
- GET /budgets - list budgets (paginated)
- GET /budgets/{id} - budget details and approval state
- PATCH /budgets/{id} - edit a draft or revision-requested budget
- DELETE /budgets/{id} - delete a draft
- POST /budgets/{id}/submit - submit for approval
- POST /budgets/{id}/approve - approve at the current level
- POST /budgets/{id}/reject - reject (terminal)
- POST /budgets/{id}/request-revision - send back to the owner
- GET /budgets/{id}/deadline-status - classify the current level deadline
- GET /budgets/{id}/audit-trail - full audit trail
"""

from datetime import datetime, timedelta

from fastapi import APIRouter, HTTPException, Query, Response, status

from budgetflow.api.dependencies import CurrentUserDep, ServiceDep
from budgetflow.api.schemas import (
    ApprovalStepSchema,
    ApproveRequest,
    AuditTrailItemSchema,
    AuditTrailResponse,
    BudgetCreateRequest,
    BudgetResponse,
    BudgetsListResponse,
    BudgetSummarySchema,
    BudgetUpdateRequest,
    DeadlineStatusSchema,
    ErrorResponse,
    RejectRequest,
    RevisionRequest,
    SubmitRequest,
    UserSchema,
)
from budgetflow.application.approval_service import ApprovalResult
from budgetflow.domain.deadlines import deadline_status
from budgetflow.domain.entities import AuditTrailItem, BudgetApproval
from budgetflow.domain.projections import (
    approval_steps,
    status_badge,
    status_label,
    submit_block_reason,
)
from budgetflow.domain.state_machines import BudgetStatus
from budgetflow.domain.value_objects import UserRef

router = APIRouter(prefix="/budgets", tags=["Budgets"])

_STATUS_BY_ERROR_CODE = {
    "BUDGET_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "BUDGET_EXISTS": status.HTTP_409_CONFLICT,
    "INVALID_TRANSITION": status.HTTP_409_CONFLICT,
    "CONCURRENT_MODIFICATION": status.HTTP_409_CONFLICT,
    "VALIDATION_ERROR": status.HTTP_422_UNPROCESSABLE_ENTITY,
}

_ERROR_RESPONSES = {
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


# ============================================================================
# Converters
# ============================================================================


def user_to_schema(user: UserRef) -> UserSchema:
    """Convert UserRef to UserSchema."""
    return UserSchema(
        id=user.id,
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
    )


def audit_item_to_schema(item: AuditTrailItem) -> AuditTrailItemSchema:
    """Convert AuditTrailItem to AuditTrailItemSchema."""
    return AuditTrailItemSchema(
        action=item.action,
        performed_by=user_to_schema(item.performed_by),
        performed_at=item.performed_at,
        from_status=item.from_status,
        to_status=item.to_status,
        details=item.details.to_dict(),
    )


def budget_to_response(
    budget: BudgetApproval,
    now: datetime,
    due_soon_window: timedelta,
) -> BudgetResponse:
    """Convert BudgetApproval to BudgetResponse."""
    budget_status = budget.status
    deadline = deadline_status(budget.current_level_deadline, now, due_soon_window)

    return BudgetResponse(
        id=str(budget.id),
        name=budget.name,
        project_id=budget.project_id,
        currency=budget.currency,
        total_planned_cost=budget.total_planned_cost,
        notes=budget.notes,
        status=budget_status,
        status_label=status_label(budget_status),
        badge=status_badge(budget_status),
        step=budget.step,
        current_level=budget.current_level,
        current_level_deadline=budget.current_level_deadline,
        deadline_status=DeadlineStatusSchema(
            status=deadline.status,
            text=deadline.text,
            deadline=budget.current_level_deadline,
        ),
        available_actions=budget.available_actions(),
        submit_block_reason=submit_block_reason(budget_status),
        steps=[
            ApprovalStepSchema(
                step=s.step,
                title=s.title,
                description=s.description,
                completed=s.completed,
                current=s.current,
            )
            for s in approval_steps(budget_status)
        ],
        created_by=user_to_schema(budget.created_by),
        updated_by=user_to_schema(budget.updated_by),
        audit_trail=[audit_item_to_schema(item) for item in budget.audit_trail],
        version=budget.version,
        created_at=budget.created_at,
        updated_at=budget.updated_at,
    )


def budget_to_summary(
    budget: BudgetApproval,
    now: datetime,
    due_soon_window: timedelta,
) -> BudgetSummarySchema:
    """Convert BudgetApproval to BudgetSummarySchema."""
    budget_status = budget.status
    return BudgetSummarySchema(
        id=str(budget.id),
        name=budget.name,
        project_id=budget.project_id,
        status=budget_status,
        badge=status_badge(budget_status),
        current_level_deadline=budget.current_level_deadline,
        deadline_status=deadline_status(
            budget.current_level_deadline, now, due_soon_window
        ).status,
        updated_at=budget.updated_at,
    )


def raise_for_result(result: ApprovalResult, fallback_code: str) -> BudgetApproval:
    """Return the result's budget or raise the matching HTTP error.

    Args:
        result: Service result.
        fallback_code: Error code used when the service supplied none.

    Returns:
        The budget carried by a successful result.

    Raises:
        HTTPException: 404/409/422 depending on the error code.
    """
    if result.success and result.budget is not None:
        return result.budget

    error_code = result.error_code or fallback_code
    details = []
    field_name = result.error_details.get("field")
    if field_name:
        details.append({"field": field_name, "message": result.error or ""})

    raise HTTPException(
        status_code=_STATUS_BY_ERROR_CODE.get(error_code, status.HTTP_400_BAD_REQUEST),
        detail={
            "error_code": error_code,
            "message": result.error or "Budget operation failed",
            "details": details,
        },
    )


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "",
    response_model=BudgetResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERROR_RESPONSES,
    summary="Create budget",
    description="Create a budget in draft status.",
)
async def create_budget(
    request: BudgetCreateRequest,
    service: ServiceDep,
    user: CurrentUserDep,
) -> BudgetResponse:
    """Create a draft budget owned by the calling user.

    Args:
        request: Budget fields.
        service: Budget approval service.
        user: Calling user.

    Returns:
        The created budget.
    """
    result = await service.create_budget(
        created_by=user,
        name=request.name,
        project_id=request.project_id,
        currency=request.currency,
        total_planned_cost=request.total_planned_cost,
        notes=request.notes,
        budget_id=request.budget_id,
    )
    budget = raise_for_result(result, "CREATE_FAILED")
    return budget_to_response(budget, service.clock(), service.due_soon_window)


@router.get(
    "",
    response_model=BudgetsListResponse,
    responses={401: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    summary="List budgets",
    description="Get a paginated list of budgets with optional filtering.",
)
async def list_budgets(
    service: ServiceDep,
    page: int = Query(default=1, ge=1, description="Page number"),
    page_size: int = Query(default=20, ge=1, le=100, description="Items per page"),
    status_filter: str | None = Query(
        default=None, alias="status", description="Filter by status"
    ),
    project_id: str | None = Query(default=None, description="Filter by project"),
) -> BudgetsListResponse:
    """List budgets with pagination and filtering.

    Args:
        service: Budget approval service.
        page: Page number (1-based).
        page_size: Items per page.
        status_filter: Filter by budget status.
        project_id: Filter by project.

    Returns:
        Paginated list of budgets.
    """
    result = await service.list_budgets(
        page=page,
        page_size=page_size,
        status=status_filter,
        project_id=project_id,
    )
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "error_code": "VALIDATION_ERROR",
                "message": result.error or "Invalid filter",
                "details": [{"field": "status", "message": result.error or ""}],
            },
        )

    now = service.clock()
    return BudgetsListResponse(
        items=[budget_to_summary(b, now, service.due_soon_window) for b in result.budgets],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        has_more=(result.page * result.page_size) < result.total,
    )


@router.get(
    "/{budget_id}",
    response_model=BudgetResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Get budget details",
)
async def get_budget(budget_id: str, service: ServiceDep) -> BudgetResponse:
    """Get a budget by ID, including its derived approval state."""
    result = await service.get_budget(budget_id)
    budget = raise_for_result(result, "BUDGET_NOT_FOUND")
    return budget_to_response(budget, service.clock(), service.due_soon_window)


@router.patch(
    "/{budget_id}",
    response_model=BudgetResponse,
    responses=_ERROR_RESPONSES,
    summary="Update budget",
    description="Edit the name, notes, planned cost or currency of a draft or "
    "revision-requested budget.",
)
async def update_budget(
    budget_id: str,
    request: BudgetUpdateRequest,
    service: ServiceDep,
    user: CurrentUserDep,
) -> BudgetResponse:
    """Edit a budget's descriptive fields.

    Raises:
        HTTPException: If the budget is missing, no longer editable, or the
            observed status is stale.
    """
    result = await service.update_budget(
        budget_id,
        user,
        expected_status=request.expected_status,
        name=request.name,
        notes=request.notes,
        total_planned_cost=request.total_planned_cost,
        currency=request.currency,
    )
    budget = raise_for_result(result, "UPDATE_FAILED")
    return budget_to_response(budget, service.clock(), service.due_soon_window)


@router.delete(
    "/{budget_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_ERROR_RESPONSES,
    summary="Delete budget",
    description="Delete a draft budget.",
)
async def delete_budget(
    budget_id: str,
    service: ServiceDep,
    user: CurrentUserDep,
    expected_status: BudgetStatus = Query(..., description="Status the caller last observed"),
) -> Response:
    """Delete a budget that never entered the approval flow."""
    result = await service.delete_budget(budget_id, user, expected_status=expected_status)
    raise_for_result(result, "DELETE_FAILED")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{budget_id}/submit",
    response_model=BudgetResponse,
    responses=_ERROR_RESPONSES,
    summary="Submit budget",
    description="Submit a draft or revision-requested budget for checker approval.",
)
async def submit_budget(
    budget_id: str,
    service: ServiceDep,
    user: CurrentUserDep,
    request: SubmitRequest,
) -> BudgetResponse:
    """Submit a budget for approval.

    Args:
        budget_id: Budget identifier.
        service: Budget approval service.
        user: Submitting user.
        request: Approvers to notify and the observed status.

    Returns:
        Budget pending checker approval.

    Raises:
        HTTPException: If the budget is missing or cannot be submitted.
    """
    result = await service.submit(
        budget_id,
        user,
        approvers=tuple(request.approvers),
        expected_status=request.expected_status,
    )
    budget = raise_for_result(result, "SUBMIT_FAILED")
    return budget_to_response(budget, service.clock(), service.due_soon_window)


@router.post(
    "/{budget_id}/approve",
    response_model=BudgetResponse,
    responses=_ERROR_RESPONSES,
    summary="Approve budget",
    description="Approve the budget at its current level and advance it one level.",
)
async def approve_budget(
    budget_id: str,
    service: ServiceDep,
    user: CurrentUserDep,
    request: ApproveRequest,
) -> BudgetResponse:
    """Approve a budget at its current level.

    A budget pending finance approval becomes ``approved``.

    Raises:
        HTTPException: If the budget is missing or not pending approval.
    """
    result = await service.approve(
        budget_id,
        user,
        comments=request.comments,
        expected_status=request.expected_status,
    )
    budget = raise_for_result(result, "APPROVE_FAILED")
    return budget_to_response(budget, service.clock(), service.due_soon_window)


@router.post(
    "/{budget_id}/reject",
    response_model=BudgetResponse,
    responses=_ERROR_RESPONSES,
    summary="Reject budget",
    description="Reject a pending budget. Rejection is final.",
)
async def reject_budget(
    budget_id: str,
    request: RejectRequest,
    service: ServiceDep,
    user: CurrentUserDep,
) -> BudgetResponse:
    """Reject a budget with a reason."""
    result = await service.reject(
        budget_id,
        user,
        reason=request.reason,
        level=request.level,
        expected_status=request.expected_status,
    )
    budget = raise_for_result(result, "REJECT_FAILED")
    return budget_to_response(budget, service.clock(), service.due_soon_window)


@router.post(
    "/{budget_id}/request-revision",
    response_model=BudgetResponse,
    responses=_ERROR_RESPONSES,
    summary="Request revision",
    description="Send a pending budget back to its owner with required changes.",
)
async def request_revision(
    budget_id: str,
    request: RevisionRequest,
    service: ServiceDep,
    user: CurrentUserDep,
) -> BudgetResponse:
    """Request changes on a budget.

    The owner edits the budget and resubmits it, which restarts
    approval at the checker level.
    """
    result = await service.request_revision(
        budget_id,
        user,
        changes=request.changes,
        comments=request.comments,
        expected_status=request.expected_status,
    )
    budget = raise_for_result(result, "REVISION_FAILED")
    return budget_to_response(budget, service.clock(), service.due_soon_window)


@router.get(
    "/{budget_id}/deadline-status",
    response_model=DeadlineStatusSchema,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Get deadline status",
)
async def get_deadline_status(budget_id: str, service: ServiceDep) -> DeadlineStatusSchema:
    """Classify the budget's current level deadline."""
    result = await service.get_deadline_status(budget_id)
    if not result.success or result.status is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error_code": result.error_code or "BUDGET_NOT_FOUND",
                "message": result.error or f"Budget not found: {budget_id}",
            },
        )
    return DeadlineStatusSchema(
        status=result.status.status,
        text=result.status.text,
        deadline=result.deadline,
    )


@router.get(
    "/{budget_id}/audit-trail",
    response_model=AuditTrailResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Get audit trail",
)
async def get_audit_trail(budget_id: str, service: ServiceDep) -> AuditTrailResponse:
    """Get the budget's audit trail in chronological order."""
    result = await service.get_budget(budget_id)
    budget = raise_for_result(result, "BUDGET_NOT_FOUND")
    return AuditTrailResponse(
        budget_id=str(budget.id),
        status=budget.status,
        items=[audit_item_to_schema(item) for item in budget.audit_trail],
    )
