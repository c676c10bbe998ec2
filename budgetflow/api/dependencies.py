"""Request-scoped dependencies shared by the routers."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from budgetflow.application.approval_service import (
    BudgetApprovalService,
    get_budget_approval_service,
)
from budgetflow.domain.exceptions import ValidationError
from budgetflow.domain.value_objects import UserRef


def get_service(request: Request) -> BudgetApprovalService:
    """Get budget approval service with request ID."""
    request_id = getattr(request.state, "request_id", None)
    return get_budget_approval_service(request_id=request_id)


def get_current_user(
    user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
    email: Annotated[str | None, Header(alias="X-User-Email")] = None,
    first_name: Annotated[str, Header(alias="X-User-First-Name")] = "",
    last_name: Annotated[str, Header(alias="X-User-Last-Name")] = "",
) -> UserRef:
    """Identify the user performing the action.

    The upstream gateway authenticates the user and forwards identity
    headers; this service only records who acted.

    Raises:
        HTTPException: 401 when identity headers are missing, 422 when malformed.
    """
    if not user_id or not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "MISSING_USER",
                "message": "X-User-Id and X-User-Email headers are required",
            },
        )
    try:
        return UserRef(id=user_id, email=email, first_name=first_name, last_name=last_name)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "error_code": e.error_code,
                "message": e.message,
                "details": [{"field": e.field_name, "message": e.message}],
            },
        ) from e


ServiceDep = Annotated[BudgetApprovalService, Depends(get_service)]
CurrentUserDep = Annotated[UserRef, Depends(get_current_user)]
