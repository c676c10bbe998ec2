"""Domain exceptions.

Errors raised by the budget approval workflow when an operation is not
legal. Each carries a machine-readable ``error_code`` and structured
``details`` so the application layer can turn it into a result value
without parsing messages.
"""

from typing import Any


class DomainError(Exception):
    """Base class for all domain exceptions."""

    error_code: str = "DOMAIN_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# State Machine Errors
# ============================================================================


class InvalidTransitionError(DomainError):
    """Raised when an operation is not legal from the budget's current status."""

    error_code = "INVALID_TRANSITION"

    def __init__(
        self,
        budget_id: str,
        action: str,
        current_status: str,
        allowed_statuses: list[str] | None = None,
    ) -> None:
        """Initialize invalid transition error.

        Args:
            budget_id: ID of the budget.
            action: Attempted action (submit, approve, reject, revise).
            current_status: Status the budget is in.
            allowed_statuses: Statuses from which the action is legal.
        """
        allowed = allowed_statuses or []
        super().__init__(
            f"Cannot {action} budget {budget_id} in status '{current_status}'. "
            f"Allowed from: {allowed}",
            details={
                "budget_id": budget_id,
                "action": action,
                "current_status": current_status,
                "allowed_statuses": allowed,
            },
        )


class ConcurrentModificationError(InvalidTransitionError):
    """Raised when the persisted status diverged from what the caller observed.

    The caller should reload the budget and retry the user-facing action
    from scratch.
    """

    error_code = "CONCURRENT_MODIFICATION"

    def __init__(self, budget_id: str, expected_status: str, actual_status: str) -> None:
        DomainError.__init__(
            self,
            f"Budget {budget_id} was modified concurrently: "
            f"expected status '{expected_status}', found '{actual_status}'",
            details={
                "budget_id": budget_id,
                "expected_status": expected_status,
                "actual_status": actual_status,
            },
        )


# ============================================================================
# Lookup / Input Errors
# ============================================================================


class BudgetNotFoundError(DomainError):
    """Raised when a budget identifier is unknown."""

    error_code = "BUDGET_NOT_FOUND"

    def __init__(self, budget_id: str) -> None:
        super().__init__(
            f"Budget not found: {budget_id}",
            details={"budget_id": budget_id},
        )


class ValidationError(DomainError):
    """Raised when a required payload field is missing or malformed.

    Raised before any state mutation.
    """

    error_code = "VALIDATION_ERROR"

    def __init__(self, field_name: str, reason: str) -> None:
        """Initialize validation error.

        Args:
            field_name: Payload field that failed validation.
            reason: Explanation of what is wrong with it.
        """
        super().__init__(
            f"Invalid {field_name}: {reason}",
            details={"field": field_name, "reason": reason},
        )
        self.field_name = field_name
