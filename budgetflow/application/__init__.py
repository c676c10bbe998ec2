"""Application layer module.

Contains the application service that runs the budget approval use cases
against the domain and the repository.
"""

from budgetflow.application.approval_service import (
    ApprovalResult,
    BudgetApprovalService,
    DeadlineResult,
    ListBudgetsResult,
    get_budget_approval_service,
)

__all__ = [
    "ApprovalResult",
    "BudgetApprovalService",
    "DeadlineResult",
    "ListBudgetsResult",
    "get_budget_approval_service",
]
