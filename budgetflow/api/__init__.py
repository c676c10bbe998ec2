"""API layer module.

Contains FastAPI routers and request/response schemas.
"""

from budgetflow.api.budgets import router as budgets_router
from budgetflow.api.health import router as health_router

__all__ = [
    "budgets_router",
    "health_router",
]
