"""Health check endpoints.

Provides endpoints for monitoring service health and readiness.
"""

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text

from budgetflow.infrastructure.config import settings
from budgetflow.infrastructure.database import session_scope

logger = structlog.get_logger()

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    service: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check service health.

    Returns:
        Health status with service name and version.
    """
    return HealthResponse(
        status="healthy",
        service="budgetflow-api",
        version=settings.api_version,
    )


@router.get("/ready")
async def readiness_check():
    """Check if service is ready to accept requests.

    With the SQL backend the database must answer a trivial query.

    Returns:
        Readiness status, or 503 when storage is unreachable.
    """
    if settings.storage_backend == "sql":
        try:
            async with session_scope() as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            logger.warning("Readiness check failed", error=str(e))
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "unavailable", "storage": settings.storage_backend},
            )
    return {"status": "ready", "storage": settings.storage_backend}
