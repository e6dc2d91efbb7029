"""
Health check router.

Provides liveness and readiness endpoints.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..dependencies import ServiceContainer, get_container

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["health"])


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    timestamp: str
    service: str = "tutorsync"


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    ready: bool
    checks: dict
    timestamp: str


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
)
async def health_check(container: ServiceContainer = Depends(get_container)):
    """Always returns 200 OK if the service is running."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        service=container.settings.SERVICE_NAME,
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Checks that the record store and search index are reachable",
)
async def readiness_check(container: ServiceContainer = Depends(get_container)):
    """Returns 200 if both stores are reachable, 503 otherwise."""
    checks = {"database": "healthy", "search_index": "healthy"}

    if container.engine is not None:
        try:
            with container.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error("Database readiness check failed: %s", e)
            checks["database"] = "unhealthy"

    health_check = getattr(container.index, "health_check", None)
    if health_check is not None:
        index_health = await health_check()
        if index_health.get("status") != "available":
            checks["search_index"] = "unhealthy"

    ready = all(check == "healthy" for check in checks.values())
    response = ReadinessResponse(
        ready=ready, checks=checks, timestamp=datetime.now(timezone.utc).isoformat()
    )
    if not ready:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=response.model_dump()
        )
    return response
