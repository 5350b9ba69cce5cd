"""Health check endpoints."""

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from storepulse.core.config import settings
from storepulse.core.deps import get_db
from storepulse.schemas.common import HealthResponse
from storepulse.workers.celery_app import celery_app

router = APIRouter(tags=["health"])


def _ping_broker() -> None:
    with celery_app.connection_for_write() as conn:
        conn.ensure_connection(max_retries=1)


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """
    Health check endpoint.

    Checks database and queue broker connectivity and returns service status.
    """
    health_status: dict[str, Any] = {
        "status": "healthy",
        "version": settings.version,
        "environment": settings.environment,
        "checks": {},
    }

    # Check database connection
    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = "healthy"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"unhealthy: {str(e)}"

    # Check broker connection
    try:
        await run_in_threadpool(_ping_broker)
        health_status["checks"]["broker"] = "healthy"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["broker"] = f"unhealthy: {str(e)}"

    return health_status


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness probe for Kubernetes/container orchestration.

    Simple check that the service is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(
    db: AsyncSession = Depends(get_db),
) -> dict[str, str]:
    """
    Readiness probe for Kubernetes/container orchestration.

    Checks if the service is ready to receive traffic.
    """
    await db.execute(text("SELECT 1"))

    return {"status": "ready"}
