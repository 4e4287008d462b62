"""
Health Check Endpoints

Provides health and readiness checks for orchestration systems.
"""

from datetime import datetime, timezone
from typing import Dict, Any

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from analytics_pipeline.config import get_settings
from analytics_pipeline.pipeline import AnalyticsPipeline
from analytics_pipeline.serving.dependencies import get_pipeline

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(pipeline: AnalyticsPipeline = Depends(get_pipeline)) -> HealthResponse:
    """
    Comprehensive health check endpoint.

    The projection store is critical; a stopped consumer, scheduler or
    publisher only degrades the service.
    """
    settings = get_settings()
    checks = await pipeline.health()

    overall_status = "healthy"
    if checks["projection_store"].get("status") != "healthy":
        overall_status = "unhealthy"
    elif any(check.get("status") != "healthy" for check in checks.values()):
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """
    Kubernetes liveness probe endpoint.

    Returns 200 if the application is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(
    response: Response,
    pipeline: AnalyticsPipeline = Depends(get_pipeline),
) -> Dict[str, str]:
    """
    Kubernetes readiness probe endpoint.

    Ready once the projection store answers and the scheduler is ticking.
    """
    checks = await pipeline.health()

    if checks["projection_store"].get("status") != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "projection_store_unavailable"}

    if checks["scheduler"]["status"] != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "scheduler_stopped"}

    return {"status": "ready"}
