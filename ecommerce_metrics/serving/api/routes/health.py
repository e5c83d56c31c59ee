"""
Health Check Endpoints

Provides health and readiness checks for orchestration systems, and the
Prometheus scrape endpoint.
"""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from ecommerce_metrics.runtime import AnalyticsRuntime
from ecommerce_metrics.serving.api.dependencies import get_runtime
from ecommerce_metrics.utils.time import utc_now

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(runtime: AnalyticsRuntime = Depends(get_runtime)) -> HealthResponse:
    """
    Comprehensive health check endpoint.

    Checks:
    - Database connectivity
    - Real-time stream consumer state
    """
    checks = await runtime.health()
    overall_status = "healthy"

    if checks["database"].get("status") != "healthy":
        overall_status = "unhealthy"
    elif checks.get("stream", {}).get("status") == "failed":
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        version=runtime.settings.version,
        environment=runtime.settings.app_env,
        timestamp=utc_now(),
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
async def readiness_check(response: Response, runtime: AnalyticsRuntime = Depends(get_runtime)) -> Dict[str, str]:
    """
    Kubernetes readiness probe endpoint.

    Returns 503 until the metric store answers.
    """
    db_health = await runtime.database.health()
    if db_health.get("status") != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}
    return {"status": "ready"}


@router.get("/metrics", response_class=PlainTextResponse, include_in_schema=False)
async def prometheus_metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
