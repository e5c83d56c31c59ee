"""
Users API Endpoints
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from ecommerce_metrics.analytics.schemas import UserAnalyticsResponse
from ecommerce_metrics.analytics.service import AnalyticsService
from ecommerce_metrics.exceptions import InvalidArgument, StorageUnavailable
from ecommerce_metrics.serving.api.dependencies import get_service

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/analytics", response_model=UserAnalyticsResponse)
async def user_analytics(
    limit: int = Query(20, description="Number of top spenders to return"),
    service: AnalyticsService = Depends(get_service),
) -> UserAnalyticsResponse:
    """Top spenders plus new, returning and total user counts."""
    try:
        return await service.user_analytics(limit=limit)
    except InvalidArgument as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except StorageUnavailable as e:
        logger.error("User analytics failed", operation=e.operation, reason=e.reason)
        raise HTTPException(status_code=500, detail="Failed to fetch user analytics") from e
