"""
Search API Endpoints
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException

from ecommerce_metrics.analytics.schemas import SearchAnalyticsResponse
from ecommerce_metrics.analytics.service import AnalyticsService
from ecommerce_metrics.exceptions import StorageUnavailable
from ecommerce_metrics.serving.api.dependencies import get_service

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/analytics", response_model=SearchAnalyticsResponse)
async def search_analytics(service: AnalyticsService = Depends(get_service)) -> SearchAnalyticsResponse:
    """Most frequent search terms and the queries that returned nothing."""
    try:
        return await service.search_analytics()
    except StorageUnavailable as e:
        logger.error("Search analytics failed", operation=e.operation, reason=e.reason)
        raise HTTPException(status_code=500, detail="Failed to fetch search analytics") from e
