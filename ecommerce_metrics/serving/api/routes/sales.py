"""
Sales API Endpoints

Time-bucketed revenue and the payment method breakdown.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from ecommerce_metrics.analytics.schemas import SalesAnalyticsResponse
from ecommerce_metrics.analytics.service import AnalyticsService
from ecommerce_metrics.exceptions import InvalidArgument, StorageUnavailable
from ecommerce_metrics.serving.api.dependencies import get_service

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/analytics", response_model=SalesAnalyticsResponse)
async def sales_analytics(
    period: str = Query("daily", description="hourly, daily, weekly or monthly"),
    service: AnalyticsService = Depends(get_service),
) -> SalesAnalyticsResponse:
    """
    Sales grouped by period over its lookback window:

    - hourly: last 24 hours
    - daily: last 30 days
    - weekly: last 12 ISO weeks
    - monthly: last 12 months
    """
    try:
        return await service.sales_analytics(period=period)
    except InvalidArgument as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except StorageUnavailable as e:
        logger.error("Sales analytics failed", operation=e.operation, reason=e.reason)
        raise HTTPException(status_code=500, detail="Failed to fetch sales analytics") from e
