"""
Dashboard API Endpoints

Overview payload backing the landing dashboard.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException

from ecommerce_metrics.analytics.schemas import DashboardOverview
from ecommerce_metrics.analytics.service import AnalyticsService
from ecommerce_metrics.exceptions import StorageUnavailable
from ecommerce_metrics.serving.api.dependencies import get_service

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/overview", response_model=DashboardOverview)
async def dashboard_overview(service: AnalyticsService = Depends(get_service)) -> DashboardOverview:
    """
    Today vs yesterday page views and sales, user counts, conversion rate,
    top products and the most recent orders.
    """
    try:
        return await service.dashboard_overview()
    except StorageUnavailable as e:
        logger.error("Dashboard overview failed", operation=e.operation, reason=e.reason)
        raise HTTPException(status_code=500, detail="Failed to fetch dashboard data") from e
