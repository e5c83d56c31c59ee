"""
Products API Endpoints

Ranked product engagement metrics.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from ecommerce_metrics.analytics.schemas import ProductAnalyticsResponse
from ecommerce_metrics.analytics.service import AnalyticsService
from ecommerce_metrics.exceptions import InvalidArgument, StorageUnavailable
from ecommerce_metrics.serving.api.dependencies import get_service

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/analytics", response_model=ProductAnalyticsResponse)
async def product_analytics(
    sort: Optional[str] = Query(None, description="views, cartAdds, viewToCartRate or price"),
    limit: int = Query(20, description="Number of products to return"),
    category: Optional[str] = Query(None, description="Only products in this category"),
    service: AnalyticsService = Depends(get_service),
) -> ProductAnalyticsResponse:
    """
    Products ranked by the requested field.

    An unknown sort field ranks by views and is reported through
    ``sortFallback``.
    """
    try:
        return await service.product_analytics(sort=sort, limit=limit, category=category)
    except InvalidArgument as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except StorageUnavailable as e:
        logger.error("Product analytics failed", operation=e.operation, reason=e.reason)
        raise HTTPException(status_code=500, detail="Failed to fetch product analytics") from e
