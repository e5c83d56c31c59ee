"""
Real-Time API Endpoints
"""

from typing import List

import structlog
from fastapi import APIRouter, Depends, HTTPException

from ecommerce_metrics.analytics.schemas import RealtimeSample
from ecommerce_metrics.analytics.service import AnalyticsService
from ecommerce_metrics.exceptions import StorageUnavailable
from ecommerce_metrics.serving.api.dependencies import get_service

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/metrics", response_model=List[RealtimeSample])
async def realtime_metrics(service: AnalyticsService = Depends(get_service)) -> List[RealtimeSample]:
    """Minute-level samples from the last hour, oldest first."""
    try:
        return await service.realtime_metrics()
    except StorageUnavailable as e:
        logger.error("Realtime metrics failed", operation=e.operation, reason=e.reason)
        raise HTTPException(status_code=500, detail="Failed to fetch real-time metrics") from e
