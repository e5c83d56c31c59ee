"""
Request dependencies resolving the process runtime from application state.
"""

from fastapi import Depends, Request

from ecommerce_metrics.analytics.service import AnalyticsService
from ecommerce_metrics.runtime import AnalyticsRuntime


def get_runtime(request: Request) -> AnalyticsRuntime:
    return request.app.state.runtime


def get_service(runtime: AnalyticsRuntime = Depends(get_runtime)) -> AnalyticsService:
    return runtime.service
