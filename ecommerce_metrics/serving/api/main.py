"""
FastAPI Application Factory

Creates the API application around an ``AnalyticsRuntime``; the lifespan
starts the runtime before the first request and stops it on shutdown.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from ecommerce_metrics.config import Settings, get_settings
from ecommerce_metrics.config.logging import configure_logging
from ecommerce_metrics.runtime import AnalyticsRuntime
from ecommerce_metrics.serving.api.middleware import RequestLoggingMiddleware
from ecommerce_metrics.serving.api.routes import (
    dashboard_router,
    health_router,
    products_router,
    realtime_router,
    sales_router,
    search_router,
    users_router,
)

logger = structlog.get_logger(__name__)


def create_api_app(
    settings: Optional[Settings] = None,
    runtime: Optional[AnalyticsRuntime] = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Application settings (cached settings if omitted)
        runtime: A prebuilt runtime, e.g. one bound to a test database

    Returns:
        Configured FastAPI app instance
    """
    settings = settings or (runtime.settings if runtime else get_settings())
    runtime = runtime or AnalyticsRuntime(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings=settings)
        logger.info("Starting E-Commerce Metrics API", environment=settings.app_env)
        await runtime.start()
        yield
        logger.info("Shutting down...")
        await runtime.stop()

    app = FastAPI(
        title="E-Commerce Metrics API",
        description="Dashboard, product, user, sales, search and real-time analytics",
        version=settings.version,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router, prefix="/api", tags=["Health"])
    app.include_router(dashboard_router, prefix="/api/dashboard", tags=["Dashboard"])
    app.include_router(products_router, prefix="/api/products", tags=["Products"])
    app.include_router(users_router, prefix="/api/users", tags=["Users"])
    app.include_router(sales_router, prefix="/api/sales", tags=["Sales"])
    app.include_router(search_router, prefix="/api/search", tags=["Search"])
    app.include_router(realtime_router, prefix="/api/realtime", tags=["Realtime"])

    @app.get("/api/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": "E-Commerce Metrics API",
            "version": settings.version,
            "environment": settings.app_env,
        }

    return app
