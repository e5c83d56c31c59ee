"""
API Routes Module
"""
from .dashboard import router as dashboard_router
from .health import router as health_router
from .products import router as products_router
from .realtime import router as realtime_router
from .sales import router as sales_router
from .search import router as search_router
from .users import router as users_router

__all__ = [
    "dashboard_router",
    "health_router",
    "products_router",
    "realtime_router",
    "sales_router",
    "search_router",
    "users_router",
]
