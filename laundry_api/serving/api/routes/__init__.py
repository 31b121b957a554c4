"""
API Routes Module
"""
from .health import router as health_router
from .analytics import router as analytics_router
from .dashboard import router as dashboard_router
from .customers import router as customers_router
from .products import router as products_router
from .orders import router as orders_router
from .super_admin import router as super_admin_router
from .users import router as users_router

__all__ = [
    "health_router",
    "analytics_router",
    "dashboard_router",
    "customers_router",
    "products_router",
    "orders_router",
    "super_admin_router",
    "users_router",
]
