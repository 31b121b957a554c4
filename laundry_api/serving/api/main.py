"""
FastAPI Application Factory

Creates and configures the main API application: middleware, error
handlers and the versioned routers.
"""

from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
import structlog

from laundry_api.config import get_settings
from laundry_api.serving.api.middleware import (
    RateLimitMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from laundry_api.serving.api.routes import (
    analytics_router,
    customers_router,
    dashboard_router,
    health_router,
    orders_router,
    products_router,
    super_admin_router,
    users_router,
)

settings = get_settings()
logger = structlog.get_logger(__name__)

API_PREFIX = "/api/v1"


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed query parameters or bodies are client errors (400)."""
    logger.warning("Request validation failed", path=request.url.path, errors=len(exc.errors()))
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())},
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(
        "Database error",
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_api_app(lifespan: Optional[Callable] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        lifespan: Startup/shutdown context manager; tests build the app
            without one and override the database dependencies instead

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="Laundry Marketplace API",
        description="Multi-tenant laundry marketplace with order and customer analytics",
        version=settings.version,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Compression
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # Custom middleware
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    if settings.security.rate_limit_enabled:
        app.add_middleware(
            RateLimitMiddleware,
            max_requests=settings.security.rate_limit_requests,
            window_seconds=settings.security.rate_limit_window_seconds,
            exempt_prefixes=(f"{API_PREFIX}/health",),
        )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)

    # API routes
    app.include_router(health_router, prefix=API_PREFIX, tags=["Health"])
    app.include_router(analytics_router, prefix=f"{API_PREFIX}/admin/analytics", tags=["Admin Analytics"])
    app.include_router(dashboard_router, prefix=f"{API_PREFIX}/admin/dashboard", tags=["Admin Dashboard"])
    app.include_router(customers_router, prefix=f"{API_PREFIX}/admin/customers", tags=["Admin Customers"])
    app.include_router(products_router, prefix=f"{API_PREFIX}/admin/products", tags=["Admin Products"])
    app.include_router(orders_router, prefix=f"{API_PREFIX}/admin/orders", tags=["Admin Orders"])
    app.include_router(super_admin_router, prefix=f"{API_PREFIX}/super-admin", tags=["Super Admin"])
    app.include_router(users_router, prefix=f"{API_PREFIX}/user", tags=["User"])

    return app
