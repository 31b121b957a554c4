"""
Health Endpoints

Liveness and readiness probes for the orchestrator, plus build information.
"""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Response
from pydantic import BaseModel

from laundry_api.config import get_settings
from laundry_api.database.connection import check_database_health
from laundry_api.database.models import utcnow

settings = get_settings()
router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Overall status; ``degraded`` when the database does not answer."""
    database = await check_database_health()
    return HealthResponse(
        status="healthy" if database["status"] == "healthy" else "degraded",
        version=settings.version,
        environment=settings.app_env,
        timestamp=utcnow(),
        checks={"database": database},
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(response: Response) -> Dict[str, str]:
    """503 until the database answers, so no traffic reaches a worker without one."""
    database = await check_database_health()
    if database["status"] != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}
    return {"status": "ready"}


@router.get("/info")
async def api_info() -> Dict[str, str]:
    return {
        "name": settings.app_name,
        "version": settings.version,
        "environment": settings.app_env,
        "documentation": "/docs" if settings.is_development else "",
    }
