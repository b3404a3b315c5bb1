"""
Health Check Endpoints

Provides health and readiness checks for orchestration systems.
"""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Request
from pydantic import BaseModel

from ecommerce_star.config import get_settings

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """
    Health check endpoint.

    Reports whether a star schema is loaded and its table sizes.
    """
    settings = get_settings()
    schema = getattr(request.app.state, "schema", None)

    if schema is None:
        checks = {"star_schema": {"status": "not_loaded"}}
        overall_status = "degraded"
    else:
        checks = {
            "star_schema": {
                "status": "loaded",
                "tables": {name: len(df) for name, df in schema.tables().items()},
                "integrity_clean": schema.integrity.is_clean if schema.integrity else None,
            }
        }
        overall_status = "healthy"

    return HealthResponse(
        status=overall_status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.utcnow(),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """Returns 200 if the application is running."""
    return {"status": "alive"}
