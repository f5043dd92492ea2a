from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy import text

from app.core.dependencies import Container, get_container

logger = structlog.get_logger()

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
    environment: str


@router.get("", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health_check(container: Container = Depends(get_container)):
    """Health check endpoint"""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version="1.0.0",
        environment=container.settings.environment,
    )


@router.get("/readiness")
async def readiness_check(container: Container = Depends(get_container)):
    """Readiness check endpoint"""
    settings = container.settings
    checks = {"database": "ok"}
    try:
        with container.database.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database readiness check failed", error=str(e))
        checks["database"] = "error"

    if settings.ai_provider.lower() == "gemini":
        checks["ai_provider"] = "ok" if settings.gemini_api_key else "not_configured"
    else:
        checks["ai_provider"] = "ok" if settings.openai_api_key else "not_configured"

    # Only the database gates readiness
    return {
        "status": "ready" if checks["database"] == "ok" else "not_ready",
        "checks": checks,
        "timestamp": datetime.now(timezone.utc),
    }
