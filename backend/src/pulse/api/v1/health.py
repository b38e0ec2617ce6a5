"""Health check endpoints for liveness and readiness probes."""
from datetime import datetime

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from pulse.database import engine

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health", status_code=status.HTTP_200_OK, tags=["Health"])
async def health_check() -> dict[str, str]:
    """
    Liveness probe.

    Does not check external dependencies.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": "0.1.0",
    }


@router.get("/health/ready", tags=["Health"])
async def readiness_check(request: Request) -> JSONResponse:
    """
    Readiness probe.

    Returns 200 only if the database and Redis answer.
    """
    checks = {
        "database": "unknown",
        "redis": "unknown",
    }
    ready = True

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "connected"
    except Exception as exc:
        logger.error("database_health_check_failed", error=str(exc))
        checks["database"] = "disconnected"
        ready = False

    if await request.app.state.cache.ping():
        checks["redis"] = "connected"
    else:
        checks["redis"] = "disconnected"
        ready = False

    status_code = status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE

    return JSONResponse(
        status_code=status_code,
        content={
            "ready": ready,
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
