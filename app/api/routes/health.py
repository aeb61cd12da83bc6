"""
Health Check Endpoints

Liveness and readiness probes for the booking service.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.config import settings
from app.infra.database import check_db_health
from app.infra.notifications import get_notification_outbox
from app.infra.redis import check_redis_health

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

VERSION = "1.0.0"

_start_time: Optional[datetime] = None


def set_start_time() -> None:
    """Record application start. Called once from the lifespan."""
    global _start_time
    _start_time = datetime.now(timezone.utc)


def get_uptime_seconds() -> Optional[float]:
    if _start_time is None:
        return None
    return (datetime.now(timezone.utc) - _start_time).total_seconds()


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
    environment: str
    uptime_seconds: Optional[float] = None


class ReadyResponse(BaseModel):
    """Readiness with per-dependency results."""
    status: str
    timestamp: datetime
    checks: dict[str, str]
    pending_notifications: int = 0


async def run_checks() -> dict[str, str]:
    """Probe PostgreSQL and Redis. Values are "ok", "failed" or "error"."""
    checks: dict[str, str] = {}
    probes = (("database", check_db_health), ("redis", check_redis_health))

    for name, probe in probes:
        try:
            checks[name] = "ok" if await probe() else "failed"
        except Exception as e:
            checks[name] = "error"
            logger.error(f"Readiness check: {name} error - {type(e).__name__}")

    return checks


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
)
async def health() -> HealthResponse:
    """Always 200 while the process runs. Dependencies are not checked."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=VERSION,
        environment=settings.app_env,
        uptime_seconds=get_uptime_seconds(),
    )


@router.get(
    "/ready",
    response_model=ReadyResponse,
    summary="Readiness probe",
    responses={
        200: {"description": "All dependencies are ready"},
        503: {"description": "One or more dependencies are unavailable"},
    },
)
async def ready():
    """
    Readiness probe for load balancers.

    Only the database gates readiness. Redis is reported; rate limiting
    fails open without it.
    """
    checks = await run_checks()
    is_ready = checks.get("database") == "ok"

    if checks.get("redis") != "ok":
        logger.warning("Readiness check: Redis unavailable, rate limiting disabled")

    response = ReadyResponse(
        status="ready" if is_ready else "not_ready",
        timestamp=datetime.now(timezone.utc),
        checks=checks,
        pending_notifications=get_notification_outbox().pending_count,
    )

    if not is_ready:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(mode="json"),
        )
    return response


@router.get("/live", summary="Liveness probe")
async def live() -> dict:
    return {"status": "alive", "uptime_seconds": get_uptime_seconds()}
