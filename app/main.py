"""
Schedulizer Booking API

FastAPI application entry point that ties all components together.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.api.dependencies import build_session_store
from app.api.errors import ApiError, api_error_handler, error_body, validation_exception_handler
from app.api.middleware.rate_limit import RateLimitMiddleware
from app.api.routes import appointments, booking, health, whatsapp
from app.core.conversation.session import run_session_sweeper
from app.infra.database import async_session_factory, close_db, init_db
from app.infra.notifications import get_notification_outbox
from app.infra.redis import close_redis, get_redis
from app.infra.whatsapp import close_whatsapp_client


def setup_logging() -> None:
    """Configure logging based on environment."""
    log_level = logging.DEBUG if settings.debug else logging.INFO
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.debug else logging.WARNING
    )


logger = logging.getLogger(__name__)


async def _stop_sweeper(task: Optional[asyncio.Task], stop_event: asyncio.Event) -> None:
    if task is None:
        return
    stop_event.set()
    try:
        await asyncio.wait_for(task, timeout=5)
    except asyncio.TimeoutError:
        task.cancel()
        logger.warning("Session sweeper did not stop in time - cancelled")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # === STARTUP ===
    setup_logging()
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode")

    health.set_start_time()

    # Initialize database (only in development - use migrations in production)
    if settings.is_development:
        try:
            await init_db()
        except Exception as e:
            logger.warning(f"Database init skipped: {e}")

    if await get_redis() is None:
        logger.warning("Redis unavailable - rate limiting disabled")

    # Expired chat sessions
    stop_event = asyncio.Event()
    sweeper_task: Optional[asyncio.Task] = None
    if settings.session_sweep_interval_seconds > 0:
        sweeper_task = asyncio.create_task(
            run_session_sweeper(
                build_session_store(async_session_factory),
                settings.session_sweep_interval_seconds,
                stop_event,
            )
        )

    logger.info(f"Application ready at http://{settings.host}:{settings.port}")

    yield

    # === SHUTDOWN ===
    logger.info("Shutting down application...")

    await _stop_sweeper(sweeper_task, stop_event)

    # Let in-flight notifications finish
    await get_notification_outbox().drain()

    await close_whatsapp_client()
    logger.info("WhatsApp client closed")

    await close_redis()

    await close_db()
    logger.info("Database connections closed")

    logger.info("Shutdown complete")


app = FastAPI(
    title="Schedulizer Booking API",
    description="""
    Multi-tenant appointment booking for small businesses.

    ## Features
    - Public booking page: services, live availability, booking and self-service management
    - WhatsApp booking conversation
    - Back-office appointment status changes

    ## Rate Limiting
    Public booking endpoints are rate-limited per client IP.
    """,
    version=health.VERSION,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
)

# Middleware execution order is the reverse of add order
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RateLimitMiddleware)

app.add_exception_handler(ApiError, api_error_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)


@app.exception_handler(Exception)
async def generic_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle uncaught exceptions. Internal details are never exposed."""
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("INTERNAL_ERROR", "Internal server error"),
    )


@app.middleware("http")
async def request_timing_middleware(request: Request, call_next):
    """Log request duration in debug mode."""
    start_time = time.time()
    response = await call_next(request)

    if settings.debug:
        duration = time.time() - start_time
        logger.debug(
            f"{request.method} {request.url.path} "
            f"completed in {duration:.3f}s"
        )
    return response


app.include_router(health.router)
app.include_router(booking.router)
app.include_router(appointments.router)
app.include_router(whatsapp.router)


@app.get("/", tags=["Root"])
async def root() -> dict:
    """
    Root endpoint.

    Returns basic API information.
    """
    return {
        "name": settings.app_name,
        "version": health.VERSION,
        "status": "running",
        "environment": settings.app_env,
        "docs": "/docs" if settings.is_development else None,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
    )
