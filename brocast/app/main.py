"""
FastAPI application entry point.

Run with:
    uvicorn brocast.app.main:app --reload --port 8000

Deliver queued emails with:
    celery -A brocast.app.tasks.worker worker --loglevel=info
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from brocast.app.core.config import settings
from brocast.app.core.logging_config import setup_logging, get_logger
from brocast.app.core.errors import register_error_handlers
from brocast.app.core.middleware import RequestLoggingMiddleware
from brocast.app.core.health import HealthStatus, run_health_check
from brocast.app.core.database import close_db, init_db
from brocast.app.tasks.queue import close_task_queue

# ── API routers ──
from brocast.app.api.pages import router as pages_router
from brocast.app.api.broadcasts import router as broadcasts_router
from brocast.app.api.mailworker import router as mailworker_router

# ── Initialise logging ──
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown events."""
    logger.info(
        "Starting %s v%s [%s]",
        settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
    )
    if settings.STORE_BACKEND == "sql":
        await init_db()
    yield
    await close_task_queue()
    await close_db()
    logger.info("Shutting down %s", settings.APP_NAME)


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Broadcast your location and a message to a list of friends. "
            "Submissions are stored and emailed asynchronously with a map link."
        ),
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)
    register_error_handlers(app)

    app.include_router(pages_router)
    app.include_router(broadcasts_router)
    app.include_router(mailworker_router)

    @app.get("/health", tags=["health"])
    async def health_check():
        """Deep health probe — checks all collaborators."""
        report = await run_health_check()
        return report.to_dict()

    @app.get("/health/live", tags=["health"])
    async def liveness():
        return {"status": "alive"}

    @app.get("/health/ready", tags=["health"])
    async def readiness():
        report = await run_health_check()
        if report.status == HealthStatus.UNHEALTHY:
            return JSONResponse(status_code=503, content=report.to_dict())
        return report.to_dict()

    return app


app = create_app()
