"""
FastAPI application entry point.

Run with:
    uvicorn backend.app.main:app --reload --port 8000

Or build an app with explicit settings (tests, embedding):
    from backend.app.main import create_app
    app = create_app(Settings(SOS_ALERTS_URL="http://feeds.local/alerts"))
"""

from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from backend.app.core.config import Settings, get_settings
from backend.app.core.logging_config import setup_logging, get_logger
from backend.app.core.errors import register_error_handlers
from backend.app.core.middleware import RequestLoggingMiddleware
from backend.app.core.health import HealthStatus, run_health_check

# ── Alert engine ──
from backend.app.alerts.controller import AggregationController

# ── API routers ──
from backend.app.api.v1.dashboard import router as dashboard_router

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the application.

    ``transport`` is handed to the feed clients; tests pass an
    ``httpx.MockTransport`` to stand in for the alert services.
    """
    settings = settings or get_settings()
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Mount on startup: launch both feed loads; tear down on shutdown."""
        logger.info(
            "Starting %s v%s [%s]",
            settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
        )
        controller = AggregationController(settings, transport=transport)
        app.state.controller = controller
        controller.start()
        yield
        await controller.close()
        logger.info("Shutting down %s", settings.APP_NAME)

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Live emergency-alert dashboard backend. Polls the SOS and "
            "emergency alert feeds independently, normalizes both into one "
            "alert model, computes map viewport bounds, and tracks alert "
            "selection, table visibility and the live-video modal."
        ),
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # ── Middleware stack (last added runs first) ──
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    register_error_handlers(app)

    app.include_router(dashboard_router)

    # ── Root & health endpoints ──

    @app.get("/", tags=["root"])
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "feeds": {
                "primary": settings.SOS_ALERTS_URL,
                "secondary": settings.EMERGENCY_ALERTS_URL,
            },
            "docs": "/docs",
        }

    @app.get("/health", tags=["health"])
    async def health_check(request: Request):
        """Deep health probe — per-feed load state."""
        report = await run_health_check(request.app.state.controller)
        return report.to_dict()

    @app.get("/health/live", tags=["health"])
    async def liveness():
        """Liveness probe — is the process alive?"""
        return {"status": "alive"}

    @app.get("/health/ready", tags=["health"])
    async def readiness(request: Request):
        """Readiness probe — degraded feeds still serve traffic."""
        report = await run_health_check(request.app.state.controller)
        if report.status == HealthStatus.UNHEALTHY:
            return JSONResponse(status_code=503, content=report.to_dict())
        return report.to_dict()

    return app


app = create_app()
