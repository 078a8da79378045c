"""
FastAPI application entry point.

Run with:
    uvicorn alertbot.main:app --reload --port 8000
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# ── Core infrastructure ──
from alertbot.core.config import settings
from alertbot.core.logging_config import setup_logging, get_logger
from alertbot.core.errors import register_error_handlers
from alertbot.core.middleware import RequestLoggingMiddleware
from alertbot.services import build_services

# ── API routers ──
from alertbot.api.v1.alerts import router as alert_router
from alertbot.api.schemas import HealthResponse

# ── Initialise logging ──
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the alert pipeline on startup, drain it on shutdown."""
    logger.info(
        "Starting %s v%s [%s] → %s",
        settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
        settings.MAIN_SERVER_URL,
    )
    services = getattr(app.state, "services", None)
    owns_services = services is None
    if owns_services:
        services = build_services(settings)
        app.state.services = services

    yield

    if owns_services:
        await services.aclose()
    logger.info("Shutting down %s", settings.APP_NAME)


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Receives severe weather alerts by webhook, drops duplicates and "
            "alerts below the severity threshold, and posts formatted alerts "
            "to the chat platform with image → text fallback and rate-limit "
            "back-off."
        ),
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    register_error_handlers(app)
    app.include_router(alert_router)

    @app.get("/", tags=["root"])
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "endpoints": ["/alerts", "/alerts/status", "/health"],
            "docs": "/docs",
        }

    @app.get("/health", tags=["health"], response_model=HealthResponse)
    async def health_check():
        return HealthResponse(
            service=settings.APP_NAME,
            version=settings.APP_VERSION,
            environment=settings.ENVIRONMENT,
            dedup_backend=settings.DEDUP_BACKEND,
        )

    @app.get("/health/live", tags=["health"])
    async def liveness():
        return {"status": "alive"}

    return app


app = create_app()
