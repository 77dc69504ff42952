"""
RefugeCare Triage - Backend Entrypoint

FastAPI application factory and server configuration.
Run with: uvicorn main:app --reload   (from the backend/ directory)
"""

from contextlib import asynccontextmanager
import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from refugecare.config import Settings, settings as default_settings
from refugecare.api import health, routes, triage
from refugecare.core.engine import create_engine
from refugecare.core.exceptions import RefugeCareError
from refugecare.core.logging import LogContext, setup_structured_logging

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Request-ID"


async def refugecare_error_handler(request: Request, exc: RefugeCareError) -> JSONResponse:
    """Render domain errors as {"error", "message", "details"} with the class status code."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    else:
        logger.info("%s on %s %s", exc.code, request.method, request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(settings: Settings = default_settings) -> FastAPI:
    """Application factory."""

    setup_structured_logging(
        settings.app_log_level,
        json_format=settings.log_json_format,
        anonymize=settings.anonymize_logs,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Startup:
            - Create the triage engine (directory, ticket manager, sessions)
            - Seed demo facilities when configured

        Shutdown:
            - Flush pending facility alerts
            - Close the advisory oracle client
        """
        # === Startup ===
        logger.info("RefugeCare Triage starting in %s mode", settings.app_env)

        engine = create_engine(settings)

        # Store engine in app state for dependency injection
        app.state.engine = engine
        app.state.settings = settings

        logger.info(
            "   Matching: nearest_limit=%d, nearby_radius_km=%.1f, enforce_transitions=%s",
            settings.nearest_facility_limit,
            settings.nearby_search_radius_km,
            settings.enforce_status_transitions,
        )
        logger.info("   Privacy: anonymize_logs=%s", settings.anonymize_logs)

        yield

        # === Shutdown ===
        logger.info("RefugeCare Triage shutting down")
        await engine.shutdown()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="RefugeCare Triage",
        description="Emergency intake, triage and facility-matching API for refugee health support",
        version="0.1.0",
        docs_url="/docs" if settings.docs_enabled else None,
        redoc_url="/redoc" if settings.docs_enabled else None,
        lifespan=lifespan,
    )

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Correlation ids ---
    @app.middleware("http")
    async def bind_correlation_id(request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
        with LogContext(correlation_id=correlation_id):
            response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response

    # --- Errors ---
    app.add_exception_handler(RefugeCareError, refugecare_error_handler)

    # --- Routes ---
    app.include_router(routes.router, prefix="/api")
    app.include_router(triage.router, prefix="/api")
    app.include_router(health.router)

    @app.get("/")
    async def root():
        """Root health check."""
        return {
            "service": "RefugeCare Triage",
            "status": "operational",
            "version": "0.1.0",
        }

    return app


# Create app instance
app = create_app()
