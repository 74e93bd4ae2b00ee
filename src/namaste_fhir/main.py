"""
NAMASTE FHIR Gateway - FastAPI Application Entry Point

A FHIR R4 terminology gateway that dual-codes NAMASTE (Ayurveda, Siddha,
Unani) concepts with WHO ICD-11 and authenticates callers with ABHA tokens.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from namaste_fhir import __version__
from namaste_fhir.config import Settings, get_settings
from namaste_fhir.db.session import create_engine, create_session_factory, init_db
from namaste_fhir.dependencies import build_services
from namaste_fhir.errors import NamasteServiceError
from namaste_fhir.routes import ai, auth, bundle, codesystem, lookup, translate
from namaste_fhir.schema import HealthResponse
from namaste_fhir.utils import fhir
from namaste_fhir.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

SERVICE_NAME = "namaste-fhir-gateway"


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Settings to use; defaults to the environment-derived settings

    Returns:
        Configured application; services are built in the lifespan handler
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup/shutdown events."""
        setup_logging(settings.log_level)
        logger.info("Starting NAMASTE FHIR Gateway %s", __version__)
        logger.info("Database: %s", settings.database_url)
        logger.info("ABHA auth: %s", "demo mode" if settings.demo_mode else settings.abha_jwks_url)
        logger.info("AI provider: %s", "configured" if settings.gemini_api_key else "not configured (fallbacks only)")

        engine = create_engine(settings.database_url, echo=settings.debug)
        await init_db(engine)
        services = build_services(settings, create_session_factory(engine))

        if settings.seed_on_startup or settings.demo_mode:
            stats = await services.loader.seed_defaults()
            logger.info("Seed data loaded: %s", stats)

        app.state.services = services
        yield

        logger.info("Shutting down NAMASTE FHIR Gateway")
        await engine.dispose()

    app = FastAPI(
        title="NAMASTE FHIR Gateway",
        description="FHIR R4 terminology gateway dual-coding NAMASTE concepts with WHO ICD-11",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(codesystem.router, prefix="/fhir", tags=["FHIR CodeSystem"])
    app.include_router(bundle.router, prefix="/fhir", tags=["FHIR Bundle"])
    app.include_router(lookup.router, prefix="/terminology", tags=["Terminology Lookup"])
    app.include_router(translate.router, prefix="", tags=["Translation"])
    app.include_router(ai.router, prefix="", tags=["AI Assistance"])
    app.include_router(auth.router, prefix="", tags=["Authentication"])

    _add_exception_handlers(app)

    @app.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health check endpoint for monitoring and load balancers."""
        return HealthResponse(
            status="healthy",
            service=SERVICE_NAME,
            version=__version__,
            database="connected" if getattr(app.state, "services", None) else "not_initialized",
            abha_auth=(
                "demo_mode" if settings.demo_mode
                else "configured" if settings.abha_configured
                else "jwks_only"
            ),
            ai_provider="configured" if settings.gemini_api_key else "fallback_only",
        )

    @app.get("/")
    async def root():
        """Root endpoint with service information."""
        return {
            "message": "NAMASTE FHIR Gateway",
            "description": "FHIR R4 terminology gateway for NAMASTE and ICD-11",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
            "endpoints": {
                "fhir_metadata": "/fhir/metadata",
                "fhir_codesystem": "/fhir/CodeSystem",
                "fhir_conceptmap": "/fhir/ConceptMap/namaste-icd11",
                "search": "/terminology/search",
                "translate": "/translate",
                "batch_translate": "/translate/batch",
                "ai_map": "/map",
                "bundle": "/fhir/Bundle",
                "login": "/auth/login",
            }
        }

    return app


def _add_exception_handlers(app: FastAPI) -> None:
    """Render every error as a FHIR OperationOutcome."""

    @app.exception_handler(NamasteServiceError)
    async def service_error_handler(request: Request, exc: NamasteServiceError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.error_code)
        else:
            logger.warning("%s %s rejected: %s (%s)", request.method, request.url.path, exc.message, exc.error_code)
        return JSONResponse(
            status_code=exc.status_code,
            content=fhir.operation_outcome("error", exc.issue_code, exc.message, diagnostics=exc.error_code),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        text = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in errors
        ) or "Invalid request"
        logger.warning("%s %s invalid request: %s", request.method, request.url.path, text)
        return JSONResponse(
            status_code=400,
            content=fhir.operation_outcome("error", "invalid", text, diagnostics="VALIDATION_FAILED"),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=fhir.operation_outcome(
                "fatal", "exception", "Internal server error", diagnostics="INTERNAL_ERROR"
            ),
        )


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "namaste_fhir.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
