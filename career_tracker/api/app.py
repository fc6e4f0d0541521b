"""
FastAPI application for the career tracker backend.

create_app() is the only place components are wired together. Tests build
their own app around an isolated storage and fake integrations.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from career_tracker.ai.extractor import ApplicationExtractor
from career_tracker.ai.routes import router as ai_router
from career_tracker.api.dependencies import build_services
from career_tracker.auth.routes import router as auth_router
from career_tracker.config import Settings, configure_logging, get_settings
from career_tracker.core.errors import AppError
from career_tracker.integrations.email import EmailSender
from career_tracker.integrations.oauth import GoogleOAuthClient
from career_tracker.integrations.sentry import init_sentry
from career_tracker.pro.routes import admin_router, router as pro_router
from career_tracker.storage import StorageProvider, create_local_storage, init_storage

logger = logging.getLogger(__name__)


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup app resources."""
    services = app.state.services

    if init_sentry(services.settings):
        logger.info("Sentry error tracking enabled")

    await init_storage(services.storage)

    logger.info(f"Career tracker API starting in {services.settings.environment} mode")

    yield

    logger.info("Career tracker API shutting down")


# =============================================================================
# Error Handlers
# =============================================================================


async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(exc.to_response(), status_code=exc.status_code)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"Invalid {field}: {first.get('msg')}" if field else "Invalid request"
    return JSONResponse({"message": message, "code": "VALIDATION_ERROR"}, status_code=400)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse({"message": "Internal Server Error"}, status_code=500)


# =============================================================================
# App Setup
# =============================================================================


def create_app(
    settings: Settings | None = None,
    storage: StorageProvider | None = None,
    *,
    oauth_client: GoogleOAuthClient | None = None,
    email_sender: EmailSender | None = None,
    extractor: ApplicationExtractor | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    settings.validate_required()

    app = FastAPI(
        title="Career Tracker API",
        description="Identity, access and AI quota for the job-application tracker",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.services = build_services(
        settings,
        storage or create_local_storage(),
        oauth_client=oauth_client,
        email_sender=email_sender,
        extractor=extractor,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, handle_app_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    # Include routers
    app.include_router(auth_router, prefix=settings.auth_prefix)
    app.include_router(ai_router)
    app.include_router(pro_router)
    app.include_router(admin_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


def build_app() -> FastAPI:
    """Entry point for `uvicorn career_tracker.api.app:build_app --factory`."""
    settings = get_settings()
    configure_logging(settings)
    return create_app(settings)
