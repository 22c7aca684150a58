"""
Reunion50 Poll Backend Application

Phone-verified venue and date polls with live, merged tallies.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.v1 import router as api_v1_router
from core.config import Settings, get_settings
from core.events import create_start_app_handler, create_stop_app_handler
from core.exceptions import PollError
from core.logging_config import configure_logging
from core.middleware import SecurityHeadersMiddleware
from schemas.auth import ErrorResponse
from services.sms_service import SmsSender

logger = structlog.get_logger(__name__)


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


def create_application(
    settings: Optional[Settings] = None,
    sms_sender: Optional[SmsSender] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    ``sms_sender`` replaces the provider built from settings (used by tests
    and local demos).
    """
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager for startup and shutdown events."""
        await create_start_app_handler(app, settings)()
        yield
        await create_stop_app_handler(app)()

    application = FastAPI(
        title=settings.APP_NAME,
        description="Phone-verified event polls",
        version="1.0.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        lifespan=lifespan,
    )
    application.state.settings = settings
    application.state.sms_sender = sms_sender

    # Middleware runs in reverse order of registration
    application.add_middleware(SecurityHeadersMiddleware)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Phone-Token"],
    )

    application.include_router(api_v1_router, prefix=settings.API_PREFIX)

    @application.exception_handler(PollError)
    async def poll_error_handler(request: Request, exc: PollError) -> JSONResponse:
        """Render domain errors as ``{"ok": false, "error": ...}``."""
        log = logger.warning if exc.status_code >= 500 else logger.info
        log(
            "request_rejected",
            error_type=type(exc).__name__,
            status_code=exc.status_code,
            path=request.url.path,
        )
        return _error_response(exc.status_code, exc.message)

    @application.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("request_malformed", path=request.url.path, errors=len(exc.errors()))
        return _error_response(400, "Invalid request.")

    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler to catch unhandled exceptions.

        Keeps the uniform error body so clients never see a stack trace.
        """
        logger.exception(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method,
        )
        return _error_response(500, "An internal server error occurred. Please try again later.")

    @application.get("/health", tags=["Health"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint for load balancers and monitoring."""
        return {"status": "healthy", "service": "reunion50-poll"}

    return application


app = create_application()
