"""
BankDash - FastAPI Application Entrypoint

This module builds the FastAPI application with:
- CORS and security middleware
- Authentication routes and dependencies
- Database lifecycle management
- Structured logging

create_app() constructs the AuthService explicitly and stores it on
app.state; tests build their own app with test settings and a frozen clock.
"""

import secrets
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.config import Settings, settings as default_settings
from backend.logging import configure_logging
from backend.gateway.middleware import SecurityMiddleware
from backend.auth.accounts import AccountRepository
from backend.auth.broker import ExternalCredentialBroker
from backend.auth.database import get_engine, init_db, get_session_factory
from backend.auth.errors import AuthError
from backend.auth.models import utcnow
from backend.auth.routes import router as auth_router
from backend.auth.schemas import ErrorResponse
from backend.auth.service import AuthService


logger = structlog.get_logger(__name__)

VERSION = "0.1.0"


def _resolve_secret(settings: Settings) -> Settings:
    if settings.SECRET_KEY:
        return settings
    # Sessions will not survive a restart with an ephemeral key
    logger.warning("secret_key_missing", action="generated ephemeral signing key")
    return settings.model_copy(update={"SECRET_KEY": secrets.token_urlsafe(48)})


def create_app(
    settings: Optional[Settings] = None,
    clock: Callable[[], datetime] = utcnow,
    external_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Configuration (defaults to the environment)
        clock: Source of naive-UTC time for lockout and token expiry
        external_transport: httpx transport for the external authority (tests)
    """
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
    settings = _resolve_secret(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup:
            - Initialize SQLModel database (accounts)
            - Build the AuthService and its external broker

        Shutdown:
            - Dispose the engine
        """
        engine = get_engine(settings.DATABASE_URL)
        init_db(engine)
        app.state.db_engine = engine
        app.state.db_session_factory = get_session_factory(engine)

        if settings.EXTERNAL_AUTH_ENABLED and not settings.external_auth_active:
            logger.warning(
                "external_auth_misconfigured",
                detail="EXTERNAL_AUTH_ENABLED is set but client id or api key is missing; "
                       "sessions will use local authentication only",
            )

        broker = ExternalCredentialBroker.from_settings(
            settings, transport=external_transport, clock=clock
        )
        app.state.auth_service = AuthService.from_settings(
            settings,
            repository=AccountRepository(app.state.db_session_factory),
            broker=broker,
            clock=clock,
        )
        logger.info(
            "startup_complete",
            version=VERSION,
            external_auth=broker.enabled,
        )

        yield

        engine.dispose()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Banking dashboard backend: accounts, sessions and credentials",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )

    # Security middleware for request IDs, headers and request logging
    app.add_middleware(SecurityMiddleware)

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        """Render AuthError with its public message; internal detail stays in logs."""
        logger.info(
            "auth_error",
            error_code=exc.error_code,
            detail=exc.detail,
            path=request.url.path,
        )
        body = ErrorResponse(
            detail=exc.public_message,
            error_code=exc.error_code,
            request_id=getattr(request.state, "request_id", None),
        )
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content=body.model_dump(),
            headers=headers,
        )

    app.include_router(auth_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check():
        """Health check endpoint for local dev tooling."""
        return {"status": "healthy", "version": VERSION}

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "name": settings.APP_NAME,
            "version": VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()
