"""
Main Application Entry Point - server/main.py

Configures FastAPI application, middleware, lifecycle events, and routers.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sentry_sdk.integrations.fastapi import FastApiIntegration

# Import routers
from server.api import accounts, events, media, messages, templates, webhooks
from server.core import redis as redis_client
from server.core.config import Settings
from server.core.config import settings as default_settings
from server.core.db import create_db_engine_and_session_factory, create_tables
from server.core.errors import InvalidArgument, ServiceError
from server.core.monitoring import log_event, log_exception
from server.sessions.context import build_context
from server.whatsapp.bridge import bridge_provider_factory
from server.whatsapp.provider import ProviderFactory

VERSION = "0.1.0"


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def create_app(
    settings: Optional[Settings] = None,
    provider_factory: Optional[ProviderFactory] = None,
) -> FastAPI:
    """
    Build the application.

    `settings` and `provider_factory` are injectable so tests can run
    against temporary directories and a fake provider.
    """
    settings = settings or default_settings
    provider_factory = provider_factory or bridge_provider_factory(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # --- Startup ---
        Path(settings.SESSIONS_DIR).mkdir(parents=True, exist_ok=True)
        Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)

        engine = None
        session_maker = None
        if settings.DATABASE_URL:
            engine, session_maker = create_db_engine_and_session_factory(
                settings.DATABASE_URL
            )
            if settings.DB_AUTO_CREATE:
                await create_tables(engine)
        else:
            log_event("database_disabled", level="warning")

        sinks = []
        if settings.REDIS_URL:
            await redis_client.startup(settings.REDIS_URL)
            sinks.append(redis_client.mirror_event)

        context = build_context(
            settings,
            provider_factory,
            session_maker=session_maker,
            sinks=sinks,
        )
        app.state.sessions = context
        app.state.session_maker = session_maker

        if settings.AUTO_START_DEFAULT_ACCOUNT:
            context.registry.get_or_create(settings.DEFAULT_ACCOUNT_ID)

        log_event(
            "app_started",
            env=settings.ENV,
            database=session_maker is not None,
            redis=bool(settings.REDIS_URL),
        )

        yield

        # --- Shutdown ---
        await context.close()
        if settings.REDIS_URL:
            await redis_client.shutdown()
        if engine is not None:
            await engine.dispose()

        log_event("app_stopped")

    # Initialize Sentry
    if settings.SENTRY_DSN:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            integrations=[FastApiIntegration()],
            traces_sample_rate=1.0,
            send_default_pii=True,
        )

    app = FastAPI(
        title="WhatsApp Session Service",
        description="Multi-account WhatsApp Web sessions with QR login over SSE",
        version=VERSION,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # PROD: Restrict this
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # Error Envelopes
    # =========================================================================

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        log_event(
            "request_failed",
            level="warning" if exc.status_code < 500 else "error",
            path=request.url.path,
            code=exc.code,
            error=exc.message,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        error = InvalidArgument(_validation_message(exc))
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        log_exception("unhandled_error", exc, path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error"},
        )

    # =========================================================================
    # Health Check Endpoints
    # =========================================================================

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint. Returns 200 if running."""
        return {
            "success": True,
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": VERSION,
        }

    @app.get("/ready", tags=["Health"])
    async def readiness_check(request: Request):
        """Readiness check endpoint. Returns 200 once startup finished."""
        context = getattr(request.app.state, "sessions", None)
        result = {
            "success": context is not None,
            "status": "ready" if context is not None else "starting",
            "sessions": len(context.registry) if context is not None else 0,
        }
        if settings.REDIS_URL:
            result["redis"] = await redis_client.redis_health()
        return result

    @app.get("/api/health", tags=["Health"])
    async def api_health():
        return {"success": True, "message": "Server is running"}

    # =========================================================================
    # Register API Routers
    # =========================================================================

    app.include_router(webhooks.router)
    app.include_router(accounts.router, prefix="/api")
    app.include_router(events.router, prefix="/api")
    app.include_router(messages.router, prefix="/api")
    app.include_router(templates.router, prefix="/api")
    app.include_router(media.router, prefix="/api")

    # Uploaded attachments (directory created at startup)
    app.mount(
        "/uploads",
        StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False),
        name="uploads",
    )

    return app


app = create_app()
