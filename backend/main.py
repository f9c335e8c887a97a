# main.py — Pulse CRM API
# Features:
# - Application context (store, identity, credentials, services) built once
# - Request correlation IDs + timing log line
# - Security headers
# - Domain errors mapped to HTTP statuses with a request id
# - Health check with store verification

import os
import json
import uuid
import time
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError

from config import Settings
from context import AppContext
from errors import CRMError, DependencyFailure
from telemetry import setup_telemetry, SERVICE_VERSION

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s %(message)s"

logger = logging.getLogger("pulse-crm")


def _error_response(request: Request, status_code: int, detail) -> JSONResponse:
    content = {
        "detail": detail,
        "request_id": getattr(request.state, "request_id", None),
    }
    if isinstance(detail, str):
        # Clients read the message from "error"
        content["error"] = detail
    return JSONResponse(status_code=status_code, content=content)


def _clean_validation_errors(exc: RequestValidationError):
    """Reduce pydantic errors to JSON-safe dicts"""
    errors = []
    for err in exc.errors():
        clean_err = {
            "type": str(err.get("type", "unknown")),
            "loc": list(err.get("loc", [])),
            "msg": str(err.get("msg", "")),
        }
        if "input" in err:
            try:
                json.dumps(err["input"])
                clean_err["input"] = err["input"]
            except (TypeError, ValueError):
                clean_err["input"] = str(err["input"])
        errors.append(clean_err)
    return errors


def create_app(settings: Optional[Settings] = None, context: Optional[AppContext] = None) -> FastAPI:
    """Build the API. Tests pass a ready context; production builds one from the environment."""
    if context is not None:
        settings = context.settings
    settings = settings or Settings.from_env()
    context = context or AppContext.from_settings(settings)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"🚀 Starting Pulse CRM ({settings.environment})...")
        for warning in settings.startup_warnings():
            logger.warning(warning)
        await context.startup()
        setup_telemetry(app, settings, context.store.engine)
        yield
        logger.info("🛑 Shutting down Pulse CRM...")
        await context.shutdown()

    app = FastAPI(
        title="Pulse CRM",
        description="Multi-tenant CRM: organisations, team members, leads and pipeline",
        version=SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.context = context

    # ============================================================
    # CORS
    # ============================================================

    wildcard = "*" in settings.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if wildcard else settings.cors_origins,
        # Browsers refuse credentialed requests against a wildcard origin
        allow_credentials=not wildcard,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID", "X-Correlation-ID"],
        expose_headers=["X-Request-ID", "X-Correlation-ID"],
    )

    # ============================================================
    # MIDDLEWARE: Correlation IDs + Timing
    # ============================================================

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        correlation_id = request.headers.get("X-Correlation-ID", request_id)
        request.state.request_id = request_id
        request.state.correlation_id = correlation_id

        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Response-Time"] = f"{duration:.4f}s"

        logger.info(
            f"{request.method} {request.url.path} → {response.status_code} "
            f"({duration:.3f}s) [rid={request_id[:8]}]"
        )
        return response

    # ============================================================
    # MIDDLEWARE: Security Headers
    # ============================================================

    @app.middleware("http")
    async def security_headers_middleware(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        return response

    # ============================================================
    # EXCEPTION HANDLERS
    # ============================================================

    @app.exception_handler(CRMError)
    async def crm_error_handler(request: Request, exc: CRMError):
        if exc.status_code >= 500:
            logger.error(f"{type(exc).__name__}: {exc.message}")
        return _error_response(request, exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _error_response(request, 400, _clean_validation_errors(exc))

    @app.exception_handler(SQLAlchemyError)
    async def store_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"Store failure: {exc}", exc_info=True)
        return _error_response(request, 500, DependencyFailure.default_message)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return _error_response(request, 500, "Internal server error")

    # ============================================================
    # ROUTERS
    # ============================================================

    from routers import auth, leads, settings as field_settings, users, seed

    app.include_router(auth.router)
    app.include_router(leads.router)
    app.include_router(field_settings.router)
    app.include_router(users.router)
    app.include_router(seed.router)

    # ============================================================
    # HEALTH & ROOT
    # ============================================================

    @app.get("/health")
    async def health_check():
        """Health check with store connectivity verification"""
        try:
            await context.store.ping()
            db_status = "connected"
        except SQLAlchemyError as e:
            db_status = f"error: {str(e)[:100]}"

        return {
            "status": "healthy" if db_status == "connected" else "degraded",
            "version": SERVICE_VERSION,
            "environment": settings.environment,
            "database": db_status,
            "email": "enabled" if context.notifier.enabled else "disabled",
        }

    @app.get("/")
    async def root():
        return {
            "name": "Pulse CRM",
            "version": SERVICE_VERSION,
            "docs": "/docs",
            "health": "/health",
            "status": "operational",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=os.getenv("ENVIRONMENT") != "production",
    )
