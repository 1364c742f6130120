"""ASGI entry point for the MovieSaw auth API.

Wires the v1 routers behind security headers and CORS, maps every error to
the standard envelope, and runs the revocation purge worker for the life of
the process. Serve with: uvicorn moviesaw.main:app
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from moviesaw.api.v1.router import router as v1_router
from moviesaw.core.config import settings
from moviesaw.core.database import async_session_factory, create_all, engine
from moviesaw.core.errors import APIError, InternalError
from moviesaw.core.rate_limiting import limiter, rate_limit_exceeded_handler
from moviesaw.core.responses import ErrorDetail, ErrorResponse
from moviesaw.services.revocation_purge_worker import RevocationPurgeWorker

logger = structlog.get_logger()


_SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    # No HTML is served, so nothing may load or frame a response
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach the fixed security headers to every response.

    API responses are also marked uncacheable because login and provider
    sign-in return session tokens in the body. HSTS is only sent in
    production, where TLS terminates at the reverse proxy.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        response.headers.update(_SECURITY_HEADERS)
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, max-age=0"
        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response


def _envelope(
    status_code: int, code: str, message: str, details: list[dict] | None = None
) -> JSONResponse:
    body = ErrorResponse(
        error=ErrorDetail(code=code, message=message, details=details)
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


def api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
    """Render a raised APIError with its own status and code."""
    return _envelope(exc.status_code, exc.code, exc.message, exc.details)


def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation failures as 400 VALIDATION_ERROR.

    Each entry in details names the offending field location and the reason,
    so clients can highlight the field without parsing the message.
    """
    details = [
        {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]
    return _envelope(400, "VALIDATION_ERROR", "Request validation failed", details)


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log an unhandled exception and return an opaque 500.

    The response never carries exception text; the traceback goes to the
    server log with the request path.
    """
    logger.exception("Unhandled exception", exc_info=exc, path=str(request.url.path))
    return api_error_handler(request, InternalError())


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Create tables if configured and run the revocation purge worker."""
    if settings.database_auto_create:
        await create_all(engine)
        logger.info("Database tables ensured")

    worker: RevocationPurgeWorker | None = None
    if settings.revocation_purge_enabled:
        worker = RevocationPurgeWorker(
            async_session_factory,
            interval_seconds=settings.revocation_purge_interval_seconds,
        )
        worker.start()

    try:
        yield
    finally:
        if worker is not None:
            await worker.stop()
        await engine.dispose()


def create_app() -> FastAPI:
    """Build the auth API: middleware, exception handlers, routers, health.

    Kept as a factory so a fresh instance can be built against patched
    settings.
    """
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(
        title="MovieSaw Auth API",
        version="1.0.0",
        description="Accounts, sign-in, and session lifecycle for MovieSaw",
        lifespan=lifespan,
    )

    # Middleware order: Starlette uses LIFO, so the LAST added runs FIRST.
    # CORS must run first to handle preflight requests, so add it last.
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "Authorization", "X-Request-ID"],
    )

    # Register exception handlers
    # Order matters: specific handlers first, then catch-all
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    app.state.limiter = limiter

    app.include_router(v1_router, prefix="/api/v1")

    # Health check endpoint (outside versioned API)
    @app.get("/health")
    async def health_check() -> JSONResponse:
        """Liveness probe that also pings the database.

        Returns:
            200 {"status": "healthy", ...} when the database answers a ping,
            503 {"status": "unhealthy", ...} otherwise.
        """
        started = time.perf_counter()
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("Health check database ping failed")
            return JSONResponse(
                status_code=503,
                content={"status": "unhealthy", "database": "unreachable"},
            )
        latency_ms = round((time.perf_counter() - started) * 1000, 2)
        return JSONResponse(
            content={
                "status": "healthy",
                "database": "connected",
                "database_latency_ms": latency_ms,
            }
        )

    return app


app = create_app()
