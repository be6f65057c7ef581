"""
Resource Booking Core API Server

Entry point for the FastAPI application.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from booking_core.api.v1 import router as api_v1_router
from booking_core.core.config import get_settings
from booking_core.core.database import get_session_context
from booking_core.core.errors import BookingError, booking_error_handler
from booking_core.core.logging_config import configure_logging
from booking_core.core.middleware import RequestContextMiddleware, SecurityHeadersMiddleware
from booking_core.core.redis import close_redis, ping_redis

settings = get_settings()
log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level, settings.log_format)
    log.info("booking_core.starting")
    yield
    log.info("booking_core.shutting_down")
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Resource Booking Core",
        description="Permission-checked, capacity-safe, idempotent resource reservations.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_exception_handler(BookingError, booking_error_handler)

    # Middleware (order matters, last added is outermost)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "Idempotency-Key", "X-Request-ID"],
        expose_headers=["Idempotent-Replayed", "X-Request-ID"],
    )
    app.add_middleware(RequestContextMiddleware)

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: database and Redis reachable."""
        checks = {"database": True, "redis": await ping_redis()}
        try:
            async with get_session_context() as session:
                await session.execute(text("SELECT 1"))
        except Exception as exc:
            log.warning("readiness.database_unreachable", error=str(exc))
            checks["database"] = False
        status = "ready" if all(checks.values()) else "degraded"
        return {"status": status, "checks": checks}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("booking_core.main:app", host=settings.host, port=settings.port, reload=settings.debug)
