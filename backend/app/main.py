"""
FastAPI Application Entry Point.

This is the main application file for the Tutoring Marketplace Backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from backend.app.core.config import settings
from backend.app.api.v1.router import router as api_v1_router
from backend.app.api.v1.endpoints.bbb import router as bbb_router
from backend.app.core.observability import ObservabilityMiddleware, configure_logging
from backend.app.core.redis_client import close_redis, ping_redis
from backend.app.db.session import engine, Base
from backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from backend.app.models.user import User  # noqa: F401
from backend.app.models.class_slot import ClassSlot  # noqa: F401
from backend.app.models.credit_ledger_entry import CreditLedgerEntry  # noqa: F401
from backend.app.models.booking import Booking  # noqa: F401
from backend.app.models.notification import Notification  # noqa: F401
from backend.app.models.audit_log import AuditLog  # noqa: F401
from backend.app.models.dlq import DeadLetterQueue  # noqa: F401


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Configures logging.
    2. Creates database tables on startup.
    """
    configure_logging()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()
    await close_redis()

app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Booking and credit ledger backend for a tutoring marketplace",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Redis only backs token revocation, so its absence degrades but does not fail health.
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "up" if await ping_redis() else "down",
    }


app.include_router(api_v1_router, prefix=f"/{settings.api_version}")

# Join links are handed to browsers, so they live outside the versioned API
app.include_router(bbb_router)


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to Tutoring Marketplace Backend API",
        "docs": "/docs",
        "health": "/health",
    }
