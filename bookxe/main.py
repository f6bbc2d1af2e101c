"""Booking approval API main application module.

This module initializes the FastAPI application and configures
core middleware, routers, startup/shutdown events and the expiry
sweeper background task.
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bookxe.api.bookings import router as bookings_router
from bookxe.api.deps import ERROR_STATUS
from bookxe.api.health import router as health_router
from bookxe.api.middleware import setup_middleware
from bookxe.api.notifications import router as notifications_router
from bookxe.api.sweeps import router as sweeps_router
from bookxe.application.expiry_sweeper import get_expiry_sweeper
from bookxe.domain.exceptions import DomainError
from bookxe.infrastructure.config import settings
from bookxe.infrastructure.logging import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown events.

    Args:
        app: The FastAPI application instance.

    Yields:
        None after startup, cleanup happens after yield.
    """
    configure_logging()
    logger.info(
        "Starting booking approval API",
        version=settings.api_version,
        debug=settings.debug,
        storage_backend=settings.storage_backend,
    )

    sweeper_task: asyncio.Task | None = None
    if settings.sweeper_enabled:
        sweeper = get_expiry_sweeper()
        sweeper_task = asyncio.create_task(sweeper.run_forever())

    yield

    logger.info("Shutting down booking approval API")
    if sweeper_task is not None:
        get_expiry_sweeper().stop()
        try:
            await asyncio.wait_for(sweeper_task, timeout=10)
        except asyncio.TimeoutError:
            sweeper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper_task


app = FastAPI(
    title="Vehicle Booking Approval API",
    description="Three-stage approval workflow for internal vehicle bookings",
    version=settings.api_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware (must be added before custom middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Setup custom middleware (request ID, API key auth)
setup_middleware(app)

# Include routers
app.include_router(health_router, tags=["Health"])
app.include_router(bookings_router)
app.include_router(notifications_router)
app.include_router(sweeps_router)


# ============================================================================
# Custom Exception Handlers
# ============================================================================


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions with consistent format."""
    request_id = getattr(request.state, "request_id", None)

    detail = exc.detail
    if isinstance(detail, dict):
        error_code = detail.get("error_code", "ERROR")
        message = detail.get("message", str(detail))
        details = detail.get("details", {})
    else:
        error_code = "ERROR"
        message = str(detail)
        details = {}

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": message,
            "details": details,
            "request_id": request_id,
        },
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report request body and query validation failures as VALIDATION."""
    request_id = getattr(request.state, "request_id", None)
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=ERROR_STATUS["VALIDATION"],
        content={
            "error_code": "VALIDATION",
            "message": "Request validation failed",
            "details": {"errors": errors},
            "request_id": request_id,
        },
    )


@app.exception_handler(DomainError)
async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Handle domain errors that escape a service (storage failures)."""
    request_id = getattr(request.state, "request_id", None)

    logger.error(
        "Domain error escaped handler",
        path=request.url.path,
        method=request.method,
        error_code=exc.error_code,
        error=exc.message,
    )

    return JSONResponse(
        status_code=ERROR_STATUS.get(exc.error_code, 500),
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
            "request_id": request_id,
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions with consistent format."""
    request_id = getattr(request.state, "request_id", None)

    logger.exception(
        "Unhandled exception in handler",
        path=request.url.path,
        method=request.method,
        error=str(exc),
    )

    return JSONResponse(
        status_code=500,
        content={
            "error_code": "INTERNAL_ERROR",
            "message": "An internal error occurred",
            "details": {},
            "request_id": request_id,
        },
    )
