"""Liveness and readiness checks."""

import structlog
from fastapi import APIRouter
from pydantic import BaseModel

from bookxe.api.deps import raise_for_error
from bookxe.api.schemas import ErrorResponse
from bookxe.domain.exceptions import PersistenceError
from bookxe.infrastructure.config import settings
from bookxe.infrastructure.repositories import get_booking_store

logger = structlog.get_logger()

router = APIRouter()


class HealthResponse(BaseModel):
    """Liveness check response."""

    status: str
    service: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    status: str
    storage: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Report that the process is up. Touches no dependencies."""
    return HealthResponse(
        status="healthy",
        service="bookxe-api",
        version=settings.api_version,
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ErrorResponse}},
)
async def readiness_check() -> ReadinessResponse:
    """Report whether the booking store can serve queries.

    Raises:
        HTTPException: 503 PERSISTENCE_FAILURE if the store check fails.
    """
    try:
        await get_booking_store().ping()
    except PersistenceError as e:
        logger.warning("Readiness check failed", storage=settings.storage_backend, error=e.message)
        raise_for_error(e.error_code, e.message, e.details)

    return ReadinessResponse(status="ready", storage=settings.storage_backend)
