"""Shared API dependencies.

Resolves the calling actor from gateway headers and maps service
failures onto HTTP errors.
"""

from typing import Annotated, Any, NoReturn

from fastapi import Header, HTTPException, Request, status

from bookxe.application.booking_service import BookingService, get_booking_service
from bookxe.application.notification_service import (
    NotificationService,
    get_notification_service,
)
from bookxe.domain.state_machines import ActorRole
from bookxe.domain.value_objects import Actor

# Error code to HTTP status
ERROR_STATUS: dict[str, int] = {
    "AUTHORIZATION": status.HTTP_403_FORBIDDEN,
    "CONFLICT": status.HTTP_409_CONFLICT,
    "INVALID_TRANSITION": 422,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "VALIDATION": status.HTTP_400_BAD_REQUEST,
    "PERSISTENCE_FAILURE": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def raise_for_error(
    error_code: str | None,
    message: str | None,
    details: dict[str, Any] | None = None,
) -> NoReturn:
    """Raise the HTTPException matching a failed service result."""
    code = error_code or "ERROR"
    raise HTTPException(
        status_code=ERROR_STATUS.get(code, status.HTTP_400_BAD_REQUEST),
        detail={
            "error_code": code,
            "message": message or code,
            "details": details or {},
        },
    )


# ============================================================================
# Actor Resolution
# ============================================================================


def get_actor(
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_role: Annotated[str | None, Header()] = None,
) -> Actor:
    """Resolve the acting user from ``X-User-Id`` and ``X-User-Role``.

    The upstream gateway authenticates users and forwards their identity;
    this service trusts those headers once the API key is valid.

    Raises:
        HTTPException: 401 if a header is missing, 403 for an unknown or
            non-human role.
    """
    if not x_user_id or not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "UNAUTHORIZED",
                "message": "X-User-Id and X-User-Role headers are required",
                "details": {},
            },
        )

    try:
        role = ActorRole(x_user_role.strip().lower())
    except ValueError:
        role = None
    if role is None or role == ActorRole.SYSTEM:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error_code": "AUTHORIZATION",
                "message": f"Unknown role: {x_user_role}",
                "details": {"role": x_user_role},
            },
        )

    return Actor(identity=x_user_id.strip(), role=role)


# ============================================================================
# Services
# ============================================================================


def get_service(request: Request) -> BookingService:
    """Get booking service with request ID."""
    request_id = getattr(request.state, "request_id", None)
    return get_booking_service(request_id=request_id)


def get_notifications(request: Request) -> NotificationService:
    """Get notification service with request ID."""
    request_id = getattr(request.state, "request_id", None)
    return get_notification_service(request_id=request_id)
