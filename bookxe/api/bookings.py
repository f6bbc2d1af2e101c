"""Booking API endpoints.

- POST /bookings - create a booking request
- GET /bookings/mine - the caller's own bookings
- GET /bookings/actionable - bookings waiting on the caller's stage
- GET /bookings/schedule - approved bookings in a travel window
- GET /bookings/{id} - booking details
- POST /bookings/{id}/approve - approve the caller's stage
- POST /bookings/{id}/reject - reject at the caller's stage
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status

from bookxe.api.deps import get_actor, get_service, raise_for_error
from bookxe.api.schemas import (
    ApprovalStagesSchema,
    BookingActionResponse,
    BookingCreateRequest,
    BookingResponse,
    BookingsListResponse,
    BookingStatusEnum,
    ErrorResponse,
    StageStatusEnum,
)
from bookxe.application.booking_service import (
    BookingDraft,
    BookingResult,
    BookingService,
    ListBookingsResult,
)
from bookxe.domain.entities import BookingRequest
from bookxe.domain.state_machines import ApprovalAction
from bookxe.domain.value_objects import Actor

router = APIRouter(prefix="/bookings", tags=["Bookings"])

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation failed"},
    403: {"model": ErrorResponse, "description": "Role may not act"},
    404: {"model": ErrorResponse, "description": "Booking not found"},
    409: {"model": ErrorResponse, "description": "Booking changed concurrently"},
    422: {"model": ErrorResponse, "description": "Transition not allowed"},
}


# ============================================================================
# Converters
# ============================================================================


def booking_to_response(booking: BookingRequest) -> BookingResponse:
    """Convert BookingRequest to BookingResponse."""
    return BookingResponse(
        id=booking.id,
        requester_id=booking.requester_id,
        requester_name=booking.requester_name,
        requester_department=booking.requester_department,
        destination=booking.destination,
        travel_time=booking.travel_time,
        reason=booking.reason,
        cargo_type=booking.cargo_type,
        cargo_weight=booking.cargo_weight,
        vehicle_id=booking.vehicle_id,
        vehicle_name=booking.vehicle_name,
        driver_info=booking.driver_info,
        status=BookingStatusEnum(booking.status.value),
        stages=ApprovalStagesSchema(
            viet=StageStatusEnum(booking.viet_stage.value),
            korea=StageStatusEnum(booking.korea_stage.value),
            admin=StageStatusEnum(booking.admin_stage.value),
        ),
        approver_viet_id=booking.approver_viet_id,
        approver_korea_id=booking.approver_korea_id,
        approved_by=booking.approved_by,
        approved_at=booking.approved_at,
        rejected_by=booking.rejected_by,
        cancelled_at=booking.cancelled_at,
        resolved_at=booking.resolved_at,
        created_at=booking.created_at,
        updated_at=booking.updated_at,
    )


def _action_response(result: BookingResult) -> BookingActionResponse:
    if not result.success or result.booking is None:
        raise_for_error(result.error_code, result.error, result.details)
    return BookingActionResponse(
        booking=booking_to_response(result.booking),
        warnings=result.warnings,
    )


def _list_response(result: ListBookingsResult) -> BookingsListResponse:
    if not result.success:
        raise_for_error(result.error_code, result.error, result.details)
    return BookingsListResponse(
        items=[booking_to_response(b) for b in result.bookings],
        total=len(result.bookings),
    )


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "",
    response_model=BookingActionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: _ERROR_RESPONSES[400]},
)
async def create_booking(
    body: BookingCreateRequest,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_service),
) -> BookingActionResponse:
    """Create a booking request in the first approval stage."""
    result = await service.create(
        actor,
        BookingDraft(
            destination=body.destination,
            travel_time=body.travel_time,
            reason=body.reason,
            requester_name=body.requester_name,
            requester_department=body.requester_department,
            cargo_type=body.cargo_type,
            cargo_weight=body.cargo_weight,
            vehicle_id=body.vehicle_id,
            vehicle_name=body.vehicle_name,
            driver_info=body.driver_info,
        ),
    )
    return _action_response(result)


@router.get("/mine", response_model=BookingsListResponse)
async def list_my_bookings(
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_service),
) -> BookingsListResponse:
    """List the caller's bookings, newest first."""
    return _list_response(await service.list_for_requester(actor))


@router.get("/actionable", response_model=BookingsListResponse)
async def list_actionable_bookings(
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_service),
) -> BookingsListResponse:
    """List bookings waiting on the caller's approval stage, oldest first."""
    return _list_response(await service.list_actionable(actor))


@router.get(
    "/schedule",
    response_model=BookingsListResponse,
    responses={400: _ERROR_RESPONSES[400]},
)
async def list_schedule(
    start: datetime = Query(..., description="Window start (inclusive), with timezone"),
    end: datetime = Query(..., description="Window end (exclusive), with timezone"),
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_service),
) -> BookingsListResponse:
    """List approved bookings travelling inside a time window."""
    return _list_response(await service.list_schedule(start, end))


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    responses={404: _ERROR_RESPONSES[404]},
)
async def get_booking(
    booking_id: str,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_service),
) -> BookingResponse:
    """Get booking details."""
    result = await service.get_booking(booking_id)
    if not result.success or result.booking is None:
        raise_for_error(result.error_code, result.error, result.details)
    return booking_to_response(result.booking)


@router.post(
    "/{booking_id}/approve",
    response_model=BookingActionResponse,
    responses=_ERROR_RESPONSES,
)
async def approve_booking(
    booking_id: str,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_service),
) -> BookingActionResponse:
    """Approve the stage the caller's role gates."""
    return _action_response(await service.act(booking_id, actor, ApprovalAction.APPROVE))


@router.post(
    "/{booking_id}/reject",
    response_model=BookingActionResponse,
    responses=_ERROR_RESPONSES,
)
async def reject_booking(
    booking_id: str,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_service),
) -> BookingActionResponse:
    """Reject the booking at the caller's stage."""
    return _action_response(await service.act(booking_id, actor, ApprovalAction.REJECT))
