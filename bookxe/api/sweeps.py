"""Manual expiry sweep endpoint.

- POST /sweeps - run the expiry sweep now (admin only)
"""

from fastapi import APIRouter, Depends, status

from bookxe.api.deps import get_actor, get_service, raise_for_error
from bookxe.api.schemas import ErrorResponse, SweepErrorSchema, SweepReportResponse
from bookxe.application.booking_service import BookingService
from bookxe.application.expiry_sweeper import ExpirySweeper
from bookxe.domain.state_machines import ActorRole
from bookxe.domain.value_objects import Actor

router = APIRouter(prefix="/sweeps", tags=["Sweeps"])


@router.post(
    "",
    response_model=SweepReportResponse,
    status_code=status.HTTP_200_OK,
    responses={403: {"model": ErrorResponse, "description": "Admin only"}},
)
async def run_sweep(
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_service),
) -> SweepReportResponse:
    """Cancel pending bookings whose travel time is past the grace period."""
    if actor.role != ActorRole.ADMIN:
        raise_for_error(
            "AUTHORIZATION",
            "Only admins can trigger an expiry sweep",
            {"actor_role": actor.role.value},
        )

    report = await ExpirySweeper(service=service).run_sweep()
    return SweepReportResponse(
        cancelled_count=report.cancelled_count,
        skipped_count=report.skipped_count,
        errors=[
            SweepErrorSchema(
                booking_id=e.booking_id,
                error_code=e.error_code,
                message=e.message,
            )
            for e in report.errors
        ],
        started_at=report.started_at,
    )
