"""Application layer - Use case orchestration.

- **BookingService**: the approval orchestrator, the only booking write path
- **ExpirySweeper**: periodic cancellation of stale pending bookings
- **NotificationService**: notification fan-out and inbox
"""

from bookxe.application.booking_service import (
    BookingDraft,
    BookingResult,
    BookingService,
    ListBookingsResult,
    get_booking_service,
)
from bookxe.application.expiry_sweeper import (
    ExpirySweeper,
    SweepError,
    SweepReport,
    get_expiry_sweeper,
    reset_expiry_sweeper,
)
from bookxe.application.notification_service import (
    NotificationService,
    get_notification_service,
)

__all__ = [
    "BookingDraft",
    "BookingResult",
    "BookingService",
    "ListBookingsResult",
    "get_booking_service",
    "ExpirySweeper",
    "SweepError",
    "SweepReport",
    "get_expiry_sweeper",
    "reset_expiry_sweeper",
    "NotificationService",
    "get_notification_service",
]
