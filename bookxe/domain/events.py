"""Domain events for booking requests.

Events are recorded by the booking aggregate on every transition and
collected by the orchestrator after the write commits. The notification
emitter turns them into per-user and per-role notifications.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from bookxe.domain.base import DomainEvent, utcnow


@dataclass(frozen=True)
class BookingSubmitted(DomainEvent):
    """Event raised when a new booking request is created."""

    event_type: ClassVar[str] = "booking.submitted"

    booking_id: str = ""
    requester_id: str = ""
    requester_name: str = ""
    destination: str = ""
    travel_time: datetime = field(default_factory=utcnow)

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {
            "booking_id": self.booking_id,
            "requester_id": self.requester_id,
            "requester_name": self.requester_name,
            "destination": self.destination,
            "travel_time": self.travel_time.isoformat(),
        }


@dataclass(frozen=True)
class BookingStageApproved(DomainEvent):
    """Event raised when a non-final stage approves a booking."""

    event_type: ClassVar[str] = "booking.stage_approved"

    booking_id: str = ""
    requester_id: str = ""
    destination: str = ""
    stage: str = ""
    approved_by: str = ""
    next_stage: str = ""
    next_role: str = ""

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {
            "booking_id": self.booking_id,
            "requester_id": self.requester_id,
            "destination": self.destination,
            "stage": self.stage,
            "approved_by": self.approved_by,
            "next_stage": self.next_stage,
            "next_role": self.next_role,
        }


@dataclass(frozen=True)
class BookingApproved(DomainEvent):
    """Event raised when the admin stage approves, reserving the vehicle."""

    event_type: ClassVar[str] = "booking.approved"

    booking_id: str = ""
    requester_id: str = ""
    destination: str = ""
    approved_by: str = ""
    approved_at: datetime = field(default_factory=utcnow)

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {
            "booking_id": self.booking_id,
            "requester_id": self.requester_id,
            "destination": self.destination,
            "approved_by": self.approved_by,
            "approved_at": self.approved_at.isoformat(),
        }


@dataclass(frozen=True)
class BookingRejected(DomainEvent):
    """Event raised when any stage rejects a booking."""

    event_type: ClassVar[str] = "booking.rejected"

    booking_id: str = ""
    requester_id: str = ""
    destination: str = ""
    stage: str = ""
    rejected_by: str = ""

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {
            "booking_id": self.booking_id,
            "requester_id": self.requester_id,
            "destination": self.destination,
            "stage": self.stage,
            "rejected_by": self.rejected_by,
        }


@dataclass(frozen=True)
class BookingExpired(DomainEvent):
    """Event raised when the sweeper cancels a stale booking."""

    event_type: ClassVar[str] = "booking.expired"

    booking_id: str = ""
    requester_id: str = ""
    destination: str = ""
    previous_status: str = ""
    travel_time: datetime = field(default_factory=utcnow)

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {
            "booking_id": self.booking_id,
            "requester_id": self.requester_id,
            "destination": self.destination,
            "previous_status": self.previous_status,
            "travel_time": self.travel_time.isoformat(),
        }

