"""Booking application service.

The approval orchestrator and the only write path for booking requests:
- Creating requests in the first approval stage
- Approving or rejecting on behalf of a gating role
- Force-cancelling expired requests for the sweeper
- Listing work queues and read models

Every transition is decided by the state machine, applied to the
aggregate, then written with the read status as precondition. Events
recorded on the aggregate are fanned out to notifications after the
write commits.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

import structlog

from bookxe.application.notification_service import NotificationService
from bookxe.domain.base import DomainEvent, utcnow
from bookxe.domain.entities import BookingRequest
from bookxe.domain.exceptions import DomainError, PersistenceError, ValidationError
from bookxe.domain.state_machines import (
    ApprovalAction,
    BookingStatus,
    decide_transition,
)
from bookxe.domain.value_objects import Actor
from bookxe.infrastructure.config import settings
from bookxe.infrastructure.repositories import BookingStore, get_booking_store

logger = structlog.get_logger()


# ============================================================================
# Booking Data Transfer Objects
# ============================================================================


@dataclass
class BookingDraft:
    """Fields a requester supplies when creating a booking."""

    destination: str
    travel_time: datetime
    reason: str
    requester_name: str = ""
    requester_department: str = ""
    cargo_type: str | None = None
    cargo_weight: str | None = None
    vehicle_id: str | None = None
    vehicle_name: str | None = None
    driver_info: str | None = None


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class BookingResult:
    """Result of a single-booking operation."""

    booking: BookingRequest | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


@dataclass
class ListBookingsResult:
    """Result of listing bookings."""

    bookings: list[BookingRequest] = field(default_factory=list)
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


def _failure(error: DomainError) -> BookingResult:
    return BookingResult(
        success=False,
        error=error.message,
        error_code=error.error_code,
        details=error.details,
    )


# ============================================================================
# Booking Service
# ============================================================================


class BookingService:
    """Application service for booking requests.

    Expected failures (authorization, conflict, invalid transition, not
    found, validation) come back as unsuccessful results. Storage failures
    raise PersistenceError.
    """

    def __init__(
        self,
        store: BookingStore | None = None,
        notifications: NotificationService | None = None,
        request_id: str | None = None,
        grace: timedelta | None = None,
    ) -> None:
        """Initialize service.

        Args:
            store: Booking store.
            notifications: Notification service used for fan-out.
            request_id: Request ID for correlation.
            grace: How long after travel time a pending booking survives.
        """
        self.store = store or get_booking_store()
        self.notifications = notifications or NotificationService(request_id=request_id)
        self.request_id = request_id
        self.grace = grace if grace is not None else timedelta(hours=settings.expiry_grace_hours)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def create(self, actor: Actor, draft: BookingDraft) -> BookingResult:
        """Create a booking request waiting on the Vietnamese manager.

        Args:
            actor: Requester.
            draft: Submitted fields.

        Returns:
            BookingResult with the stored booking.

        Raises:
            PersistenceError: If the store write fails.
        """
        try:
            booking = BookingRequest.create(
                requester=actor,
                destination=draft.destination,
                travel_time=draft.travel_time,
                reason=draft.reason,
                requester_name=draft.requester_name,
                requester_department=draft.requester_department,
                cargo_type=draft.cargo_type,
                cargo_weight=draft.cargo_weight,
                vehicle_id=draft.vehicle_id,
                vehicle_name=draft.vehicle_name,
                driver_info=draft.driver_info,
            )
        except ValidationError as e:
            logger.info(
                "Booking rejected by validation",
                requester_id=actor.identity,
                error=e.message,
                request_id=self.request_id,
            )
            return _failure(e)

        stored = await self.store.add(booking)

        logger.info(
            "Booking created",
            booking_id=booking.id,
            requester_id=actor.identity,
            travel_time=booking.travel_time.isoformat(),
            request_id=self.request_id,
        )

        warnings = await self._publish(stored, booking.collect_events())
        return BookingResult(booking=stored, warnings=warnings)

    async def act(
        self,
        booking_id: str,
        actor: Actor,
        action: ApprovalAction | str,
    ) -> BookingResult:
        """Approve or reject a booking on behalf of a gating role.

        Args:
            booking_id: Booking identifier.
            actor: Acting user.
            action: ``approve`` or ``reject``.

        Returns:
            BookingResult with the updated booking.

        Raises:
            PersistenceError: If the store call fails.
        """
        try:
            action = ApprovalAction(action)
        except ValueError:
            return _failure(ValidationError("action", f"unknown action '{action}'"))
        if action == ApprovalAction.FORCE_CANCEL:
            return _failure(ValidationError("action", "force_cancel is reserved for expiry"))

        return await self._transition(booking_id, actor, action, utcnow())

    async def expire(self, booking_id: str, now: datetime | None = None) -> BookingResult:
        """Force-cancel a booking whose travel time passed the grace period.

        Args:
            booking_id: Booking identifier.
            now: Reference time, defaults to current UTC time.

        Returns:
            BookingResult with the cancelled booking.

        Raises:
            PersistenceError: If the store call fails.
        """
        return await self._transition(
            booking_id, Actor.system(), ApprovalAction.FORCE_CANCEL, now or utcnow()
        )

    async def _transition(
        self,
        booking_id: str,
        actor: Actor,
        action: ApprovalAction,
        now: datetime,
    ) -> BookingResult:
        booking = await self.store.get_by_id(booking_id)
        if booking is None:
            return BookingResult(
                success=False,
                error=f"Booking not found: {booking_id}",
                error_code="NOT_FOUND",
                details={"booking_id": booking_id},
            )

        current_status = booking.status
        try:
            decision = decide_transition(
                booking.snapshot(), actor.role, action, now, self.grace
            )
            booking.apply(decision, actor, now)
            stored = await self.store.update_where(
                booking.id, decision.from_status, booking.transition_changes()
            )
        except PersistenceError:
            raise
        except DomainError as e:
            logger.info(
                "Booking transition refused",
                booking_id=booking_id,
                current_status=current_status.value,
                action=action.value,
                actor_role=actor.role.value,
                error_code=e.error_code,
                details=e.details,
                request_id=self.request_id,
            )
            return _failure(e)

        logger.info(
            "Booking status transitioned",
            booking_id=booking_id,
            from_status=decision.from_status.value,
            to_status=decision.to_status.value,
            action=action.value,
            actor_id=actor.identity,
            actor_role=actor.role.value,
            request_id=self.request_id,
        )

        warnings = await self._publish(stored, booking.collect_events())
        return BookingResult(booking=stored, warnings=warnings)

    async def _publish(
        self, booking: BookingRequest, events: list[DomainEvent]
    ) -> list[str]:
        """Log committed events and fan them out as notifications.

        Returns:
            Warnings from notification delivery.
        """
        for event in events:
            logger.info("Domain event recorded", request_id=self.request_id, **event.to_dict())
        return await self.notifications.notify_for_events(booking, events)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def list_actionable(self, actor: Actor) -> ListBookingsResult:
        """Bookings waiting on the actor's stage, oldest first.

        Args:
            actor: Acting user.

        Returns:
            ListBookingsResult, empty for roles that gate nothing.
        """
        statuses = actor.role.gating_statuses()
        if not statuses:
            return ListBookingsResult()
        bookings = await self.store.query_by_status(statuses)
        return ListBookingsResult(bookings=bookings)

    async def get_booking(self, booking_id: str) -> BookingResult:
        """Get a booking by ID."""
        booking = await self.store.get_by_id(booking_id)
        if booking is None:
            return BookingResult(
                success=False,
                error=f"Booking not found: {booking_id}",
                error_code="NOT_FOUND",
                details={"booking_id": booking_id},
            )
        return BookingResult(booking=booking)

    async def list_for_requester(self, actor: Actor) -> ListBookingsResult:
        """The actor's own bookings, newest first."""
        bookings = await self.store.query_by_requester(actor.identity)
        return ListBookingsResult(bookings=bookings)

    async def list_schedule(self, start: datetime, end: datetime) -> ListBookingsResult:
        """Approved bookings travelling in [start, end), by travel time.

        Args:
            start: Window start, timezone-aware.
            end: Window end, timezone-aware.

        Returns:
            ListBookingsResult ordered by travel time.
        """
        for name, value in (("start", start), ("end", end)):
            if value.tzinfo is None or value.utcoffset() is None:
                error = ValidationError(name, "must be timezone-aware")
                return ListBookingsResult(
                    success=False,
                    error=error.message,
                    error_code=error.error_code,
                    details=error.details,
                )
        if end <= start:
            error = ValidationError("end", "must be after start")
            return ListBookingsResult(
                success=False,
                error=error.message,
                error_code=error.error_code,
                details=error.details,
            )

        bookings = await self.store.query_travel_window([BookingStatus.APPROVED], start, end)
        return ListBookingsResult(bookings=bookings)


# ============================================================================
# Service Factory
# ============================================================================


def get_booking_service(request_id: str | None = None) -> BookingService:
    """Get booking service instance.

    Args:
        request_id: Request ID for correlation.

    Returns:
        BookingService instance.
    """
    return BookingService(request_id=request_id)
