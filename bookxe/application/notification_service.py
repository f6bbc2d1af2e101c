"""Notification application service.

Persists notifications addressed to a single user or to every holder of a
role, turns booking domain events into notifications, and serves the
per-actor inbox.
"""

from typing import Sequence

import structlog

from bookxe.domain.base import DomainEvent
from bookxe.domain.entities import BookingRequest, NotificationEvent, NotificationSeverity
from bookxe.domain.events import (
    BookingApproved,
    BookingExpired,
    BookingRejected,
    BookingStageApproved,
    BookingSubmitted,
)
from bookxe.domain.state_machines import ActorRole
from bookxe.domain.value_objects import Actor
from bookxe.infrastructure.config import settings
from bookxe.infrastructure.repositories import NotificationStore, get_notification_store

logger = structlog.get_logger()

_STAGE_TITLES = {
    "viet": "Vietnamese manager",
    "korea": "Korean manager",
    "admin": "Admin",
}


def _stage_title(stage: str) -> str:
    return _STAGE_TITLES.get(stage, stage)


# ============================================================================
# Notification Service
# ============================================================================


class NotificationService:
    """Application service for notifications."""

    def __init__(
        self,
        store: NotificationStore | None = None,
        request_id: str | None = None,
        inbox_limit: int | None = None,
    ) -> None:
        """Initialize service.

        Args:
            store: Notification store.
            request_id: Request ID for correlation.
            inbox_limit: Default number of inbox entries returned.
        """
        self.store = store or get_notification_store()
        self.request_id = request_id
        self.inbox_limit = inbox_limit or settings.notification_inbox_limit

    async def emit(
        self,
        title: str,
        message: str,
        severity: NotificationSeverity = NotificationSeverity.INFO,
        target_user_id: str | None = None,
        target_role: str | None = None,
        booking_id: str | None = None,
    ) -> NotificationEvent:
        """Persist one notification.

        Args:
            title: Short title.
            message: Body text.
            severity: Presentation hint.
            target_user_id: Addressed user.
            target_role: Addressed role.
            booking_id: Related booking.

        Returns:
            The stored notification.

        Raises:
            ValidationError: If not exactly one target is given.
            PersistenceError: If the store write fails.
        """
        notification = NotificationEvent.create(
            title=title,
            message=message,
            severity=severity,
            target_user_id=target_user_id,
            target_role=target_role,
            booking_id=booking_id,
        )
        await self.store.add(notification)

        logger.debug(
            "Notification emitted",
            notification_id=notification.id,
            target_user_id=target_user_id,
            target_role=target_role,
            booking_id=booking_id,
            request_id=self.request_id,
        )
        return notification

    async def notify_for_events(
        self,
        booking: BookingRequest,
        events: Sequence[DomainEvent],
    ) -> list[str]:
        """Fan booking events out to notifications.

        Each notification is attempted on its own; one failing does not
        stop the others.

        Args:
            booking: Booking the events were recorded on.
            events: Collected domain events.

        Returns:
            Warning messages for notifications that could not be stored.
        """
        warnings: list[str] = []
        for event in events:
            for kwargs in self._notifications_for(booking, event):
                try:
                    await self.emit(booking_id=booking.id, **kwargs)
                except Exception as e:
                    target = kwargs.get("target_user_id") or kwargs.get("target_role")
                    logger.warning(
                        "Failed to emit notification",
                        booking_id=booking.id,
                        event_type=event.event_type,
                        target=target,
                        error=str(e),
                        request_id=self.request_id,
                    )
                    warnings.append(f"Notification to {target} failed: {e}")
        return warnings

    def _notifications_for(self, booking: BookingRequest, event: DomainEvent) -> list[dict]:
        requester = booking.requester_id
        destination = booking.destination

        if isinstance(event, BookingSubmitted):
            who = event.requester_name or event.requester_id
            return [
                {
                    "target_user_id": requester,
                    "title": "Booking submitted",
                    "message": f"Your booking to {destination} is waiting for Vietnamese manager approval.",
                },
                {
                    "target_role": ActorRole.MANAGER_VIET.value,
                    "title": "New booking request",
                    "message": f"{who} requested a vehicle to {destination}.",
                },
            ]
        if isinstance(event, BookingStageApproved):
            stage = _stage_title(event.stage)
            return [
                {
                    "target_user_id": requester,
                    "title": f"Approved by {stage}",
                    "message": (
                        f"Your booking to {destination} was approved by the {stage} "
                        f"and is now waiting for the {_stage_title(event.next_stage)}."
                    ),
                    "severity": NotificationSeverity.SUCCESS,
                },
                {
                    "target_role": event.next_role,
                    "title": "Booking awaiting your approval",
                    "message": f"A booking to {destination} was approved by the {stage}.",
                },
            ]
        if isinstance(event, BookingApproved):
            return [
                {
                    "target_user_id": requester,
                    "title": "Booking approved",
                    "message": f"Your booking to {destination} has been fully approved.",
                    "severity": NotificationSeverity.SUCCESS,
                }
            ]
        if isinstance(event, BookingRejected):
            return [
                {
                    "target_user_id": requester,
                    "title": "Booking rejected",
                    "message": (
                        f"Your booking to {destination} was rejected by the "
                        f"{_stage_title(event.stage)}."
                    ),
                    "severity": NotificationSeverity.ERROR,
                }
            ]
        if isinstance(event, BookingExpired):
            return [
                {
                    "target_user_id": requester,
                    "title": "Booking cancelled",
                    "message": (
                        f"Your booking to {destination} expired without approval "
                        "and was cancelled automatically."
                    ),
                    "severity": NotificationSeverity.WARNING,
                }
            ]
        return []

    # -------------------------------------------------------------------------
    # Inbox
    # -------------------------------------------------------------------------

    async def list_for_actor(self, actor: Actor, limit: int | None = None) -> list[NotificationEvent]:
        """Notifications addressed to the actor or the actor's role, newest first."""
        return await self.store.list_for_target(
            actor.identity, actor.role.value, limit or self.inbox_limit
        )

    async def mark_read(self, notification_id: str, actor: Actor) -> bool:
        """Mark a notification read.

        Returns:
            False if the notification does not exist or is addressed to someone else.
        """
        return await self.store.mark_read(notification_id, actor.identity, actor.role.value)

    async def mark_all_read(self, actor: Actor) -> int:
        """Mark all of the actor's notifications read.

        Returns:
            Number of notifications changed.
        """
        count = await self.store.mark_all_read(actor.identity, actor.role.value)
        logger.info(
            "Notifications marked read",
            user_id=actor.identity,
            role=actor.role.value,
            count=count,
            request_id=self.request_id,
        )
        return count


# ============================================================================
# Service Factory
# ============================================================================


def get_notification_service(request_id: str | None = None) -> NotificationService:
    """Get notification service instance.

    Args:
        request_id: Request ID for correlation.

    Returns:
        NotificationService instance.
    """
    return NotificationService(request_id=request_id)
