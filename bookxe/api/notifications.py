"""Notification inbox endpoints.

- GET /notifications - notifications for the caller and the caller's role
- POST /notifications/{id}/read - mark one read
- POST /notifications/read-all - mark all read
"""

from fastapi import APIRouter, Depends, Query

from bookxe.api.deps import get_actor, get_notifications, raise_for_error
from bookxe.api.schemas import (
    ErrorResponse,
    MarkAllReadResponse,
    NotificationResponse,
    NotificationSeverityEnum,
    NotificationsListResponse,
)
from bookxe.application.notification_service import NotificationService
from bookxe.domain.entities import NotificationEvent
from bookxe.domain.value_objects import Actor

router = APIRouter(prefix="/notifications", tags=["Notifications"])


def notification_to_response(notification: NotificationEvent) -> NotificationResponse:
    """Convert NotificationEvent to NotificationResponse."""
    return NotificationResponse(
        id=notification.id,
        title=notification.title,
        message=notification.message,
        severity=NotificationSeverityEnum(notification.severity.value),
        target_user_id=notification.target_user_id,
        target_role=notification.target_role,
        booking_id=notification.booking_id,
        is_read=notification.is_read,
        created_at=notification.created_at,
    )


@router.get("", response_model=NotificationsListResponse)
async def list_notifications(
    limit: int | None = Query(default=None, ge=1, le=200, description="Maximum entries"),
    actor: Actor = Depends(get_actor),
    service: NotificationService = Depends(get_notifications),
) -> NotificationsListResponse:
    """List the caller's inbox, newest first."""
    notifications = await service.list_for_actor(actor, limit)
    return NotificationsListResponse(
        items=[notification_to_response(n) for n in notifications],
        unread_count=sum(1 for n in notifications if not n.is_read),
    )


@router.post(
    "/read-all",
    response_model=MarkAllReadResponse,
)
async def mark_all_notifications_read(
    actor: Actor = Depends(get_actor),
    service: NotificationService = Depends(get_notifications),
) -> MarkAllReadResponse:
    """Mark every notification in the caller's inbox read."""
    return MarkAllReadResponse(updated=await service.mark_all_read(actor))


@router.post(
    "/{notification_id}/read",
    status_code=204,
    responses={404: {"model": ErrorResponse, "description": "Notification not found"}},
)
async def mark_notification_read(
    notification_id: str,
    actor: Actor = Depends(get_actor),
    service: NotificationService = Depends(get_notifications),
) -> None:
    """Mark one notification read."""
    if not await service.mark_read(notification_id, actor):
        raise_for_error(
            "NOT_FOUND",
            f"Notification not found: {notification_id}",
            {"notification_id": notification_id},
        )
