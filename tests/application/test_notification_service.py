"""Tests for the notification service."""

import pytest

from bookxe.application.notification_service import NotificationService
from bookxe.domain import Actor, ActorRole, NotificationSeverity
from bookxe.domain.exceptions import ValidationError
from bookxe.infrastructure.repositories import InMemoryNotificationStore

STAFF = Actor(identity="emp-1", role=ActorRole.STAFF)
OTHER_STAFF = Actor(identity="emp-2", role=ActorRole.STAFF)
VIET = Actor(identity="mgr-vn", role=ActorRole.MANAGER_VIET)
VIET_DEPUTY = Actor(identity="mgr-vn-2", role=ActorRole.MANAGER_VIET)
ADMIN = Actor(identity="hr-1", role=ActorRole.ADMIN)


class TestEmit:
    """Tests for NotificationService.emit."""

    async def test_emit_to_user(self, notifications: NotificationService) -> None:
        """A user-targeted notification is stored unread."""
        event = await notifications.emit(
            "Booking submitted",
            "Waiting for approval",
            severity=NotificationSeverity.INFO,
            target_user_id="emp-1",
            booking_id="bk-1",
        )

        inbox = await notifications.list_for_actor(STAFF)
        assert [n.id for n in inbox] == [event.id]
        assert not inbox[0].is_read
        assert inbox[0].booking_id == "bk-1"

    async def test_emit_requires_exactly_one_target(
        self, notifications: NotificationService, notification_store: InMemoryNotificationStore
    ) -> None:
        """Both or neither target is a validation error and nothing is stored."""
        with pytest.raises(ValidationError):
            await notifications.emit("t", "m", target_user_id="emp-1", target_role="admin")
        with pytest.raises(ValidationError):
            await notifications.emit("t", "m")

        assert await notification_store.list_for_target("emp-1", "admin", 10) == []


class TestInbox:
    """Tests for the per-actor inbox."""

    async def test_inbox_mixes_user_and_role_targets(
        self, notifications: NotificationService
    ) -> None:
        """An actor sees their own and their role's notifications, nothing else."""
        await notifications.emit("role", "m", target_role="manager_viet")
        await notifications.emit("mine", "m", target_user_id="mgr-vn")
        await notifications.emit("other user", "m", target_user_id="emp-2")
        await notifications.emit("other role", "m", target_role="admin")

        inbox = await notifications.list_for_actor(VIET)

        assert [n.title for n in inbox] == ["mine", "role"]

    async def test_inbox_limit(self, notifications: NotificationService) -> None:
        """The inbox honours the limit, newest first."""
        for i in range(5):
            await notifications.emit(f"n{i}", "m", target_user_id="emp-1")

        inbox = await notifications.list_for_actor(STAFF, limit=2)

        assert [n.title for n in inbox] == ["n4", "n3"]

    async def test_mark_read(self, notifications: NotificationService) -> None:
        """The addressee can mark a notification read; others cannot."""
        event = await notifications.emit("t", "m", target_user_id="emp-1")

        assert not await notifications.mark_read(event.id, OTHER_STAFF)
        assert await notifications.mark_read(event.id, STAFF)
        inbox = await notifications.list_for_actor(STAFF)
        assert inbox[0].is_read

    async def test_mark_read_unknown(self, notifications: NotificationService) -> None:
        """Unknown notifications report False."""
        assert not await notifications.mark_read("missing", STAFF)

    async def test_role_notification_read_is_shared(
        self, notifications: NotificationService
    ) -> None:
        """Reading a role notification marks it read for every holder of the role."""
        event = await notifications.emit("t", "m", target_role="manager_viet")

        assert await notifications.mark_read(event.id, VIET_DEPUTY)
        inbox = await notifications.list_for_actor(VIET)
        assert inbox[0].is_read

    async def test_mark_all_read(self, notifications: NotificationService) -> None:
        """mark_all_read only touches the actor's unread notifications."""
        await notifications.emit("a", "m", target_user_id="hr-1")
        await notifications.emit("b", "m", target_role="admin")
        await notifications.emit("c", "m", target_user_id="emp-1")

        assert await notifications.mark_all_read(ADMIN) == 2
        assert await notifications.mark_all_read(ADMIN) == 0
        staff_inbox = await notifications.list_for_actor(STAFF)
        assert not staff_inbox[0].is_read
