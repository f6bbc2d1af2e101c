"""Tests for the booking approval orchestrator."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from structlog.testing import capture_logs

from bookxe.application.booking_service import BookingDraft, BookingService
from bookxe.application.notification_service import NotificationService
from bookxe.domain import (
    Actor,
    ActorRole,
    ApprovalAction,
    BookingRequest,
    BookingStatus,
    StageStatus,
)
from bookxe.domain.exceptions import PersistenceError
from bookxe.infrastructure.repositories import InMemoryBookingStore, InMemoryNotificationStore

STAFF = Actor(identity="emp-1", role=ActorRole.STAFF)
OTHER_STAFF = Actor(identity="emp-2", role=ActorRole.STAFF)
VIET = Actor(identity="mgr-vn", role=ActorRole.MANAGER_VIET)
KOREA = Actor(identity="mgr-kr", role=ActorRole.MANAGER_KOREA)
ADMIN = Actor(identity="hr-1", role=ActorRole.ADMIN)


def make_draft(**overrides) -> BookingDraft:
    """Create a test booking draft."""
    fields = {
        "destination": "Hai Phong port",
        "travel_time": datetime.now(timezone.utc) + timedelta(days=2),
        "reason": "Deliver samples",
        "requester_name": "Nguyen Van A",
    }
    fields.update(overrides)
    return BookingDraft(**fields)


async def create_booking(service: BookingService, actor: Actor = STAFF, **overrides) -> BookingRequest:
    """Create a booking and return it."""
    result = await service.create(actor, make_draft(**overrides))
    assert result.success, result.error
    return result.booking


class FailingNotificationStore(InMemoryNotificationStore):
    """Notification store whose writes always fail."""

    async def add(self, notification):
        raise PersistenceError("add_notification", RuntimeError("smtp down"))


class GatedBookingStore(InMemoryBookingStore):
    """Booking store that holds readers until ``readers`` of them arrived."""

    def __init__(self, readers: int) -> None:
        super().__init__()
        self.gate_reads = False
        self._readers = readers
        self._arrived = 0
        self._all_read = asyncio.Event()

    async def get_by_id(self, booking_id: str):
        row = await super().get_by_id(booking_id)
        if self.gate_reads:
            self._arrived += 1
            if self._arrived >= self._readers:
                self._all_read.set()
            await self._all_read.wait()
        return row


class RejectedUnderneathStore(InMemoryBookingStore):
    """Booking store where another manager rejects just before each write."""

    async def update_where(self, booking_id, expected_status, changes):
        await super().update_where(
            booking_id,
            expected_status,
            {"status": BookingStatus.REJECTED, "viet_stage": StageStatus.REJECTED},
        )
        return await super().update_where(booking_id, expected_status, changes)


async def seed_legacy_booking(
    store: InMemoryBookingStore, travel_time: datetime | None = None
) -> BookingRequest:
    """Store a booking in the legacy unstaged ``pending`` status."""
    booking = BookingRequest.create(
        requester=STAFF,
        destination="Hai Duong warehouse",
        travel_time=travel_time or datetime.now(timezone.utc) + timedelta(days=1),
        reason="Stock count",
    )
    booking.status = BookingStatus.PENDING
    return await store.add(booking)


class BrokenBookingStore(InMemoryBookingStore):
    """Booking store whose conditional update always fails."""

    async def update_where(self, booking_id, expected_status, changes):
        raise PersistenceError("update_where", RuntimeError("connection reset"))


# ============================================================================
# Create
# ============================================================================


class TestCreate:
    """Tests for BookingService.create."""

    async def test_create_persists_pending_viet(
        self, service: BookingService, booking_store: InMemoryBookingStore
    ) -> None:
        """A new booking is stored in PENDING_VIET."""
        booking = await create_booking(service)

        stored = await booking_store.get_by_id(booking.id)
        assert stored is not None
        assert stored.status == BookingStatus.PENDING_VIET
        assert stored.requester_id == "emp-1"

    async def test_create_notifies_requester_and_viet_managers(
        self, service: BookingService, notifications: NotificationService
    ) -> None:
        """Creation confirms to the requester and alerts manager_viet."""
        booking = await create_booking(service)

        requester_inbox = await notifications.list_for_actor(STAFF)
        manager_inbox = await notifications.list_for_actor(VIET)
        assert [n.booking_id for n in requester_inbox] == [booking.id]
        assert [n.target_role for n in manager_inbox] == ["manager_viet"]

    async def test_create_then_list_actionable(self, service: BookingService) -> None:
        """A created booking shows up for manager_viet only."""
        booking = await create_booking(service)

        viet = await service.list_actionable(VIET)
        korea = await service.list_actionable(KOREA)
        admin = await service.list_actionable(ADMIN)

        assert [b.id for b in viet.bookings] == [booking.id]
        assert korea.bookings == []
        assert admin.bookings == []

    async def test_create_validation_error(self, service: BookingService) -> None:
        """Blank reason is reported as VALIDATION without persisting."""
        result = await service.create(STAFF, make_draft(reason=" "))

        assert not result.success
        assert result.error_code == "VALIDATION"
        assert (await service.list_for_requester(STAFF)).bookings == []

    async def test_create_naive_travel_time(self, service: BookingService) -> None:
        """A naive travel time is reported as VALIDATION."""
        result = await service.create(STAFF, make_draft(travel_time=datetime(2026, 10, 20, 9)))

        assert result.error_code == "VALIDATION"
        assert result.details["field"] == "travel_time"


# ============================================================================
# Act
# ============================================================================


class TestAct:
    """Tests for BookingService.act."""

    async def test_full_chain_to_approved(self, service: BookingService) -> None:
        """Three approvals in order reach APPROVED."""
        booking = await create_booking(service)

        first = await service.act(booking.id, VIET, ApprovalAction.APPROVE)
        assert first.booking.status == BookingStatus.PENDING_KOREA
        second = await service.act(booking.id, KOREA, "approve")
        assert second.booking.status == BookingStatus.PENDING_ADMIN
        final = await service.act(booking.id, ADMIN, ApprovalAction.APPROVE)

        assert final.success
        assert final.booking.status == BookingStatus.APPROVED
        assert final.booking.approved_by == "hr-1"
        assert final.booking.resolved_at is not None

    async def test_korea_on_pending_viet_is_authorization(
        self, service: BookingService, booking_store: InMemoryBookingStore
    ) -> None:
        """manager_korea cannot act before the Vietnamese stage; nothing changes."""
        booking = await create_booking(service)

        result = await service.act(booking.id, KOREA, ApprovalAction.APPROVE)

        assert not result.success
        assert result.error_code == "AUTHORIZATION"
        stored = await booking_store.get_by_id(booking.id)
        assert stored.status == BookingStatus.PENDING_VIET
        assert stored.updated_at == booking.updated_at

    async def test_admin_after_rejection_is_invalid_transition(
        self, service: BookingService
    ) -> None:
        """Once rejected, even admin approval is INVALID_TRANSITION."""
        booking = await create_booking(service)
        await service.act(booking.id, VIET, ApprovalAction.APPROVE)
        rejected = await service.act(booking.id, KOREA, ApprovalAction.REJECT)
        assert rejected.booking.status == BookingStatus.REJECTED
        assert rejected.booking.admin_stage.value == "pending"

        result = await service.act(booking.id, ADMIN, ApprovalAction.APPROVE)

        assert result.error_code == "INVALID_TRANSITION"

    async def test_staff_cannot_act(self, service: BookingService) -> None:
        """staff gets AUTHORIZATION."""
        booking = await create_booking(service)

        result = await service.act(booking.id, OTHER_STAFF, ApprovalAction.APPROVE)

        assert result.error_code == "AUTHORIZATION"

    async def test_unknown_booking(self, service: BookingService) -> None:
        """Acting on a missing booking is NOT_FOUND."""
        result = await service.act("missing", VIET, ApprovalAction.APPROVE)

        assert result.error_code == "NOT_FOUND"

    async def test_unknown_action(self, service: BookingService) -> None:
        """An unknown action is a VALIDATION failure."""
        booking = await create_booking(service)

        result = await service.act(booking.id, VIET, "escalate")

        assert result.error_code == "VALIDATION"

    async def test_force_cancel_not_available_to_act(self, service: BookingService) -> None:
        """force_cancel is only reachable through expire()."""
        booking = await create_booking(service)

        result = await service.act(booking.id, ADMIN, ApprovalAction.FORCE_CANCEL)

        assert result.error_code == "VALIDATION"

    async def test_stage_approval_notifies_requester_and_next_role(
        self, service: BookingService, notifications: NotificationService
    ) -> None:
        """Approve-but-not-final notifies the requester and the next stage's role."""
        booking = await create_booking(service)
        await service.act(booking.id, VIET, ApprovalAction.APPROVE)

        korea_inbox = await notifications.list_for_actor(KOREA)
        requester_inbox = await notifications.list_for_actor(STAFF)

        assert len(korea_inbox) == 1
        assert korea_inbox[0].target_role == "manager_korea"
        assert requester_inbox[0].title == "Approved by Vietnamese manager"

    async def test_notification_failure_becomes_warning(
        self, booking_store: InMemoryBookingStore
    ) -> None:
        """A failing notification store leaves the transition committed."""
        service = BookingService(
            store=booking_store,
            notifications=NotificationService(store=FailingNotificationStore()),
        )
        booking = await create_booking(service)

        result = await service.act(booking.id, VIET, ApprovalAction.APPROVE)

        assert result.success
        assert result.warnings
        stored = await booking_store.get_by_id(booking.id)
        assert stored.status == BookingStatus.PENDING_KOREA

    async def test_concurrent_actions_one_conflict(self) -> None:
        """Two managers acting on the same read state: one wins, one CONFLICT."""
        store = GatedBookingStore(readers=2)
        service = BookingService(
            store=store,
            notifications=NotificationService(store=InMemoryNotificationStore()),
        )
        booking = await create_booking(service)
        store.gate_reads = True

        other_viet = Actor(identity="mgr-vn-2", role=ActorRole.MANAGER_VIET)
        results = await asyncio.gather(
            service.act(booking.id, VIET, ApprovalAction.APPROVE),
            service.act(booking.id, other_viet, ApprovalAction.REJECT),
        )

        codes = sorted(r.error_code or "OK" for r in results)
        assert codes == ["CONFLICT", "OK"]
        winner = next(r for r in results if r.success)
        store.gate_reads = False
        stored = await store.get_by_id(booking.id)
        assert stored.status == winner.booking.status

    async def test_conflict_log_reports_status_read(self) -> None:
        """A refused write logs the status it was decided against."""
        service = BookingService(
            store=RejectedUnderneathStore(),
            notifications=NotificationService(store=InMemoryNotificationStore()),
        )
        booking = await create_booking(service)

        with capture_logs() as logs:
            result = await service.act(booking.id, VIET, ApprovalAction.APPROVE)

        assert result.error_code == "CONFLICT"
        refused = next(e for e in logs if e["event"] == "Booking transition refused")
        assert refused["current_status"] == "pending_viet"
        assert refused["details"]["actual_status"] == "rejected"

    async def test_committed_events_are_logged(self, service: BookingService) -> None:
        """Each committed transition logs its serialized domain event."""
        booking = await create_booking(service)

        with capture_logs() as logs:
            await service.act(booking.id, VIET, ApprovalAction.APPROVE)

        recorded = [e for e in logs if e["event"] == "Domain event recorded"]
        assert len(recorded) == 1
        assert recorded[0]["event_type"] == "booking.stage_approved"
        assert recorded[0]["aggregate_id"] == booking.id
        assert recorded[0]["payload"]["next_role"] == "manager_korea"

    async def test_refused_action_logs_no_event(self, service: BookingService) -> None:
        """Nothing is logged as recorded when the transition is refused."""
        booking = await create_booking(service)

        with capture_logs() as logs:
            await service.act(booking.id, KOREA, ApprovalAction.APPROVE)

        assert not [e for e in logs if e["event"] == "Domain event recorded"]

    async def test_persistence_failure_propagates(self) -> None:
        """Storage failures raise instead of returning a result."""
        service = BookingService(
            store=BrokenBookingStore(),
            notifications=NotificationService(store=InMemoryNotificationStore()),
        )
        booking = await create_booking(service)

        with pytest.raises(PersistenceError):
            await service.act(booking.id, VIET, ApprovalAction.APPROVE)


# ============================================================================
# Expire
# ============================================================================


class TestExpire:
    """Tests for BookingService.expire."""

    async def test_expire_cancels_and_notifies(
        self, service: BookingService, notifications: NotificationService
    ) -> None:
        """An expired booking is cancelled and the requester told."""
        now = datetime.now(timezone.utc)
        booking = await create_booking(service, travel_time=now - timedelta(hours=30))

        result = await service.expire(booking.id, now)

        assert result.success
        assert result.booking.status == BookingStatus.CANCELLED
        assert result.booking.cancelled_at == now
        inbox = await notifications.list_for_actor(STAFF)
        assert inbox[0].title == "Booking cancelled"

    async def test_expire_inside_grace(self, service: BookingService) -> None:
        """A booking 10h past travel time is not expired."""
        now = datetime.now(timezone.utc)
        booking = await create_booking(service, travel_time=now - timedelta(hours=10))

        result = await service.expire(booking.id, now)

        assert result.error_code == "INVALID_TRANSITION"

    async def test_expire_respects_configured_grace(
        self, booking_store: InMemoryBookingStore, notifications: NotificationService
    ) -> None:
        """A shorter grace period expires earlier."""
        service = BookingService(
            store=booking_store, notifications=notifications, grace=timedelta(hours=1)
        )
        now = datetime.now(timezone.utc)
        booking = await create_booking(service, travel_time=now - timedelta(hours=10))

        result = await service.expire(booking.id, now)

        assert result.booking.status == BookingStatus.CANCELLED


# ============================================================================
# Queries
# ============================================================================


class TestQueries:
    """Tests for read operations."""

    async def test_list_actionable_oldest_first(self, service: BookingService) -> None:
        """Actionable bookings are ordered by creation time."""
        first = await create_booking(service, destination="Hanoi")
        second = await create_booking(service, destination="Da Nang")

        result = await service.list_actionable(VIET)

        assert [b.id for b in result.bookings] == [first.id, second.id]

    async def test_list_actionable_for_staff_is_empty(self, service: BookingService) -> None:
        """staff never has actionable bookings."""
        await create_booking(service)

        result = await service.list_actionable(STAFF)

        assert result.success
        assert result.bookings == []

    async def test_list_for_requester_newest_first(self, service: BookingService) -> None:
        """My bookings are newest first and only mine."""
        first = await create_booking(service, destination="Hanoi")
        second = await create_booking(service, destination="Da Nang")
        await create_booking(service, actor=OTHER_STAFF)

        result = await service.list_for_requester(STAFF)

        assert [b.id for b in result.bookings] == [second.id, first.id]

    async def test_get_booking(self, service: BookingService) -> None:
        """get_booking returns the stored booking or NOT_FOUND."""
        booking = await create_booking(service)

        found = await service.get_booking(booking.id)
        missing = await service.get_booking("missing")

        assert found.booking.id == booking.id
        assert missing.error_code == "NOT_FOUND"

    async def test_list_schedule_only_approved_in_window(self, service: BookingService) -> None:
        """The schedule holds approved bookings inside the window."""
        travel = datetime.now(timezone.utc) + timedelta(days=2)
        approved = await create_booking(service, travel_time=travel)
        for actor in (VIET, KOREA, ADMIN):
            await service.act(approved.id, actor, ApprovalAction.APPROVE)
        await create_booking(service, travel_time=travel)

        result = await service.list_schedule(
            travel - timedelta(hours=1), travel + timedelta(hours=1)
        )
        outside = await service.list_schedule(
            travel + timedelta(hours=1), travel + timedelta(hours=5)
        )

        assert [b.id for b in result.bookings] == [approved.id]
        assert outside.bookings == []

    async def test_list_schedule_rejects_inverted_window(self, service: BookingService) -> None:
        """end must be after start."""
        now = datetime.now(timezone.utc)

        result = await service.list_schedule(now, now - timedelta(hours=1))

        assert result.error_code == "VALIDATION"


# ============================================================================
# Legacy pending status
# ============================================================================


class TestLegacyPending:
    """Stored ``pending`` rows behave like ``pending_viet``."""

    async def test_listed_for_viet_managers(
        self, service: BookingService, booking_store: InMemoryBookingStore
    ) -> None:
        """manager_viet sees legacy rows next to new ones."""
        legacy = await seed_legacy_booking(booking_store)
        fresh = await create_booking(service)

        viet = await service.list_actionable(VIET)
        korea = await service.list_actionable(KOREA)

        assert {b.id for b in viet.bookings} == {legacy.id, fresh.id}
        assert korea.bookings == []

    async def test_viet_approval_moves_to_korea(
        self, service: BookingService, booking_store: InMemoryBookingStore
    ) -> None:
        """Approving a legacy row advances it to PENDING_KOREA."""
        legacy = await seed_legacy_booking(booking_store)

        result = await service.act(legacy.id, VIET, ApprovalAction.APPROVE)

        assert result.success, result.error
        stored = await booking_store.get_by_id(legacy.id)
        assert stored.status == BookingStatus.PENDING_KOREA
        assert stored.viet_stage == StageStatus.APPROVED
        assert stored.approver_viet_id == "mgr-vn"

    async def test_korea_cannot_skip_ahead(
        self, service: BookingService, booking_store: InMemoryBookingStore
    ) -> None:
        """A legacy row still waits on the Vietnamese stage."""
        legacy = await seed_legacy_booking(booking_store)

        result = await service.act(legacy.id, KOREA, ApprovalAction.APPROVE)

        assert result.error_code == "AUTHORIZATION"
        assert (await booking_store.get_by_id(legacy.id)).status == BookingStatus.PENDING
