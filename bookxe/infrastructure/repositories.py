"""Booking and notification stores.

Each store has two implementations with the same contract:

- an in-memory store for development and tests
- a SQLAlchemy store for PostgreSQL (or any async SQLAlchemy dialect)

The only contended write is ``BookingStore.update_where``: a
compare-and-swap on the ``status`` column. The SQL store expresses it as
one conditional ``UPDATE``; the in-memory store holds a lock for the
duration of the check and write.
"""

import asyncio
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bookxe.domain.entities import (
    TRANSITION_FIELDS,
    BookingRequest,
    NotificationEvent,
    NotificationSeverity,
)
from bookxe.domain.exceptions import BookingNotFoundError, ConflictError, PersistenceError
from bookxe.domain.state_machines import BookingStatus, StageStatus
from bookxe.infrastructure.config import settings
from bookxe.infrastructure.database import create_engine, create_session_factory
from bookxe.infrastructure.models import BookingModel, NotificationModel

logger = structlog.get_logger()


# ============================================================================
# Store Contracts
# ============================================================================


class BookingStore(Protocol):
    """Persistence contract for booking requests."""

    async def ping(self) -> None:
        """Raise PersistenceError if the store cannot serve queries."""
        ...

    async def get_by_id(self, booking_id: str) -> BookingRequest | None: ...

    async def add(self, booking: BookingRequest) -> BookingRequest: ...

    async def update_where(
        self,
        booking_id: str,
        expected_status: BookingStatus,
        changes: dict[str, Any],
    ) -> BookingRequest:
        """Write ``changes`` only if the stored status equals ``expected_status``.

        Raises:
            BookingNotFoundError: If the booking does not exist.
            ConflictError: If the stored status differs.
            PersistenceError: If the storage call fails.
        """
        ...

    async def query_by_status(
        self, statuses: Sequence[BookingStatus]
    ) -> list[BookingRequest]: ...

    async def query_expired(
        self, statuses: Sequence[BookingStatus], travel_before: datetime
    ) -> list[BookingRequest]: ...

    async def query_by_requester(self, requester_id: str) -> list[BookingRequest]: ...

    async def query_travel_window(
        self,
        statuses: Sequence[BookingStatus],
        start: datetime,
        end: datetime,
    ) -> list[BookingRequest]: ...


class NotificationStore(Protocol):
    """Persistence contract for notifications."""

    async def add(self, notification: NotificationEvent) -> NotificationEvent: ...

    async def list_for_target(
        self, user_id: str, role: str, limit: int
    ) -> list[NotificationEvent]: ...

    async def mark_read(self, notification_id: str, user_id: str, role: str) -> bool: ...

    async def mark_all_read(self, user_id: str, role: str) -> int: ...


def _as_utc(value: datetime | None) -> datetime | None:
    """Normalise datetimes to aware UTC (some drivers return naive values)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _clone(booking: BookingRequest) -> BookingRequest:
    """Detached copy without pending domain events."""
    return replace(booking)


# ============================================================================
# In-Memory Stores
# ============================================================================


class InMemoryBookingStore:
    """In-memory booking store.

    Rows are copied on the way in and out so callers never share state
    with the store.
    """

    def __init__(self) -> None:
        self._rows: dict[str, BookingRequest] = {}
        self._lock = asyncio.Lock()

    async def ping(self) -> None:
        """In-memory rows are always reachable."""

    async def get_by_id(self, booking_id: str) -> BookingRequest | None:
        """Get booking by ID."""
        row = self._rows.get(booking_id)
        return _clone(row) if row else None

    async def add(self, booking: BookingRequest) -> BookingRequest:
        """Insert a new booking."""
        async with self._lock:
            if booking.id in self._rows:
                raise PersistenceError("add", ValueError(f"duplicate id {booking.id}"))
            self._rows[booking.id] = _clone(booking)
        return _clone(booking)

    async def update_where(
        self,
        booking_id: str,
        expected_status: BookingStatus,
        changes: dict[str, Any],
    ) -> BookingRequest:
        """Compare-and-swap on status."""
        async with self._lock:
            row = self._rows.get(booking_id)
            if row is None:
                raise BookingNotFoundError(booking_id)
            if row.status != expected_status:
                raise ConflictError(booking_id, expected_status.value, row.status.value)
            updated = replace(row, **changes)
            self._rows[booking_id] = updated
            return _clone(updated)

    async def query_by_status(self, statuses: Sequence[BookingStatus]) -> list[BookingRequest]:
        """Bookings in any of the statuses, oldest first."""
        wanted = set(statuses)
        rows = [row for row in self._rows.values() if row.status in wanted]
        rows.sort(key=lambda row: row.created_at)
        return [_clone(row) for row in rows]

    async def query_expired(
        self, statuses: Sequence[BookingStatus], travel_before: datetime
    ) -> list[BookingRequest]:
        """Bookings in any of the statuses whose travel time is before the cutoff."""
        wanted = set(statuses)
        rows = [
            row
            for row in self._rows.values()
            if row.status in wanted and row.travel_time < travel_before
        ]
        rows.sort(key=lambda row: row.travel_time)
        return [_clone(row) for row in rows]

    async def query_by_requester(self, requester_id: str) -> list[BookingRequest]:
        """Bookings created by a requester, newest first."""
        rows = [row for row in self._rows.values() if row.requester_id == requester_id]
        rows.sort(key=lambda row: row.created_at, reverse=True)
        return [_clone(row) for row in rows]

    async def query_travel_window(
        self,
        statuses: Sequence[BookingStatus],
        start: datetime,
        end: datetime,
    ) -> list[BookingRequest]:
        """Bookings in any of the statuses travelling in [start, end)."""
        wanted = set(statuses)
        rows = [
            row
            for row in self._rows.values()
            if row.status in wanted and start <= row.travel_time < end
        ]
        rows.sort(key=lambda row: row.travel_time)
        return [_clone(row) for row in rows]


class InMemoryNotificationStore:
    """In-memory notification store."""

    def __init__(self) -> None:
        self._rows: dict[str, NotificationEvent] = {}

    async def add(self, notification: NotificationEvent) -> NotificationEvent:
        """Insert a notification."""
        self._rows[notification.id] = replace(notification)
        return notification

    def _addressed(self, user_id: str, role: str) -> list[NotificationEvent]:
        return [
            row
            for row in self._rows.values()
            if row.target_user_id == user_id or (row.target_role is not None and row.target_role == role)
        ]

    async def list_for_target(self, user_id: str, role: str, limit: int) -> list[NotificationEvent]:
        """Notifications for a user or their role, newest first."""
        rows = sorted(self._addressed(user_id, role), key=lambda row: row.created_at, reverse=True)
        return [replace(row) for row in rows[:limit]]

    async def mark_read(self, notification_id: str, user_id: str, role: str) -> bool:
        """Mark one notification read if it is addressed to the caller."""
        row = self._rows.get(notification_id)
        if row is None or row not in self._addressed(user_id, role):
            return False
        row.mark_read()
        return True

    async def mark_all_read(self, user_id: str, role: str) -> int:
        """Mark every unread notification for the caller as read."""
        count = 0
        for row in self._addressed(user_id, role):
            if not row.is_read:
                row.mark_read()
                count += 1
        return count


# ============================================================================
# SQLAlchemy Stores
# ============================================================================


_STAGE_COLUMNS = {
    "viet_stage": "viet_approval_status",
    "korea_stage": "korea_approval_status",
    "admin_stage": "admin_approval_status",
}


def _column_value(value: Any) -> Any:
    if isinstance(value, (BookingStatus, StageStatus)):
        return value.value
    if isinstance(value, datetime):
        return _as_utc(value)
    return value


def _booking_columns(changes: dict[str, Any]) -> dict[str, Any]:
    """Translate aggregate attribute names to column names."""
    return {_STAGE_COLUMNS.get(name, name): _column_value(value) for name, value in changes.items()}


def booking_to_model(booking: BookingRequest) -> BookingModel:
    """Convert a BookingRequest to a new row."""
    columns = _booking_columns(booking.transition_changes())
    return BookingModel(
        id=booking.id,
        requester_id=booking.requester_id,
        requester_name=booking.requester_name,
        requester_department=booking.requester_department,
        destination=booking.destination,
        travel_time=_as_utc(booking.travel_time),
        reason=booking.reason,
        cargo_type=booking.cargo_type,
        cargo_weight=booking.cargo_weight,
        vehicle_id=booking.vehicle_id,
        vehicle_name=booking.vehicle_name,
        driver_info=booking.driver_info,
        created_at=_as_utc(booking.created_at),
        **columns,
    )


def model_to_booking(model: BookingModel) -> BookingRequest:
    """Convert a row to a BookingRequest."""
    return BookingRequest(
        id=model.id,
        requester_id=model.requester_id,
        requester_name=model.requester_name or "",
        requester_department=model.requester_department or "",
        destination=model.destination,
        travel_time=_as_utc(model.travel_time),
        reason=model.reason,
        cargo_type=model.cargo_type,
        cargo_weight=model.cargo_weight,
        vehicle_id=model.vehicle_id,
        vehicle_name=model.vehicle_name,
        driver_info=model.driver_info,
        status=BookingStatus(model.status),
        viet_stage=StageStatus(model.viet_approval_status),
        korea_stage=StageStatus(model.korea_approval_status),
        admin_stage=StageStatus(model.admin_approval_status),
        approver_viet_id=model.approver_viet_id,
        approver_korea_id=model.approver_korea_id,
        approved_by=model.approved_by,
        approved_at=_as_utc(model.approved_at),
        rejected_by=model.rejected_by,
        cancelled_at=_as_utc(model.cancelled_at),
        resolved_at=_as_utc(model.resolved_at),
        created_at=_as_utc(model.created_at),
        updated_at=_as_utc(model.updated_at),
    )


def notification_to_model(notification: NotificationEvent) -> NotificationModel:
    """Convert a NotificationEvent to a new row."""
    return NotificationModel(
        id=notification.id,
        user_id=notification.target_user_id,
        target_role=notification.target_role,
        booking_id=notification.booking_id,
        title=notification.title,
        message=notification.message,
        type=notification.severity.value,
        is_read=notification.is_read,
        created_at=_as_utc(notification.created_at),
    )


def model_to_notification(model: NotificationModel) -> NotificationEvent:
    """Convert a row to a NotificationEvent."""
    return NotificationEvent(
        id=model.id,
        target_user_id=model.user_id,
        target_role=model.target_role,
        booking_id=model.booking_id,
        title=model.title,
        message=model.message,
        severity=NotificationSeverity(model.type),
        is_read=model.is_read,
        created_at=_as_utc(model.created_at),
    )


class SqlAlchemyBookingStore:
    """Booking store backed by an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def ping(self) -> None:
        """Run a one-row read against the bookings table."""
        try:
            async with self._session_factory() as session:
                await session.execute(select(BookingModel.id).limit(1))
        except SQLAlchemyError as exc:
            raise PersistenceError("ping", exc) from exc

    async def get_by_id(self, booking_id: str) -> BookingRequest | None:
        """Get booking by ID."""
        try:
            async with self._session_factory() as session:
                model = await session.get(BookingModel, booking_id)
                return model_to_booking(model) if model else None
        except SQLAlchemyError as exc:
            raise PersistenceError("get_by_id", exc) from exc

    async def add(self, booking: BookingRequest) -> BookingRequest:
        """Insert a new booking."""
        try:
            async with self._session_factory() as session:
                session.add(booking_to_model(booking))
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError("add", exc) from exc
        return _clone(booking)

    async def update_where(
        self,
        booking_id: str,
        expected_status: BookingStatus,
        changes: dict[str, Any],
    ) -> BookingRequest:
        """Conditional update in a single statement."""
        unknown = set(changes) - set(TRANSITION_FIELDS)
        if unknown:
            raise PersistenceError("update_where", ValueError(f"not writable: {sorted(unknown)}"))

        stmt = (
            update(BookingModel)
            .where(
                BookingModel.id == booking_id,
                BookingModel.status == expected_status.value,
            )
            .values(**_booking_columns(changes))
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    await session.rollback()
                    current = await session.get(BookingModel, booking_id)
                    if current is None:
                        raise BookingNotFoundError(booking_id)
                    raise ConflictError(booking_id, expected_status.value, current.status)
                await session.commit()

                fresh = await session.execute(
                    select(BookingModel)
                    .where(BookingModel.id == booking_id)
                    .execution_options(populate_existing=True)
                )
                return model_to_booking(fresh.scalar_one())
        except SQLAlchemyError as exc:
            raise PersistenceError("update_where", exc) from exc

    async def _select(self, operation: str, stmt: Any) -> list[BookingRequest]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [model_to_booking(model) for model in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise PersistenceError(operation, exc) from exc

    async def query_by_status(self, statuses: Sequence[BookingStatus]) -> list[BookingRequest]:
        """Bookings in any of the statuses, oldest first."""
        stmt = (
            select(BookingModel)
            .where(BookingModel.status.in_([s.value for s in statuses]))
            .order_by(BookingModel.created_at.asc())
        )
        return await self._select("query_by_status", stmt)

    async def query_expired(
        self, statuses: Sequence[BookingStatus], travel_before: datetime
    ) -> list[BookingRequest]:
        """Bookings in any of the statuses whose travel time is before the cutoff."""
        stmt = (
            select(BookingModel)
            .where(
                BookingModel.status.in_([s.value for s in statuses]),
                BookingModel.travel_time < _as_utc(travel_before),
            )
            .order_by(BookingModel.travel_time.asc())
        )
        return await self._select("query_expired", stmt)

    async def query_by_requester(self, requester_id: str) -> list[BookingRequest]:
        """Bookings created by a requester, newest first."""
        stmt = (
            select(BookingModel)
            .where(BookingModel.requester_id == requester_id)
            .order_by(BookingModel.created_at.desc())
        )
        return await self._select("query_by_requester", stmt)

    async def query_travel_window(
        self,
        statuses: Sequence[BookingStatus],
        start: datetime,
        end: datetime,
    ) -> list[BookingRequest]:
        """Bookings in any of the statuses travelling in [start, end)."""
        stmt = (
            select(BookingModel)
            .where(
                BookingModel.status.in_([s.value for s in statuses]),
                BookingModel.travel_time >= _as_utc(start),
                BookingModel.travel_time < _as_utc(end),
            )
            .order_by(BookingModel.travel_time.asc())
        )
        return await self._select("query_travel_window", stmt)


class SqlAlchemyNotificationStore:
    """Notification store backed by an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _addressed(user_id: str, role: str) -> Any:
        return or_(NotificationModel.user_id == user_id, NotificationModel.target_role == role)

    async def add(self, notification: NotificationEvent) -> NotificationEvent:
        """Insert a notification."""
        try:
            async with self._session_factory() as session:
                session.add(notification_to_model(notification))
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError("add_notification", exc) from exc
        return notification

    async def list_for_target(self, user_id: str, role: str, limit: int) -> list[NotificationEvent]:
        """Notifications for a user or their role, newest first."""
        stmt = (
            select(NotificationModel)
            .where(self._addressed(user_id, role))
            .order_by(NotificationModel.created_at.desc())
            .limit(limit)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [model_to_notification(model) for model in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise PersistenceError("list_notifications", exc) from exc

    async def mark_read(self, notification_id: str, user_id: str, role: str) -> bool:
        """Mark one notification read if it is addressed to the caller."""
        stmt = (
            update(NotificationModel)
            .where(NotificationModel.id == notification_id, self._addressed(user_id, role))
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount > 0
        except SQLAlchemyError as exc:
            raise PersistenceError("mark_read", exc) from exc

    async def mark_all_read(self, user_id: str, role: str) -> int:
        """Mark every unread notification for the caller as read."""
        stmt = (
            update(NotificationModel)
            .where(self._addressed(user_id, role), NotificationModel.is_read.is_(False))
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount
        except SQLAlchemyError as exc:
            raise PersistenceError("mark_all_read", exc) from exc


# ============================================================================
# Store Factories
# ============================================================================


_booking_store: BookingStore | None = None
_notification_store: NotificationStore | None = None


def _build_stores() -> tuple[BookingStore, NotificationStore]:
    if settings.storage_backend == "database":
        session_factory = create_session_factory(create_engine())
        logger.info("Using database stores")
        return SqlAlchemyBookingStore(session_factory), SqlAlchemyNotificationStore(session_factory)
    logger.info("Using in-memory stores")
    return InMemoryBookingStore(), InMemoryNotificationStore()


def get_booking_store() -> BookingStore:
    """Get booking store singleton."""
    global _booking_store, _notification_store
    if _booking_store is None:
        _booking_store, _notification_store = _build_stores()
    return _booking_store


def get_notification_store() -> NotificationStore:
    """Get notification store singleton."""
    global _booking_store, _notification_store
    if _notification_store is None:
        _booking_store, _notification_store = _build_stores()
    return _notification_store


def reset_stores() -> None:
    """Reset store singletons (for testing)."""
    global _booking_store, _notification_store
    _booking_store = None
    _notification_store = None
