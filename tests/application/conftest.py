"""Shared fixtures for application service tests."""

import pytest

from bookxe.application.booking_service import BookingService
from bookxe.application.notification_service import NotificationService
from bookxe.infrastructure.repositories import InMemoryBookingStore, InMemoryNotificationStore


@pytest.fixture
def booking_store() -> InMemoryBookingStore:
    """Fresh in-memory booking store."""
    return InMemoryBookingStore()


@pytest.fixture
def notification_store() -> InMemoryNotificationStore:
    """Fresh in-memory notification store."""
    return InMemoryNotificationStore()


@pytest.fixture
def notifications(notification_store: InMemoryNotificationStore) -> NotificationService:
    """Notification service over the in-memory store."""
    return NotificationService(store=notification_store)


@pytest.fixture
def service(
    booking_store: InMemoryBookingStore,
    notifications: NotificationService,
) -> BookingService:
    """Booking service over the in-memory stores."""
    return BookingService(store=booking_store, notifications=notifications)
