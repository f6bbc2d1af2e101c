"""Tests for health check endpoints."""

from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from bookxe.application.expiry_sweeper import reset_expiry_sweeper
from bookxe.domain.exceptions import PersistenceError
from bookxe.infrastructure.repositories import InMemoryBookingStore, reset_stores
from bookxe.main import app


class UnreachableBookingStore(InMemoryBookingStore):
    """Booking store whose database is down."""

    async def ping(self) -> None:
        raise PersistenceError("ping", ConnectionRefusedError("db:5432"))


@pytest.fixture
def client() -> Iterator[TestClient]:
    """Create test client."""
    reset_stores()
    yield TestClient(app)
    reset_stores()


def test_health_check(client: TestClient) -> None:
    """Test health endpoint returns healthy status."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "bookxe-api"
    assert "version" in data
    assert "X-Request-ID" in response.headers


def test_readiness_check(client: TestClient) -> None:
    """Readiness reports the storage backend once the store answers."""
    response = client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready", "storage": "memory"}


def test_readiness_fails_when_store_unreachable(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    """An unreachable store makes readiness 503 PERSISTENCE_FAILURE."""
    monkeypatch.setattr("bookxe.api.health.get_booking_store", UnreachableBookingStore)

    response = client.get("/ready")

    assert response.status_code == 503
    data = response.json()
    assert data["error_code"] == "PERSISTENCE_FAILURE"
    assert data["details"] == {"operation": "ping"}


def test_lifespan_starts_and_stops_sweeper() -> None:
    """Startup launches the expiry sweeper and shutdown stops it."""
    reset_stores()
    reset_expiry_sweeper()
    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
    reset_expiry_sweeper()
    reset_stores()
