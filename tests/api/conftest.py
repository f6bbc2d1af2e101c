"""Shared fixtures for API tests."""

import pytest
from fastapi.testclient import TestClient

from bookxe.infrastructure.config import settings
from bookxe.infrastructure.repositories import reset_stores
from bookxe.main import app


@pytest.fixture(autouse=True)
def fresh_stores():
    """Reset store singletons before and after each test."""
    reset_stores()
    yield
    reset_stores()


@pytest.fixture
def client() -> TestClient:
    """Create test client without authentication."""
    return TestClient(app)


@pytest.fixture
def auth_client() -> TestClient:
    """Create test client with valid API key authentication."""
    return TestClient(
        app,
        headers={"Authorization": f"Bearer {settings.api_key}"},
    )

