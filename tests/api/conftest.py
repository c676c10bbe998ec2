"""Shared fixtures for API tests."""

import pytest
from fastapi.testclient import TestClient

from budgetflow.infrastructure.config import settings
from budgetflow.infrastructure.repository import reset_budget_repository
from budgetflow.main import app


def user_headers(user_id: str, email: str, first_name: str = "", last_name: str = "") -> dict[str, str]:
    """Identity headers forwarded by the gateway."""
    return {
        "X-User-Id": user_id,
        "X-User-Email": email,
        "X-User-First-Name": first_name,
        "X-User-Last-Name": last_name,
    }


@pytest.fixture(autouse=True)
def reset_repository():
    """Reset budget repository before each test."""
    reset_budget_repository()
    yield
    reset_budget_repository()


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


@pytest.fixture
def owner_headers() -> dict[str, str]:
    return user_headers("u-owner", "owner@example.com", "Amina", "Otieno")


@pytest.fixture
def checker_headers() -> dict[str, str]:
    return user_headers("u-checker", "checker@example.com", "Brian")


@pytest.fixture
def manager_headers() -> dict[str, str]:
    return user_headers("u-manager", "manager@example.com", "Chloe")


@pytest.fixture
def finance_headers() -> dict[str, str]:
    return user_headers("u-finance", "finance@example.com", "David")
