"""Shared fixtures for BudgetFlow tests."""

from datetime import datetime, timezone

import pytest

from budgetflow.domain.deadlines import DeadlinePolicy
from budgetflow.domain.entities import BudgetApproval
from budgetflow.domain.value_objects import BudgetId, UserRef

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    """Fixed reference time."""
    return NOW


@pytest.fixture
def owner() -> UserRef:
    return UserRef(id="u-owner", email="owner@example.com", first_name="Amina", last_name="Otieno")


@pytest.fixture
def checker() -> UserRef:
    return UserRef(id="u-checker", email="checker@example.com", first_name="Brian")


@pytest.fixture
def manager() -> UserRef:
    return UserRef(id="u-manager", email="manager@example.com", first_name="Chloe")


@pytest.fixture
def finance() -> UserRef:
    return UserRef(id="u-finance", email="finance@example.com", first_name="David")


@pytest.fixture
def policy() -> DeadlinePolicy:
    """Default per-level deadlines (48h / 72h / 120h)."""
    return DeadlinePolicy()


@pytest.fixture
def draft_budget(owner: UserRef, now: datetime) -> BudgetApproval:
    """A freshly created draft budget with its creation event drained."""
    budget = BudgetApproval.create(
        created_by=owner,
        name="Site works Q2",
        budget_id=BudgetId("bud-001"),
        project_id="proj-7",
        total_planned_cost=1_250_000,
        now=now,
    )
    budget.collect_events()
    return budget
