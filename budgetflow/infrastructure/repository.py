"""Budget repositories.

Implements the persistence contract of the approval workflow:

- ``get(budget_id)`` returns the aggregate or None.
- ``save(budget, expected_prior_status, expected_version)`` commits one
  transition (cached status + new audit items) or an edit only if the
  stored budget is still in the state the caller loaded; otherwise it
  raises ``ConcurrentModificationError`` and stores nothing.
- ``delete(budget_id, expected_prior_status, expected_version)`` removes a
  budget under the same guard.

Two backends: an in-memory store (default, used in tests) and an async
SQLAlchemy store selected with ``BUDGETFLOW_STORAGE_BACKEND=sql``.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from datetime import datetime, timezone

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from budgetflow.domain.entities import AuditTrailItem, BudgetApproval
from budgetflow.domain.exceptions import BudgetNotFoundError, ConcurrentModificationError
from budgetflow.domain.state_machines import BudgetStatus
from budgetflow.domain.value_objects import BudgetId, UserRef
from budgetflow.infrastructure.config import settings
from budgetflow.infrastructure.database import session_scope
from budgetflow.infrastructure.models import BudgetAuditTrailModel, BudgetModel

logger = structlog.get_logger()


class DuplicateBudgetError(Exception):
    """Raised when adding a budget whose ID already exists."""


class BudgetRepository(ABC):
    """Persistence contract for budget aggregates."""

    @abstractmethod
    async def add(self, budget: BudgetApproval) -> None:
        """Store a newly created budget."""

    @abstractmethod
    async def get(self, budget_id: str) -> BudgetApproval | None:
        """Load a budget, or None if the ID is unknown."""

    @abstractmethod
    async def save(
        self,
        budget: BudgetApproval,
        expected_prior_status: BudgetStatus,
        expected_version: int,
    ) -> None:
        """Commit a transition with an optimistic concurrency guard.

        Raises:
            BudgetNotFoundError: If the budget no longer exists.
            ConcurrentModificationError: If status or version changed since load.
        """

    @abstractmethod
    async def delete(
        self,
        budget_id: str,
        expected_prior_status: BudgetStatus,
        expected_version: int,
    ) -> None:
        """Remove a budget with the same optimistic guard as ``save``.

        Raises:
            BudgetNotFoundError: If the budget no longer exists.
            ConcurrentModificationError: If status or version changed since load.
        """

    @abstractmethod
    async def list_all(
        self,
        page: int = 1,
        page_size: int = 20,
        status: BudgetStatus | None = None,
        project_id: str | None = None,
    ) -> tuple[list[BudgetApproval], int]:
        """List budgets newest first, with the total count before paging."""


# ============================================================================
# In-Memory Repository
# ============================================================================


class InMemoryBudgetRepository(BudgetRepository):
    """In-memory repository for budgets.

    Stores private copies so a caller mutating a loaded aggregate never
    changes what is persisted until ``save`` succeeds.
    """

    def __init__(self) -> None:
        self._budgets: dict[str, BudgetApproval] = {}
        self._lock = asyncio.Lock()

    async def add(self, budget: BudgetApproval) -> None:
        async with self._lock:
            key = str(budget.id)
            if key in self._budgets:
                raise DuplicateBudgetError(f"Budget already exists: {key}")
            self._budgets[key] = self._snapshot(budget)

    async def get(self, budget_id: str) -> BudgetApproval | None:
        stored = self._budgets.get(budget_id)
        return self._snapshot(stored) if stored else None

    async def save(
        self,
        budget: BudgetApproval,
        expected_prior_status: BudgetStatus,
        expected_version: int,
    ) -> None:
        async with self._lock:
            key = str(budget.id)
            self._check_unchanged(key, expected_prior_status, expected_version)
            self._budgets[key] = self._snapshot(budget)

    async def delete(
        self,
        budget_id: str,
        expected_prior_status: BudgetStatus,
        expected_version: int,
    ) -> None:
        async with self._lock:
            self._check_unchanged(budget_id, expected_prior_status, expected_version)
            del self._budgets[budget_id]

    async def list_all(
        self,
        page: int = 1,
        page_size: int = 20,
        status: BudgetStatus | None = None,
        project_id: str | None = None,
    ) -> tuple[list[BudgetApproval], int]:
        budgets = list(self._budgets.values())

        # Apply filters
        if status:
            budgets = [b for b in budgets if b.status == status]
        if project_id:
            budgets = [b for b in budgets if b.project_id == project_id]

        budgets.sort(key=lambda b: b.created_at, reverse=True)

        total = len(budgets)
        start = (page - 1) * page_size
        end = start + page_size
        return [self._snapshot(b) for b in budgets[start:end]], total

    def _check_unchanged(
        self,
        key: str,
        expected_prior_status: BudgetStatus,
        expected_version: int,
    ) -> None:
        stored = self._budgets.get(key)
        if stored is None:
            raise BudgetNotFoundError(key)
        if stored.status != expected_prior_status or stored.version != expected_version:
            raise ConcurrentModificationError(
                budget_id=key,
                expected_status=expected_prior_status.value,
                actual_status=stored.status.value,
            )

    @staticmethod
    def _snapshot(budget: BudgetApproval) -> BudgetApproval:
        clone = copy.deepcopy(budget)
        clone.collect_events()
        return clone


# ============================================================================
# SQLAlchemy Repository
# ============================================================================


def _aware(value: datetime | None) -> datetime | None:
    """Treat naive datetimes read back from the database as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def audit_item_to_row(budget_id: str, sequence: int, item: AuditTrailItem) -> BudgetAuditTrailModel:
    """Map an audit item to its insert-only row."""
    return BudgetAuditTrailModel(
        budget_id=budget_id,
        sequence=sequence,
        action=item.action.value,
        from_status=item.from_status.value,
        to_status=item.to_status.value,
        performed_by=item.performed_by.to_dict(),
        performed_at=item.performed_at,
        details=item.details.to_dict(),
    )


def budget_to_row(budget: BudgetApproval) -> BudgetModel:
    """Map a new aggregate, including any audit items, to ORM rows."""
    row = BudgetModel(
        id=str(budget.id),
        name=budget.name,
        project_id=budget.project_id,
        currency=budget.currency,
        total_planned_cost=budget.total_planned_cost,
        notes=budget.notes,
        status=budget.status.value,
        version=budget.version,
        current_level_deadline=budget.current_level_deadline,
        created_by=budget.created_by.to_dict(),
        updated_by=(budget.updated_by or budget.created_by).to_dict(),
        created_at=budget.created_at,
        updated_at=budget.updated_at,
    )
    row.audit_trail = [
        audit_item_to_row(str(budget.id), index, item)
        for index, item in enumerate(budget.audit_trail)
    ]
    return row


def row_to_budget(row: BudgetModel) -> BudgetApproval:
    """Rebuild the aggregate from its rows."""
    trail = tuple(
        AuditTrailItem.from_dict(
            {
                "action": r.action,
                "performed_by": r.performed_by,
                "performed_at": _aware(r.performed_at),
                "from_status": r.from_status,
                "to_status": r.to_status,
                "details": r.details,
            }
        )
        for r in sorted(row.audit_trail, key=lambda r: r.sequence)
    )
    budget = BudgetApproval(
        id=BudgetId(row.id),
        name=row.name,
        created_by=UserRef.from_dict(row.created_by),
        updated_by=UserRef.from_dict(row.updated_by),
        project_id=row.project_id,
        currency=row.currency,
        total_planned_cost=row.total_planned_cost,
        notes=row.notes,
        current_level_deadline=_aware(row.current_level_deadline),
        audit_trail=trail,
        version=row.version,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )
    if budget.status.value != row.status:
        logger.warning(
            "Cached budget status disagrees with audit trail",
            budget_id=row.id,
            cached_status=row.status,
            derived_status=budget.status.value,
        )
    return budget


class SqlBudgetRepository(BudgetRepository):
    """Repository backed by SQLAlchemy async sessions.

    ``save`` is a single transaction: a conditional UPDATE on the budget row
    followed by inserts of the audit items appended since load. ``delete``
    is a conditional DELETE; audit rows go with it by cascade.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory

    async def add(self, budget: BudgetApproval) -> None:
        async with session_scope(self._session_factory) as session:
            if await session.get(BudgetModel, str(budget.id)) is not None:
                raise DuplicateBudgetError(f"Budget already exists: {budget.id}")
            session.add(budget_to_row(budget))

    async def get(self, budget_id: str) -> BudgetApproval | None:
        async with session_scope(self._session_factory) as session:
            row = await session.get(BudgetModel, budget_id)
            return row_to_budget(row) if row else None

    async def save(
        self,
        budget: BudgetApproval,
        expected_prior_status: BudgetStatus,
        expected_version: int,
    ) -> None:
        key = str(budget.id)
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                update(BudgetModel)
                .where(
                    BudgetModel.id == key,
                    BudgetModel.status == expected_prior_status.value,
                    BudgetModel.version == expected_version,
                )
                .values(
                    name=budget.name,
                    notes=budget.notes,
                    currency=budget.currency,
                    total_planned_cost=budget.total_planned_cost,
                    status=budget.status.value,
                    version=budget.version,
                    current_level_deadline=budget.current_level_deadline,
                    updated_by=(budget.updated_by or budget.created_by).to_dict(),
                    updated_at=budget.updated_at,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self._raise_guard_failure(session, key, expected_prior_status)

            persisted = await session.scalar(
                select(func.count())
                .select_from(BudgetAuditTrailModel)
                .where(BudgetAuditTrailModel.budget_id == key)
            )
            for index in range(persisted or 0, len(budget.audit_trail)):
                session.add(audit_item_to_row(key, index, budget.audit_trail[index]))

    async def delete(
        self,
        budget_id: str,
        expected_prior_status: BudgetStatus,
        expected_version: int,
    ) -> None:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                delete(BudgetModel)
                .where(
                    BudgetModel.id == budget_id,
                    BudgetModel.status == expected_prior_status.value,
                    BudgetModel.version == expected_version,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self._raise_guard_failure(session, budget_id, expected_prior_status)

    async def list_all(
        self,
        page: int = 1,
        page_size: int = 20,
        status: BudgetStatus | None = None,
        project_id: str | None = None,
    ) -> tuple[list[BudgetApproval], int]:
        query = select(BudgetModel)
        count_query = select(func.count()).select_from(BudgetModel)
        if status:
            query = query.where(BudgetModel.status == status.value)
            count_query = count_query.where(BudgetModel.status == status.value)
        if project_id:
            query = query.where(BudgetModel.project_id == project_id)
            count_query = count_query.where(BudgetModel.project_id == project_id)

        query = (
            query.order_by(BudgetModel.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        async with session_scope(self._session_factory) as session:
            total = await session.scalar(count_query)
            rows = (await session.execute(query)).scalars().all()
            return [row_to_budget(row) for row in rows], total or 0

    @staticmethod
    async def _raise_guard_failure(
        session: AsyncSession,
        key: str,
        expected_prior_status: BudgetStatus,
    ) -> None:
        """Explain why a guarded UPDATE or DELETE matched no row."""
        current = await session.scalar(select(BudgetModel.status).where(BudgetModel.id == key))
        if current is None:
            raise BudgetNotFoundError(key)
        raise ConcurrentModificationError(
            budget_id=key,
            expected_status=expected_prior_status.value,
            actual_status=current,
        )


# Global repository instance
_budget_repo: BudgetRepository | None = None


def get_budget_repository() -> BudgetRepository:
    """Get the configured budget repository singleton."""
    global _budget_repo
    if _budget_repo is None:
        if settings.storage_backend == "sql":
            _budget_repo = SqlBudgetRepository()
        else:
            _budget_repo = InMemoryBudgetRepository()
    return _budget_repo


def reset_budget_repository() -> None:
    """Reset budget repository (for testing)."""
    global _budget_repo
    _budget_repo = InMemoryBudgetRepository()
