"""Budget approval application service.

Orchestrates the approval workflow for one request:
- loads the budget
- applies exactly one change, checked against the status the caller observed
- saves it behind the repository's optimistic guard
- logs and dispatches the resulting domain events

Domain errors never escape: every operation returns an ``ApprovalResult``
carrying either the updated budget or an ``error_code``.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

import structlog

from budgetflow.domain.base import DomainEvent, utc_now
from budgetflow.domain.deadlines import (
    DEFAULT_DUE_SOON_WINDOW,
    DeadlinePolicy,
    DeadlineStatus,
    deadline_status,
)
from budgetflow.domain.entities import AuditTrailItem, BudgetApproval
from budgetflow.domain.exceptions import BudgetNotFoundError, DomainError
from budgetflow.domain.state_machines import ApprovalAction, BudgetStatus, StateTransition
from budgetflow.domain.value_objects import BudgetId, UserRef
from budgetflow.infrastructure.config import settings
from budgetflow.infrastructure.repository import (
    BudgetRepository,
    DuplicateBudgetError,
    get_budget_repository,
)

logger = structlog.get_logger()

Clock = Callable[[], datetime]
EventHandler = Callable[[DomainEvent], Awaitable[None]]


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class ApprovalResult:
    """Result of a budget operation."""

    budget: BudgetApproval | None = None
    transition: StateTransition | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    error_details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failed(cls, error: DomainError) -> "ApprovalResult":
        return cls(
            success=False,
            error=error.message,
            error_code=error.error_code,
            error_details=error.details,
        )


@dataclass
class ListBudgetsResult:
    """Result of listing budgets."""

    budgets: list[BudgetApproval] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20
    success: bool = True
    error: str | None = None


@dataclass
class DeadlineResult:
    """Result of a deadline status query."""

    budget_id: str
    deadline: datetime | None = None
    status: DeadlineStatus | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None


# ============================================================================
# Budget Approval Service
# ============================================================================


class BudgetApprovalService:
    """Application service for the budget approval workflow.

    Each mutating call is one read-modify-write: load, check, transition,
    save. Nothing is stored unless the whole transition commits.
    """

    def __init__(
        self,
        budget_repo: BudgetRepository | None = None,
        deadline_policy: DeadlinePolicy | None = None,
        due_soon_window: timedelta | None = None,
        clock: Clock | None = None,
        event_handlers: list[EventHandler] | None = None,
        request_id: str | None = None,
    ) -> None:
        """Initialize service.

        Args:
            budget_repo: Budget repository.
            deadline_policy: Time allowed per approval level.
            due_soon_window: Window for the "due soon" deadline state.
            clock: Source of "now"; injectable for tests.
            event_handlers: Async callables receiving committed domain events.
            request_id: Request ID for correlation.
        """
        self.budget_repo = budget_repo or get_budget_repository()
        self.deadline_policy = deadline_policy or DeadlinePolicy()
        self.due_soon_window = (
            DEFAULT_DUE_SOON_WINDOW if due_soon_window is None else due_soon_window
        )
        self.clock = clock or utc_now
        self.event_handlers = list(event_handlers or [])
        self.request_id = request_id

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def create_budget(
        self,
        created_by: UserRef,
        name: str,
        project_id: str | None = None,
        currency: str | None = None,
        total_planned_cost: int = 0,
        notes: str | None = None,
        budget_id: str | None = None,
    ) -> ApprovalResult:
        """Create a budget in ``draft``.

        Args:
            created_by: Owner of the budget.
            name: Budget name.
            project_id: Owning project.
            currency: ISO currency code; defaults to the configured currency.
            total_planned_cost: Planned total in minor units.
            notes: Free-text notes.
            budget_id: Optional caller-chosen identifier.

        Returns:
            ApprovalResult with the new budget.
        """
        try:
            budget = BudgetApproval.create(
                created_by=created_by,
                name=name,
                budget_id=BudgetId(budget_id) if budget_id is not None else None,
                project_id=project_id,
                currency=currency or settings.default_currency,
                total_planned_cost=total_planned_cost,
                notes=notes,
                now=self.clock(),
            )
            await self.budget_repo.add(budget)
        except DomainError as e:
            logger.info(
                "Budget creation rejected",
                error_code=e.error_code,
                error=e.message,
                request_id=self.request_id,
            )
            return ApprovalResult.failed(e)
        except DuplicateBudgetError as e:
            return ApprovalResult(success=False, error=str(e), error_code="BUDGET_EXISTS")

        logger.info(
            "Budget created",
            budget_id=str(budget.id),
            created_by=created_by.id,
            request_id=self.request_id,
        )
        await self._publish(budget.collect_events())
        return ApprovalResult(budget=budget)

    async def get_budget(self, budget_id: str) -> ApprovalResult:
        """Get a budget by ID."""
        budget = await self.budget_repo.get(budget_id)
        if budget is None:
            return ApprovalResult.failed(BudgetNotFoundError(budget_id))
        return ApprovalResult(budget=budget)

    async def list_budgets(
        self,
        page: int = 1,
        page_size: int = 20,
        status: str | None = None,
        project_id: str | None = None,
    ) -> ListBudgetsResult:
        """List budgets with pagination and filtering."""
        try:
            status_enum = BudgetStatus(status) if status else None
        except ValueError:
            return ListBudgetsResult(
                success=False,
                error=f"Unknown budget status: {status}",
                page=page,
                page_size=page_size,
            )

        budgets, total = await self.budget_repo.list_all(
            page=page,
            page_size=page_size,
            status=status_enum,
            project_id=project_id,
        )
        return ListBudgetsResult(budgets=budgets, total=total, page=page, page_size=page_size)

    async def get_deadline_status(
        self,
        budget_id: str,
        now: datetime | None = None,
    ) -> DeadlineResult:
        """Classify the current level deadline of a budget."""
        budget = await self.budget_repo.get(budget_id)
        if budget is None:
            error = BudgetNotFoundError(budget_id)
            return DeadlineResult(
                budget_id=budget_id,
                success=False,
                error=error.message,
                error_code=error.error_code,
            )
        return DeadlineResult(
            budget_id=budget_id,
            deadline=budget.current_level_deadline,
            status=deadline_status(
                budget.current_level_deadline,
                now or self.clock(),
                self.due_soon_window,
            ),
        )

    # -------------------------------------------------------------------------
    # Editing
    # -------------------------------------------------------------------------

    async def update_budget(
        self,
        budget_id: str,
        actor: UserRef,
        *,
        expected_status: BudgetStatus | None,
        name: str | None = None,
        notes: str | None = None,
        total_planned_cost: int | None = None,
        currency: str | None = None,
    ) -> ApprovalResult:
        """Edit a draft or returned budget's descriptive fields.

        Saved behind the same status and version guard as transitions.
        """
        log = logger.bind(budget_id=budget_id, actor=actor.id, request_id=self.request_id)
        try:
            budget = await self._load(budget_id)
            loaded_version = budget.version
            changed = budget.update_details(
                actor,
                expected_status=expected_status,
                name=name,
                notes=notes,
                total_planned_cost=total_planned_cost,
                currency=currency,
                now=self.clock(),
            )
            await self.budget_repo.save(budget, expected_status, loaded_version)
        except DomainError as e:
            log.info("Budget update refused", error_code=e.error_code, error=e.message)
            return ApprovalResult.failed(e)

        log.info("Budget updated", changed_fields=list(changed), version=budget.version)
        await self._publish(budget.collect_events())
        return ApprovalResult(budget=budget)

    async def delete_budget(
        self,
        budget_id: str,
        actor: UserRef,
        *,
        expected_status: BudgetStatus | None,
    ) -> ApprovalResult:
        """Delete a draft budget."""
        log = logger.bind(budget_id=budget_id, actor=actor.id, request_id=self.request_id)
        try:
            budget = await self._load(budget_id)
            budget.delete(actor, expected_status=expected_status)
            await self.budget_repo.delete(budget_id, expected_status, budget.version)
        except DomainError as e:
            log.info("Budget deletion refused", error_code=e.error_code, error=e.message)
            return ApprovalResult.failed(e)

        log.info("Budget deleted")
        await self._publish(budget.collect_events())
        return ApprovalResult(budget=budget)

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def submit(
        self,
        budget_id: str,
        actor: UserRef,
        approvers: tuple[str, ...] = (),
        *,
        expected_status: BudgetStatus | None,
    ) -> ApprovalResult:
        """Submit a draft or revised budget for checker approval."""
        return await self._transition(
            budget_id,
            ApprovalAction.SUBMIT,
            actor,
            expected_status,
            lambda budget, now: budget.submit(
                actor,
                self.deadline_policy,
                approvers=approvers,
                now=now,
                expected_status=expected_status,
            ),
        )

    async def approve(
        self,
        budget_id: str,
        actor: UserRef,
        comments: str | None = None,
        *,
        expected_status: BudgetStatus | None,
    ) -> ApprovalResult:
        """Approve the budget at the level the caller observed."""
        return await self._transition(
            budget_id,
            ApprovalAction.APPROVE,
            actor,
            expected_status,
            lambda budget, now: budget.approve(
                actor,
                self.deadline_policy,
                comments=comments,
                now=now,
                expected_status=expected_status,
            ),
        )

    async def reject(
        self,
        budget_id: str,
        actor: UserRef,
        reason: str,
        level: str | None = None,
        *,
        expected_status: BudgetStatus | None,
    ) -> ApprovalResult:
        """Reject the budget; terminal."""
        return await self._transition(
            budget_id,
            ApprovalAction.REJECT,
            actor,
            expected_status,
            lambda budget, now: budget.reject(
                actor,
                reason,
                level=level,
                now=now,
                expected_status=expected_status,
            ),
        )

    async def request_revision(
        self,
        budget_id: str,
        actor: UserRef,
        changes: list[str],
        comments: str | None = None,
        *,
        expected_status: BudgetStatus | None,
    ) -> ApprovalResult:
        """Send the budget back to its owner with a list of changes."""
        return await self._transition(
            budget_id,
            ApprovalAction.REVISE,
            actor,
            expected_status,
            lambda budget, now: budget.request_revision(
                actor,
                changes,
                comments=comments,
                now=now,
                expected_status=expected_status,
            ),
        )

    async def _load(self, budget_id: str) -> BudgetApproval:
        budget = await self.budget_repo.get(budget_id)
        if budget is None:
            raise BudgetNotFoundError(budget_id)
        return budget

    async def _transition(
        self,
        budget_id: str,
        action: ApprovalAction,
        actor: UserRef,
        expected_status: BudgetStatus | None,
        apply: Callable[[BudgetApproval, datetime], AuditTrailItem],
    ) -> ApprovalResult:
        """Load, apply and save one transition.

        The aggregate checks ``expected_status`` against what was loaded;
        the save is then conditional on that same status and on the loaded
        version, so of two callers that observed the same status only the
        first to save wins.

        Args:
            budget_id: Budget identifier.
            action: Action being performed (for logging).
            actor: User performing the action.
            expected_status: Status the caller observed.
            apply: Applies the transition to the loaded aggregate.

        Returns:
            ApprovalResult with the updated budget or the failure.
        """
        log = logger.bind(
            budget_id=budget_id,
            action=action.value,
            actor=actor.id,
            request_id=self.request_id,
        )
        try:
            budget = await self._load(budget_id)
            loaded_version = budget.version
            item = apply(budget, self.clock())
            await self.budget_repo.save(budget, expected_status, loaded_version)
        except DomainError as e:
            log.info(
                "Budget transition refused",
                error_code=e.error_code,
                error=e.message,
            )
            return ApprovalResult.failed(e)

        log.info(
            "Budget status transitioned",
            from_status=item.from_status.value,
            to_status=item.to_status.value,
            audit_length=len(budget.audit_trail),
            deadline=(
                budget.current_level_deadline.isoformat()
                if budget.current_level_deadline
                else None
            ),
        )
        await self._publish(budget.collect_events())
        return ApprovalResult(
            budget=budget,
            transition=StateTransition(
                from_state=item.from_status,
                to_state=item.to_status,
                action=action,
            ),
        )

    async def _publish(self, events: list[DomainEvent]) -> None:
        """Log committed events and hand them to the registered handlers.

        A failing handler is logged; the transition is already committed.
        """
        for event in events:
            logger.debug(
                "Domain event",
                event_type=event.event_type,
                aggregate_id=event.aggregate_id,
                request_id=self.request_id,
            )
            for handler in self.event_handlers:
                try:
                    await handler(event)
                except Exception:
                    logger.exception(
                        "Event handler failed",
                        event_type=event.event_type,
                        aggregate_id=event.aggregate_id,
                    )


# ============================================================================
# Service Factory
# ============================================================================


def get_budget_approval_service(request_id: str | None = None) -> BudgetApprovalService:
    """Get budget approval service instance configured from settings.

    Args:
        request_id: Request ID for correlation.
    """
    return BudgetApprovalService(
        deadline_policy=settings.deadline_policy,
        due_soon_window=settings.due_soon_window,
        request_id=request_id,
    )
