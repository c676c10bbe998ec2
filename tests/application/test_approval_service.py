"""Tests for the budget approval application service."""

import asyncio
from datetime import datetime, timedelta

import pytest

from budgetflow.application.approval_service import BudgetApprovalService
from budgetflow.domain.base import DomainEvent
from budgetflow.domain.deadlines import DeadlinePolicy, DeadlineState
from budgetflow.domain.entities import AuditAction, BudgetApproval
from budgetflow.domain.state_machines import ApprovalAction, BudgetStatus
from budgetflow.domain.value_objects import UserRef
from budgetflow.infrastructure.repository import InMemoryBudgetRepository


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current += delta


class InterleavingRepository(InMemoryBudgetRepository):
    """Yields to the event loop after every load so concurrent callers interleave."""

    async def get(self, budget_id: str) -> BudgetApproval | None:
        budget = await super().get(budget_id)
        await asyncio.sleep(0)
        return budget


@pytest.fixture
def repo() -> InMemoryBudgetRepository:
    return InMemoryBudgetRepository()


@pytest.fixture
def clock(now: datetime) -> FakeClock:
    return FakeClock(now)


@pytest.fixture
def service(repo: InMemoryBudgetRepository, clock: FakeClock) -> BudgetApprovalService:
    return BudgetApprovalService(
        budget_repo=repo,
        deadline_policy=DeadlinePolicy(),
        clock=clock,
        request_id="req-test",
    )


async def _create(service: BudgetApprovalService, owner: UserRef) -> str:
    result = await service.create_budget(created_by=owner, name="Warehouse roof", project_id="p-1")
    assert result.success
    return str(result.budget.id)


class TestCreateAndQuery:
    """Tests for creating, reading and listing budgets."""

    @pytest.mark.asyncio
    async def test_create_budget(self, service: BudgetApprovalService, owner: UserRef) -> None:
        result = await service.create_budget(
            created_by=owner,
            name="Warehouse roof",
            total_planned_cost=5_000_00,
            budget_id="bud-roof",
        )

        assert result.success
        assert result.budget.status == BudgetStatus.DRAFT
        assert result.budget.currency == "KES"

        loaded = await service.get_budget("bud-roof")
        assert loaded.success
        assert loaded.budget.name == "Warehouse roof"

    @pytest.mark.asyncio
    async def test_create_duplicate_id(
        self, service: BudgetApprovalService, owner: UserRef
    ) -> None:
        await service.create_budget(created_by=owner, name="A", budget_id="bud-dup")
        result = await service.create_budget(created_by=owner, name="B", budget_id="bud-dup")

        assert not result.success
        assert result.error_code == "BUDGET_EXISTS"

    @pytest.mark.asyncio
    async def test_create_invalid(self, service: BudgetApprovalService, owner: UserRef) -> None:
        result = await service.create_budget(created_by=owner, name=" ")

        assert not result.success
        assert result.error_code == "VALIDATION_ERROR"
        assert result.error_details["field"] == "name"

    @pytest.mark.asyncio
    async def test_get_missing_budget(self, service: BudgetApprovalService) -> None:
        result = await service.get_budget("nope")

        assert not result.success
        assert result.error_code == "BUDGET_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_list_budgets_filters(
        self, service: BudgetApprovalService, owner: UserRef, clock: FakeClock
    ) -> None:
        first = await _create(service, owner)
        clock.advance(timedelta(minutes=1))
        second = await _create(service, owner)
        await service.submit(second, owner, expected_status=BudgetStatus.DRAFT)

        everything = await service.list_budgets()
        assert everything.total == 2
        assert [str(b.id) for b in everything.budgets] == [second, first]

        drafts = await service.list_budgets(status="draft")
        assert [str(b.id) for b in drafts.budgets] == [first]

        other_project = await service.list_budgets(project_id="p-2")
        assert other_project.total == 0

        paged = await service.list_budgets(page=2, page_size=1)
        assert [str(b.id) for b in paged.budgets] == [first]

    @pytest.mark.asyncio
    async def test_list_unknown_status(self, service: BudgetApprovalService) -> None:
        result = await service.list_budgets(status="archived")
        assert not result.success


class TestApprovalScenarios:
    """End-to-end approval flows through the service."""

    @pytest.mark.asyncio
    async def test_submit_approve_reject(
        self,
        service: BudgetApprovalService,
        owner: UserRef,
        checker: UserRef,
        manager: UserRef,
        now: datetime,
    ) -> None:
        """Draft -> submit -> approve -> reject at level 2."""
        budget_id = await _create(service, owner)

        submitted = await service.submit(budget_id, owner, expected_status=BudgetStatus.DRAFT)
        assert submitted.success
        assert submitted.budget.status == BudgetStatus.PENDING_CHECKER_APPROVAL
        assert len(submitted.budget.audit_trail) == 1
        assert submitted.budget.current_level_deadline == now + timedelta(hours=48)
        assert submitted.transition.action == ApprovalAction.SUBMIT

        approved = await service.approve(
            budget_id,
            checker,
            comments="looks good",
            expected_status=BudgetStatus.PENDING_CHECKER_APPROVAL,
        )
        assert approved.budget.status == BudgetStatus.PENDING_MANAGER_APPROVAL
        assert len(approved.budget.audit_trail) == 2
        assert approved.budget.last_action.action == AuditAction.APPROVED

        rejected = await service.reject(
            budget_id,
            manager,
            reason="insufficient detail",
            level="2",
            expected_status=BudgetStatus.PENDING_MANAGER_APPROVAL,
        )
        assert rejected.budget.status == BudgetStatus.REJECTED
        assert len(rejected.budget.audit_trail) == 3

        again = await service.submit(budget_id, owner, expected_status=BudgetStatus.REJECTED)
        assert not again.success
        assert again.error_code == "INVALID_TRANSITION"

        stored = await service.get_budget(budget_id)
        assert len(stored.budget.audit_trail) == 3

    @pytest.mark.asyncio
    async def test_revision_restarts_at_checker(
        self,
        service: BudgetApprovalService,
        owner: UserRef,
        checker: UserRef,
        manager: UserRef,
        finance: UserRef,
    ) -> None:
        """A revision requested by finance sends the budget back to the checker."""
        budget_id = await _create(service, owner)
        await service.submit(budget_id, owner, expected_status=BudgetStatus.DRAFT)
        await service.approve(
            budget_id, checker, expected_status=BudgetStatus.PENDING_CHECKER_APPROVAL
        )
        await service.approve(
            budget_id, manager, expected_status=BudgetStatus.PENDING_MANAGER_APPROVAL
        )

        revised = await service.request_revision(
            budget_id,
            finance,
            changes=["recompute totals", "add justification"],
            comments="fix totals",
            expected_status=BudgetStatus.PENDING_FINANCE_APPROVAL,
        )
        assert revised.budget.status == BudgetStatus.REVISION_REQUESTED
        assert revised.budget.current_level_deadline is None

        resubmitted = await service.submit(
            budget_id, owner, expected_status=BudgetStatus.REVISION_REQUESTED
        )
        assert resubmitted.budget.status == BudgetStatus.PENDING_CHECKER_APPROVAL
        assert len(resubmitted.budget.audit_trail) == 5

    @pytest.mark.asyncio
    async def test_full_approval(
        self,
        service: BudgetApprovalService,
        owner: UserRef,
        checker: UserRef,
        manager: UserRef,
        finance: UserRef,
    ) -> None:
        budget_id = await _create(service, owner)
        await service.submit(budget_id, owner, expected_status=BudgetStatus.DRAFT)
        steps = [
            (checker, BudgetStatus.PENDING_CHECKER_APPROVAL),
            (manager, BudgetStatus.PENDING_MANAGER_APPROVAL),
            (finance, BudgetStatus.PENDING_FINANCE_APPROVAL),
        ]
        for actor, observed in steps:
            result = await service.approve(budget_id, actor, expected_status=observed)
            assert result.success

        assert result.budget.status == BudgetStatus.APPROVED
        assert result.budget.current_level_deadline is None
        assert result.transition.to_state == BudgetStatus.APPROVED

        late = await service.approve(budget_id, finance, expected_status=BudgetStatus.APPROVED)
        assert late.error_code == "INVALID_TRANSITION"

    @pytest.mark.asyncio
    async def test_validation_error_leaves_budget_untouched(
        self, service: BudgetApprovalService, owner: UserRef, checker: UserRef
    ) -> None:
        budget_id = await _create(service, owner)
        await service.submit(budget_id, owner, expected_status=BudgetStatus.DRAFT)

        result = await service.reject(
            budget_id, checker, reason="", expected_status=BudgetStatus.PENDING_CHECKER_APPROVAL
        )
        assert result.error_code == "VALIDATION_ERROR"

        stored = await service.get_budget(budget_id)
        assert stored.budget.status == BudgetStatus.PENDING_CHECKER_APPROVAL
        assert len(stored.budget.audit_trail) == 1

    @pytest.mark.asyncio
    async def test_missing_budget(self, service: BudgetApprovalService, checker: UserRef) -> None:
        result = await service.approve(
            "missing", checker, expected_status=BudgetStatus.PENDING_CHECKER_APPROVAL
        )
        assert result.error_code == "BUDGET_NOT_FOUND"


class TestConcurrency:
    """Tests for the optimistic status guard."""

    @pytest.mark.asyncio
    async def test_stale_expected_status(
        self, service: BudgetApprovalService, owner: UserRef, checker: UserRef
    ) -> None:
        """Two approvers acting on the same observed status advance once."""
        budget_id = await _create(service, owner)
        await service.submit(budget_id, owner, expected_status=BudgetStatus.DRAFT)
        observed = BudgetStatus.PENDING_CHECKER_APPROVAL

        first = await service.approve(budget_id, checker, expected_status=observed)
        second = await service.approve(budget_id, checker, expected_status=observed)

        assert first.success
        assert not second.success
        assert second.error_code == "CONCURRENT_MODIFICATION"

        stored = await service.get_budget(budget_id)
        assert stored.budget.status == BudgetStatus.PENDING_MANAGER_APPROVAL
        assert len(stored.budget.audit_trail) == 2

    @pytest.mark.asyncio
    async def test_missing_expected_status(
        self, service: BudgetApprovalService, owner: UserRef, checker: UserRef
    ) -> None:
        """An operation without an observed status is refused and changes nothing."""
        budget_id = await _create(service, owner)

        result = await service.submit(budget_id, owner, expected_status=None)

        assert result.error_code == "VALIDATION_ERROR"
        assert result.error_details["field"] == "expected_status"
        stored = await service.get_budget(budget_id)
        assert stored.budget.status == BudgetStatus.DRAFT
        assert stored.budget.version == 1

    @pytest.mark.asyncio
    async def test_parallel_approvals_advance_once(
        self, clock: FakeClock, owner: UserRef, checker: UserRef
    ) -> None:
        """Approvals that all loaded the same version commit exactly once."""
        service = BudgetApprovalService(budget_repo=InterleavingRepository(), clock=clock)
        budget_id = await _create(service, owner)
        await service.submit(budget_id, owner, expected_status=BudgetStatus.DRAFT)
        observed = BudgetStatus.PENDING_CHECKER_APPROVAL

        results = await asyncio.gather(
            *(service.approve(budget_id, checker, expected_status=observed) for _ in range(3))
        )

        assert [r.success for r in results].count(True) == 1
        assert sorted(r.error_code or "" for r in results) == [
            "",
            "CONCURRENT_MODIFICATION",
            "CONCURRENT_MODIFICATION",
        ]
        stored = await service.get_budget(budget_id)
        assert stored.budget.status == BudgetStatus.PENDING_MANAGER_APPROVAL
        assert len(stored.budget.audit_trail) == 2

    @pytest.mark.asyncio
    async def test_edit_racing_approval(
        self, clock: FakeClock, owner: UserRef, checker: UserRef
    ) -> None:
        """An edit and a submission from the same draft cannot both commit."""
        service = BudgetApprovalService(budget_repo=InterleavingRepository(), clock=clock)
        budget_id = await _create(service, owner)

        edit, submit = await asyncio.gather(
            service.update_budget(
                budget_id, owner, expected_status=BudgetStatus.DRAFT, name="Roof v2"
            ),
            service.submit(budget_id, owner, expected_status=BudgetStatus.DRAFT),
        )

        assert edit.success
        assert submit.error_code == "CONCURRENT_MODIFICATION"
        stored = await service.get_budget(budget_id)
        assert stored.budget.name == "Roof v2"
        assert stored.budget.status == BudgetStatus.DRAFT


class TestEditing:
    """Tests for updating and deleting budgets."""

    @pytest.mark.asyncio
    async def test_update_draft(
        self, service: BudgetApprovalService, owner: UserRef, manager: UserRef
    ) -> None:
        budget_id = await _create(service, owner)

        result = await service.update_budget(
            budget_id,
            manager,
            expected_status=BudgetStatus.DRAFT,
            notes="quote attached",
            total_planned_cost=42_000,
        )

        assert result.success
        stored = await service.get_budget(budget_id)
        assert stored.budget.notes == "quote attached"
        assert stored.budget.total_planned_cost == 42_000
        assert stored.budget.updated_by == manager
        assert stored.budget.version == 2

    @pytest.mark.asyncio
    async def test_update_pending_budget_refused(
        self, service: BudgetApprovalService, owner: UserRef
    ) -> None:
        budget_id = await _create(service, owner)
        await service.submit(budget_id, owner, expected_status=BudgetStatus.DRAFT)

        result = await service.update_budget(
            budget_id,
            owner,
            expected_status=BudgetStatus.PENDING_CHECKER_APPROVAL,
            name="Sneaky",
        )

        assert result.error_code == "INVALID_TRANSITION"
        stored = await service.get_budget(budget_id)
        assert stored.budget.name == "Warehouse roof"

    @pytest.mark.asyncio
    async def test_delete_draft(self, service: BudgetApprovalService, owner: UserRef) -> None:
        received: list[DomainEvent] = []

        async def handler(event: DomainEvent) -> None:
            received.append(event)

        service.event_handlers.append(handler)
        budget_id = await _create(service, owner)

        result = await service.delete_budget(budget_id, owner, expected_status=BudgetStatus.DRAFT)

        assert result.success
        assert (await service.get_budget(budget_id)).error_code == "BUDGET_NOT_FOUND"
        assert received[-1].event_type == "budget.deleted"

    @pytest.mark.asyncio
    async def test_delete_submitted_budget_refused(
        self, service: BudgetApprovalService, owner: UserRef
    ) -> None:
        budget_id = await _create(service, owner)
        await service.submit(budget_id, owner, expected_status=BudgetStatus.DRAFT)

        result = await service.delete_budget(
            budget_id, owner, expected_status=BudgetStatus.PENDING_CHECKER_APPROVAL
        )

        assert result.error_code == "INVALID_TRANSITION"
        assert (await service.get_budget(budget_id)).success

    @pytest.mark.asyncio
    async def test_delete_missing_budget(
        self, service: BudgetApprovalService, owner: UserRef
    ) -> None:
        result = await service.delete_budget("missing", owner, expected_status=BudgetStatus.DRAFT)
        assert result.error_code == "BUDGET_NOT_FOUND"


class TestDeadlines:
    """Tests for deadline status queries."""

    @pytest.mark.asyncio
    async def test_deadline_moves_through_states(
        self, service: BudgetApprovalService, owner: UserRef, clock: FakeClock
    ) -> None:
        budget_id = await _create(service, owner)

        draft = await service.get_deadline_status(budget_id)
        assert draft.status.status == DeadlineState.NONE

        await service.submit(budget_id, owner, expected_status=BudgetStatus.DRAFT)
        fresh = await service.get_deadline_status(budget_id)
        assert fresh.status.status == DeadlineState.DUE_SOON

        clock.advance(timedelta(hours=49))
        late = await service.get_deadline_status(budget_id)
        assert late.status.status == DeadlineState.PASSED

        stored = await service.get_budget(budget_id)
        assert stored.budget.status == BudgetStatus.PENDING_CHECKER_APPROVAL

    @pytest.mark.asyncio
    async def test_explicit_now(
        self, service: BudgetApprovalService, owner: UserRef, now: datetime
    ) -> None:
        budget_id = await _create(service, owner)
        await service.submit(budget_id, owner, expected_status=BudgetStatus.DRAFT)

        result = await service.get_deadline_status(budget_id, now=now - timedelta(days=5))
        assert result.status.status == DeadlineState.ON_TRACK

    @pytest.mark.asyncio
    async def test_missing_budget(self, service: BudgetApprovalService) -> None:
        result = await service.get_deadline_status("missing")
        assert not result.success
        assert result.error_code == "BUDGET_NOT_FOUND"


class TestEvents:
    """Tests for domain event dispatch."""

    @pytest.mark.asyncio
    async def test_handlers_receive_committed_events(
        self, repo: InMemoryBudgetRepository, clock: FakeClock, owner: UserRef
    ) -> None:
        received: list[DomainEvent] = []

        async def handler(event: DomainEvent) -> None:
            received.append(event)

        service = BudgetApprovalService(budget_repo=repo, clock=clock, event_handlers=[handler])
        budget_id = await _create(service, owner)
        await service.submit(budget_id, owner, expected_status=BudgetStatus.DRAFT)
        await service.reject(
            budget_id, owner, reason="", expected_status=BudgetStatus.PENDING_CHECKER_APPROVAL
        )

        assert [e.event_type for e in received] == ["budget.created", "budget.submitted"]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_fail_transition(
        self, repo: InMemoryBudgetRepository, clock: FakeClock, owner: UserRef
    ) -> None:
        async def handler(event: DomainEvent) -> None:
            raise RuntimeError("notification service down")

        service = BudgetApprovalService(budget_repo=repo, clock=clock, event_handlers=[handler])
        budget_id = await _create(service, owner)
        result = await service.submit(budget_id, owner, expected_status=BudgetStatus.DRAFT)

        assert result.success
