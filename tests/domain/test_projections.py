"""Tests for approval display projections."""

import pytest

from budgetflow.domain.projections import (
    SUBMIT_BLOCKED_MESSAGE,
    BadgeVariant,
    approval_steps,
    status_badge,
    status_label,
    submit_block_reason,
)
from budgetflow.domain.state_machines import BudgetStatus


class TestApprovalSteps:
    """Tests for the progress steps."""

    def test_draft(self) -> None:
        steps = approval_steps(BudgetStatus.DRAFT)
        assert [s.title for s in steps] == ["Creator", "Checker", "Manager", "Finance"]
        assert [s.current for s in steps] == [True, False, False, False]
        assert not any(s.completed for s in steps)

    def test_pending_manager(self) -> None:
        steps = approval_steps(BudgetStatus.PENDING_MANAGER_APPROVAL)
        assert [s.completed for s in steps] == [True, True, False, False]
        assert [s.current for s in steps] == [False, False, True, False]

    def test_approved_completes_everything(self) -> None:
        steps = approval_steps(BudgetStatus.APPROVED)
        assert all(s.completed for s in steps)
        assert not any(s.current for s in steps)

    @pytest.mark.parametrize(
        "status", [BudgetStatus.REJECTED, BudgetStatus.REVISION_REQUESTED]
    )
    def test_out_of_band_statuses(self, status: BudgetStatus) -> None:
        """Side branches show no progress."""
        steps = approval_steps(status)
        assert not any(s.completed or s.current for s in steps)


class TestStatusDisplay:
    """Tests for label, badge and submit hint."""

    def test_label(self) -> None:
        assert status_label(BudgetStatus.PENDING_CHECKER_APPROVAL) == "PENDING CHECKER APPROVAL"
        assert status_label(BudgetStatus.DRAFT) == "DRAFT"

    @pytest.mark.parametrize(
        ("status", "badge"),
        [
            (BudgetStatus.APPROVED, BadgeVariant.SUCCESS),
            (BudgetStatus.DRAFT, BadgeVariant.WARNING),
            (BudgetStatus.REVISION_REQUESTED, BadgeVariant.WARNING),
            (BudgetStatus.REJECTED, BadgeVariant.DESTRUCTIVE),
            (BudgetStatus.PENDING_MANAGER_APPROVAL, BadgeVariant.SECONDARY),
        ],
    )
    def test_badge(self, status: BudgetStatus, badge: BadgeVariant) -> None:
        assert status_badge(status) == badge

    def test_submit_block_reason(self) -> None:
        assert submit_block_reason(BudgetStatus.DRAFT) is None
        assert submit_block_reason(BudgetStatus.REVISION_REQUESTED) is None
        assert submit_block_reason(BudgetStatus.APPROVED) == SUBMIT_BLOCKED_MESSAGE
        assert SUBMIT_BLOCKED_MESSAGE == "Can only submit draft or revision requested budgets"
