"""
Tests for CampaignLifecycleGate.

Verifies:
- The happy path draft -> pending_approval -> active -> paused -> active
  -> completed -> archived
- Guards block launch and resume with a named reason
- Settling transitions release the unspent hold in the same call
- Restricted edits while active
- Stale completed campaigns are archived in bulk
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from budget_kernel.exceptions import InvalidStateError, ValidationError


@pytest.fixture
def owner(kernel_account):
    return kernel_account(Decimal("1000"))


@pytest.fixture
def draft(orchestrator, owner):
    campaign_id = uuid4()
    orchestrator.controller.reserve_budget(owner, campaign_id, Decimal("300"))
    return campaign_id


@pytest.fixture
def approved(orchestrator, draft):
    orchestrator.gate.update_details(draft, creative_count=2, targeting_configured=True)
    orchestrator.gate.submit_for_approval(draft)
    orchestrator.gate.record_review(draft, approved=True, notes="looks good")
    return draft


class TestHappyPath:

    def test_full_lifecycle(self, orchestrator, clock, owner, approved):
        gate = orchestrator.gate

        launched = gate.launch(approved)
        assert (launched.previous_status, launched.status) == ("pending_approval", "active")
        assert launched.budget.launched_at == clock.now_utc()

        assert gate.pause(approved).status == "paused"
        assert gate.resume(approved).status == "active"

        completed = gate.complete(approved)
        assert completed.status == "completed"
        assert completed.settlement is not None
        assert completed.settlement.released == Decimal("300")

        archived = gate.archive(approved)
        assert archived.status == "archived"
        assert archived.settlement.already_settled is True
        assert orchestrator.ledger.snapshot(owner).balance_on_hold == Decimal("0")

    def test_submit_sets_pending_review(self, orchestrator, draft):
        transition = orchestrator.gate.submit_for_approval(draft)
        assert transition.action == "submit"
        assert transition.budget.approval_status == "pending"

    def test_approval_keeps_status(self, orchestrator, draft):
        orchestrator.gate.submit_for_approval(draft)
        review = orchestrator.gate.record_review(draft, approved=True)

        assert review.action == "approve"
        assert review.status == "pending_approval"
        assert review.budget.approval_status == "approved"

    def test_rejection_then_archive_releases_hold(self, orchestrator, owner, draft):
        orchestrator.gate.submit_for_approval(draft)
        rejected = orchestrator.gate.record_review(draft, approved=False, notes="policy")

        assert rejected.status == "rejected"
        assert rejected.budget.approval_status == "rejected"
        assert orchestrator.ledger.snapshot(owner).balance_on_hold == Decimal("300")

        archived = orchestrator.gate.archive(draft)
        assert archived.settlement.released == Decimal("300")
        assert orchestrator.ledger.snapshot(owner).balance_on_hold == Decimal("0")

    def test_draft_can_be_archived(self, orchestrator, owner, draft):
        archived = orchestrator.gate.archive(draft)
        assert archived.previous_status == "draft"
        assert orchestrator.ledger.snapshot(owner).available == Decimal("1000")

    def test_transition_logged(self, orchestrator, draft, captured_logs):
        orchestrator.gate.submit_for_approval(draft)

        [record] = [r for r in captured_logs() if r["message"] == "campaign_transitioned"]
        assert record["from_status"] == "draft"
        assert record["to_status"] == "pending_approval"


class TestGuards:

    def test_launch_without_approval(self, orchestrator, draft):
        orchestrator.gate.update_details(draft, creative_count=1, targeting_configured=True)
        orchestrator.gate.submit_for_approval(draft)
        with pytest.raises(InvalidStateError, match="approval_status must be approved"):
            orchestrator.gate.launch(draft)

    def test_launch_without_creatives(self, orchestrator, draft):
        orchestrator.gate.update_details(draft, targeting_configured=True)
        orchestrator.gate.submit_for_approval(draft)
        orchestrator.gate.record_review(draft, approved=True)
        with pytest.raises(InvalidStateError, match="creative"):
            orchestrator.gate.launch(draft)

    def test_launch_from_draft_rejected(self, orchestrator, draft):
        with pytest.raises(InvalidStateError):
            orchestrator.gate.launch(draft)

    def test_resume_after_end_date(self, orchestrator, clock, owner):
        campaign_id = uuid4()
        orchestrator.controller.reserve_budget(
            owner, campaign_id, Decimal("100"), end_date=date(2024, 1, 5)
        )
        orchestrator.gate.update_details(campaign_id, creative_count=1, targeting_configured=True)
        orchestrator.gate.submit_for_approval(campaign_id)
        orchestrator.gate.record_review(campaign_id, approved=True)
        orchestrator.gate.launch(campaign_id)
        orchestrator.gate.pause(campaign_id)

        clock.advance_days(5)
        with pytest.raises(InvalidStateError, match="end_date"):
            orchestrator.gate.resume(campaign_id)

    def test_resume_fully_spent(self, orchestrator, approved):
        orchestrator.gate.launch(approved)
        orchestrator.controller.process_spend(approved, Decimal("300"), "impressions")
        orchestrator.gate.pause(approved)
        with pytest.raises(InvalidStateError, match="budget_total - budget_spent"):
            orchestrator.gate.resume(approved)

    def test_active_cannot_archive(self, orchestrator, approved):
        orchestrator.gate.launch(approved)
        with pytest.raises(InvalidStateError):
            orchestrator.gate.archive(approved)

    def test_review_requires_pending(self, orchestrator, draft):
        with pytest.raises(InvalidStateError, match="not awaiting review"):
            orchestrator.gate.record_review(draft, approved=True)

    def test_archived_is_terminal(self, orchestrator, draft):
        orchestrator.gate.archive(draft)
        with pytest.raises(InvalidStateError):
            orchestrator.gate.submit_for_approval(draft)


class TestUpdateDetails:

    def test_restricted_fields_while_active(self, orchestrator, approved):
        orchestrator.gate.launch(approved)
        with pytest.raises(ValidationError, match="currency"):
            orchestrator.gate.update_details(approved, currency="EUR")
        with pytest.raises(ValidationError, match="start_date"):
            orchestrator.gate.update_details(approved, start_date=date(2024, 3, 1))

    def test_unrestricted_fields_while_active(self, orchestrator, approved):
        orchestrator.gate.launch(approved)
        updated = orchestrator.gate.update_details(
            approved, creative_count=5, end_date=date(2024, 6, 30)
        )
        assert updated.creative_count == 5
        assert updated.end_date == date(2024, 6, 30)

    def test_schedule_validated(self, orchestrator, draft):
        orchestrator.gate.update_details(draft, start_date=date(2024, 2, 1))
        with pytest.raises(ValidationError):
            orchestrator.gate.update_details(draft, end_date=date(2024, 1, 15))

    def test_completed_campaign_frozen(self, orchestrator, approved):
        orchestrator.gate.launch(approved)
        orchestrator.gate.complete(approved)
        with pytest.raises(InvalidStateError):
            orchestrator.gate.update_details(approved, creative_count=3)

    def test_negative_creative_count(self, orchestrator, draft):
        with pytest.raises(ValidationError):
            orchestrator.gate.update_details(draft, creative_count=-1)


class TestArchiveStale:

    def test_archives_only_old_completed(self, orchestrator, clock, owner):
        old, recent = uuid4(), uuid4()
        for campaign_id in (old, recent):
            orchestrator.controller.reserve_budget(owner, campaign_id, Decimal("100"))
            orchestrator.gate.update_details(campaign_id, creative_count=1, targeting_configured=True)
            orchestrator.gate.submit_for_approval(campaign_id)
            orchestrator.gate.record_review(campaign_id, approved=True)
            orchestrator.gate.launch(campaign_id)

        orchestrator.gate.complete(old)
        clock.advance_days(60)
        orchestrator.gate.complete(recent)
        clock.advance_days(31)

        archived = orchestrator.gate.archive_stale(days_old=90)

        assert [t.campaign_id for t in archived] == [old]
        assert orchestrator.controller.snapshot(old).status == "archived"
        assert orchestrator.controller.snapshot(recent).status == "completed"

    def test_negative_days_rejected(self, orchestrator):
        with pytest.raises(ValidationError):
            orchestrator.gate.archive_stale(days_old=-1)
