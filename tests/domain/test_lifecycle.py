"""
Tests for the campaign lifecycle table (budget_kernel.domain.lifecycle).

Covers:
- Every listed transition resolves; everything else is rejected
- active never reaches archived directly; archived is terminal
- Launch and resume guards report each failed precondition
"""

from datetime import date
from decimal import Decimal

import pytest

from budget_kernel.domain.lifecycle import (
    ACTIVE,
    ARCHIVED,
    CAMPAIGN_WORKFLOW,
    COMPLETED,
    DRAFT,
    PAUSED,
    PENDING_APPROVAL,
    REJECTED,
    SETTLEMENT_STATES,
    SPENDABLE_STATES,
    can_transition,
    enforce_guards,
    failed_launch_guards,
    failed_resume_guards,
    resolve_transition,
    restricted_changes,
)
from budget_kernel.exceptions import InvalidStateError

VALID_EDGES = {
    (DRAFT, PENDING_APPROVAL),
    (PENDING_APPROVAL, ACTIVE),
    (PENDING_APPROVAL, REJECTED),
    (ACTIVE, PAUSED),
    (PAUSED, ACTIVE),
    (ACTIVE, COMPLETED),
    (PAUSED, COMPLETED),
    (DRAFT, ARCHIVED),
    (PAUSED, ARCHIVED),
    (REJECTED, ARCHIVED),
    (COMPLETED, ARCHIVED),
}


class TestTransitionTable:

    @pytest.mark.parametrize("from_state", CAMPAIGN_WORKFLOW.states)
    @pytest.mark.parametrize("to_state", CAMPAIGN_WORKFLOW.states)
    def test_can_transition_matches_table(self, from_state, to_state):
        assert can_transition(from_state, to_state) == ((from_state, to_state) in VALID_EDGES)

    def test_active_cannot_be_archived_directly(self):
        with pytest.raises(InvalidStateError) as exc_info:
            resolve_transition(ACTIVE, "archive")
        assert exc_info.value.current_state == ACTIVE
        assert exc_info.value.requested == "archive"

    def test_archived_is_terminal(self):
        assert CAMPAIGN_WORKFLOW.actions_from(ARCHIVED) == ()
        assert ARCHIVED in CAMPAIGN_WORKFLOW.terminal_states

    def test_settling_transitions_are_exactly_those_into_settlement_states(self):
        for transition in CAMPAIGN_WORKFLOW.transitions:
            assert transition.settles == (transition.to_state in SETTLEMENT_STATES)

    def test_resolve_names_allowed_actions_in_message(self):
        with pytest.raises(InvalidStateError, match="allowed actions: submit, archive"):
            resolve_transition(DRAFT, "launch")

    def test_spendable_states(self):
        assert SPENDABLE_STATES == {ACTIVE, PAUSED}

    def test_active_restricts_budget_schedule_and_currency(self):
        fields = {"budget_total", "currency", "end_date", "start_date", "creative_count"}
        assert restricted_changes(ACTIVE, fields) == ["budget_total", "currency", "start_date"]

    @pytest.mark.parametrize("state", [DRAFT, PENDING_APPROVAL, PAUSED, COMPLETED])
    def test_other_states_restrict_nothing(self, state):
        assert restricted_changes(state, {"budget_total", "start_date", "currency"}) == []


class TestLaunchGuards:

    def test_all_satisfied(self):
        assert failed_launch_guards("approved", 1, True) == []

    def test_each_missing_precondition_reported(self):
        failed = failed_launch_guards("pending", 0, False)
        assert [g.name for g in failed] == ["approved", "has_creatives", "targeting_configured"]

    def test_enforce_guards_raises_with_descriptions(self):
        transition = resolve_transition(PENDING_APPROVAL, "launch")
        failed = failed_launch_guards("approved", 0, True)
        with pytest.raises(InvalidStateError, match="at least one creative"):
            enforce_guards(transition, PENDING_APPROVAL, failed)

    def test_enforce_guards_passes_when_nothing_failed(self):
        transition = resolve_transition(PENDING_APPROVAL, "launch")
        enforce_guards(transition, PENDING_APPROVAL, [])


class TestResumeGuards:

    def test_remaining_budget_required(self):
        failed = failed_resume_guards(Decimal("0"), None, date(2024, 1, 1))
        assert [g.name for g in failed] == ["remaining_budget"]

    def test_end_date_in_past_blocks(self):
        failed = failed_resume_guards(Decimal("10"), date(2024, 1, 1), date(2024, 1, 2))
        assert [g.name for g in failed] == ["within_schedule"]

    def test_end_date_today_allowed(self):
        assert failed_resume_guards(Decimal("10"), date(2024, 1, 1), date(2024, 1, 1)) == []
