"""
Campaign lifecycle state machine (``budget_kernel.domain.lifecycle``).

Responsibility
--------------
The single definition of which campaign status transitions exist, which
guards apply to them, and which budget operations each status permits.
CampaignLifecycleGate consults this table; it never encodes transitions
of its own.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects and functions.  ZERO I/O.

Transition table
----------------
::

    draft ----------submit----------> pending_approval
    pending_approval --launch-------> active          (guards: approved,
                                                        has_creatives,
                                                        targeting_configured)
    pending_approval --reject-------> rejected
    active ---------pause-----------> paused
    paused ---------resume----------> active          (guards: remaining_budget,
                                                        within_schedule)
    active | paused --complete------> completed       (settles)
    draft | paused | rejected | completed --archive--> archived (settles)

``active`` never moves directly to ``archived``; it must be paused or
completed first.  ``archived`` is terminal.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from budget_kernel.exceptions import InvalidStateError

DRAFT = "draft"
PENDING_APPROVAL = "pending_approval"
ACTIVE = "active"
PAUSED = "paused"
REJECTED = "rejected"
COMPLETED = "completed"
ARCHIVED = "archived"


@dataclass(frozen=True)
class Guard:
    """A named precondition on a transition; evaluated by the functions below."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid status transition.  ``settles`` marks transitions that release the hold."""
    from_state: str
    to_state: str
    action: str
    guards: tuple[Guard, ...] = ()
    settles: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for the campaign lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def find(self, from_state: str, action: str) -> Transition | None:
        for transition in self.transitions:
            if transition.from_state == from_state and transition.action == action:
                return transition
        return None

    def actions_from(self, from_state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == from_state)

    def targets_from(self, from_state: str) -> frozenset[str]:
        return frozenset(t.to_state for t in self.transitions if t.from_state == from_state)


APPROVED_GUARD = Guard("approved", "approval_status must be approved")
HAS_CREATIVES_GUARD = Guard("has_creatives", "at least one creative is attached")
TARGETING_GUARD = Guard("targeting_configured", "targeting has been configured")
REMAINING_BUDGET_GUARD = Guard("remaining_budget", "budget_total - budget_spent > 0")
WITHIN_SCHEDULE_GUARD = Guard("within_schedule", "today is on or before end_date")

CAMPAIGN_WORKFLOW = Workflow(
    name="campaign",
    description="Advertising campaign lifecycle",
    initial_state=DRAFT,
    states=(DRAFT, PENDING_APPROVAL, ACTIVE, PAUSED, REJECTED, COMPLETED, ARCHIVED),
    transitions=(
        Transition(DRAFT, PENDING_APPROVAL, "submit"),
        Transition(
            PENDING_APPROVAL,
            ACTIVE,
            "launch",
            guards=(APPROVED_GUARD, HAS_CREATIVES_GUARD, TARGETING_GUARD),
        ),
        Transition(PENDING_APPROVAL, REJECTED, "reject"),
        Transition(ACTIVE, PAUSED, "pause"),
        Transition(
            PAUSED,
            ACTIVE,
            "resume",
            guards=(REMAINING_BUDGET_GUARD, WITHIN_SCHEDULE_GUARD),
        ),
        Transition(ACTIVE, COMPLETED, "complete", settles=True),
        Transition(PAUSED, COMPLETED, "complete", settles=True),
        Transition(DRAFT, ARCHIVED, "archive", settles=True),
        Transition(PAUSED, ARCHIVED, "archive", settles=True),
        Transition(REJECTED, ARCHIVED, "archive", settles=True),
        Transition(COMPLETED, ARCHIVED, "archive", settles=True),
    ),
    terminal_states=(ARCHIVED,),
)

# Spend accrues while delivering and for late accruals after a pause
SPENDABLE_STATES = frozenset({ACTIVE, PAUSED})

# Settlement (and nothing else that moves money) is legal here
SETTLEMENT_STATES = frozenset({COMPLETED, ARCHIVED})

# Fields that may not change while the campaign is delivering
RESTRICTED_WHILE_ACTIVE = frozenset({"budget_total", "start_date", "currency"})


def resolve_transition(current_state: str, action: str) -> Transition:
    """
    Look up the transition for ``action`` from ``current_state``.

    Raises:
        InvalidStateError: No such transition exists.
    """
    transition = CAMPAIGN_WORKFLOW.find(current_state, action)
    if transition is None:
        allowed = ", ".join(CAMPAIGN_WORKFLOW.actions_from(current_state)) or "none"
        raise InvalidStateError(
            f"Cannot {action} a campaign in status '{current_state}' "
            f"(allowed actions: {allowed})",
            current_state=current_state,
            requested=action,
        )
    return transition


def can_transition(from_state: str, to_state: str) -> bool:
    return to_state in CAMPAIGN_WORKFLOW.targets_from(from_state)


def restricted_changes(current_state: str, fields: set[str]) -> list[str]:
    """Fields in ``fields`` that may not change in ``current_state``, sorted."""
    if current_state != ACTIVE:
        return []
    return sorted(RESTRICTED_WHILE_ACTIVE & fields)


def failed_launch_guards(
    approval_status: str,
    creative_count: int,
    targeting_configured: bool,
) -> list[Guard]:
    failed = []
    if approval_status != "approved":
        failed.append(APPROVED_GUARD)
    if creative_count < 1:
        failed.append(HAS_CREATIVES_GUARD)
    if not targeting_configured:
        failed.append(TARGETING_GUARD)
    return failed


def failed_resume_guards(
    remaining: Decimal,
    end_date: date | None,
    today: date,
) -> list[Guard]:
    failed = []
    if remaining <= 0:
        failed.append(REMAINING_BUDGET_GUARD)
    if end_date is not None and today > end_date:
        failed.append(WITHIN_SCHEDULE_GUARD)
    return failed


def enforce_guards(transition: Transition, current_state: str, failed: list[Guard]) -> None:
    """Raise InvalidStateError naming every failed guard of ``transition``."""
    if failed:
        names = ", ".join(guard.description for guard in failed)
        raise InvalidStateError(
            f"Cannot {transition.action} campaign: {names}",
            current_state=current_state,
            requested=transition.to_state,
        )
