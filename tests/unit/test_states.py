"""Unit tests for the application state machine"""

import pytest
from rentflow.domain.exceptions import InvalidTransitionError
from rentflow.domain.states import (
    DISPLAY_LABELS,
    ApplicationState,
    GuardContext,
    WorkflowEvent,
    allowed_events,
    next_state,
)

S = ApplicationState
E = WorkflowEvent


@pytest.mark.parametrize(
    "current,event,expected",
    [
        (S.DRAFT, E.SUBMIT, S.SUBMITTED),
        (S.SUBMITTED, E.SCREEN, S.ADMIN_SCREENED),
        (S.ADMIN_SCREENED, E.APPROVE, S.APPROVED_HIGH),
        (S.APPROVED_HIGH, E.SET_TERMS, S.TERMS_SET),
        (S.TERMS_SET, E.OPEN_PAYMENTS, S.MIN_DUE),
    ],
)
def test_unguarded_forward_edges(current, event, expected):
    assert next_state(current, event) == expected


def test_min_paid_requires_stage1():
    with pytest.raises(InvalidTransitionError):
        next_state(S.MIN_DUE, E.PAYMENT_UPDATED, GuardContext(stage1_met=False))

    assert next_state(S.MIN_DUE, E.PAYMENT_UPDATED, GuardContext(stage1_met=True)) == S.MIN_PAID


def test_countersign_rechecks_stage1():
    """A chargeback after min_paid must block countersigning"""
    with pytest.raises(InvalidTransitionError) as exc_info:
        next_state(S.MIN_PAID, E.COUNTERSIGN, GuardContext(stage1_met=False))

    assert exc_info.value.current_state == "min_paid"
    assert next_state(S.MIN_PAID, E.COUNTERSIGN, GuardContext(stage1_met=True)) == S.COUNTERSIGNED


def test_occupy_requires_move_in_date():
    with pytest.raises(InvalidTransitionError):
        next_state(S.COUNTERSIGNED, E.OCCUPY, GuardContext(move_in_reached=False))

    assert next_state(S.COUNTERSIGNED, E.OCCUPY, GuardContext(move_in_reached=True)) == S.OCCUPIED


def test_skipping_states_is_rejected():
    with pytest.raises(InvalidTransitionError):
        next_state(S.DRAFT, E.APPROVE)

    with pytest.raises(InvalidTransitionError):
        next_state(S.APPROVED_HIGH, E.COUNTERSIGN, GuardContext(stage1_met=True))


@pytest.mark.parametrize("current", [s for s in S if not s.is_terminal])
@pytest.mark.parametrize("event,target", [(E.REJECT, S.REJECTED), (E.WITHDRAW, S.WITHDRAWN)])
def test_exit_from_any_open_state(current, event, target):
    assert next_state(current, event, GuardContext(reason="household moved elsewhere")) == target


@pytest.mark.parametrize("reason", [None, "", "   "])
def test_exit_requires_reason(reason):
    with pytest.raises(InvalidTransitionError):
        next_state(S.SUBMITTED, E.REJECT, GuardContext(reason=reason))


@pytest.mark.parametrize("terminal", [S.REJECTED, S.WITHDRAWN])
@pytest.mark.parametrize("event", list(E))
def test_terminal_states_are_final(terminal, event):
    ctx = GuardContext(stage1_met=True, move_in_reached=True, reason="retry")
    with pytest.raises(InvalidTransitionError):
        next_state(terminal, event, ctx)


def test_allowed_events_hint():
    assert allowed_events(S.MIN_PAID) == [E.COUNTERSIGN, E.REJECT, E.WITHDRAW]
    assert allowed_events(S.WITHDRAWN) == []


def test_every_state_has_a_display_label():
    assert set(DISPLAY_LABELS) == set(S)
    assert DISPLAY_LABELS[S.MIN_PAID] == "countersign_ready"
