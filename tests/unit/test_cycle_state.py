"""Unit tests for the cycle state machine"""

import pytest
from remittance_engine.domain.cycle_state import ensure_transition, next_status
from remittance_engine.domain.exceptions import InvalidTransitionError
from remittance_engine.domain.models import CycleStatus


@pytest.mark.parametrize(
    "current,requested",
    [
        (CycleStatus.OPEN, CycleStatus.CLOSED),
        (CycleStatus.CLOSED, CycleStatus.LOCKED),
        (CycleStatus.LOCKED, CycleStatus.SETTLED),
    ],
)
def test_forward_transitions_allowed(current, requested):
    assert ensure_transition("cycle-1", current, requested) == requested


@pytest.mark.parametrize(
    "current,requested",
    [
        (CycleStatus.OPEN, CycleStatus.LOCKED),  # skip
        (CycleStatus.OPEN, CycleStatus.SETTLED),  # skip
        (CycleStatus.CLOSED, CycleStatus.SETTLED),  # skip
        (CycleStatus.LOCKED, CycleStatus.CLOSED),  # backward
        (CycleStatus.CLOSED, CycleStatus.CLOSED),  # repeat
        (CycleStatus.SETTLED, CycleStatus.OPEN),  # terminal
    ],
)
def test_other_transitions_rejected(current, requested):
    with pytest.raises(InvalidTransitionError) as exc_info:
        ensure_transition("cycle-1", current, requested)
    assert exc_info.value.current == current.value
    assert exc_info.value.requested == requested.value


def test_accepts_plain_strings():
    """Test persisted string statuses are accepted"""
    assert ensure_transition("cycle-1", "locked", "settled") == CycleStatus.SETTLED


def test_settled_is_terminal():
    assert next_status(CycleStatus.SETTLED) is None


def test_reason_in_message():
    with pytest.raises(InvalidTransitionError, match="not calculated"):
        ensure_transition("cycle-1", "open", "locked", reason="not calculated")
