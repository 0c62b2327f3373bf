"""Remittance cycle state machine: open -> closed -> locked -> settled"""

from typing import Dict, Optional

from remittance_engine.domain.exceptions import InvalidTransitionError
from remittance_engine.domain.models import CycleStatus

NEXT_STATUS: Dict[CycleStatus, Optional[CycleStatus]] = {
    CycleStatus.OPEN: CycleStatus.CLOSED,
    CycleStatus.CLOSED: CycleStatus.LOCKED,
    CycleStatus.LOCKED: CycleStatus.SETTLED,
    CycleStatus.SETTLED: None,  # Terminal
}


def next_status(current: CycleStatus) -> Optional[CycleStatus]:
    return NEXT_STATUS[CycleStatus(current)]


def ensure_transition(cycle_id: str, current: str, requested: str, reason: str | None = None) -> CycleStatus:
    """
    Validate a requested transition and return the target status.

    Only the immediate successor of the current state is allowed; anything
    else (skips, backward moves, repeats, leaving `settled`) raises
    InvalidTransitionError and the caller leaves the cycle untouched.
    """
    current_status = CycleStatus(current)
    requested_status = CycleStatus(requested)
    if next_status(current_status) != requested_status:
        raise InvalidTransitionError(str(cycle_id), current_status.value, requested_status.value, reason)
    return requested_status
