"""
Task state machine.

    PENDING -> SCHEDULED -> RUNNING -> COMPLETED
        \           \          \
         +-----------+----------+--> FAILED

Transitions only move forward. FAILED is reachable from every non-terminal
state, COMPLETED only from RUNNING. COMPLETED and FAILED are terminal.
"""

from typing import Dict, FrozenSet

from taskdriver.core.errors import InvalidTransition
from taskdriver.models.enums import State


STATE_TRANSITIONS: Dict[State, FrozenSet[State]] = {
    State.PENDING: frozenset({State.SCHEDULED, State.FAILED}),
    State.SCHEDULED: frozenset({State.RUNNING, State.FAILED}),
    State.RUNNING: frozenset({State.COMPLETED, State.FAILED}),
    State.COMPLETED: frozenset(),
    State.FAILED: frozenset(),
}


def next_states(src: State) -> FrozenSet[State]:
    """States reachable from src in one transition."""
    return STATE_TRANSITIONS[src]


def valid_state_transition(src: State, dst: State) -> bool:
    return dst in STATE_TRANSITIONS[src]


def is_terminal(state: State) -> bool:
    return not STATE_TRANSITIONS[state]


def check_transition(src: State, dst: State):
    """
    Raises:
        InvalidTransition: If the state machine does not allow src -> dst
    """
    if not valid_state_transition(src, dst):
        raise InvalidTransition(src, dst)
