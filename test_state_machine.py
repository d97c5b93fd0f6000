#!/usr/bin/env python3
"""
Test Suite for the task state machine

Usage:
  pytest test_state_machine.py
"""

import itertools
import unittest

from taskdriver.core.errors import InvalidTransition
from taskdriver.core.state_machine import (
    check_transition,
    is_terminal,
    next_states,
    valid_state_transition,
)
from taskdriver.models.enums import State

ORDER = [State.PENDING, State.SCHEDULED, State.RUNNING, State.COMPLETED]

ALLOWED = {
    (State.PENDING, State.SCHEDULED),
    (State.PENDING, State.FAILED),
    (State.SCHEDULED, State.RUNNING),
    (State.SCHEDULED, State.FAILED),
    (State.RUNNING, State.COMPLETED),
    (State.RUNNING, State.FAILED),
}


class TestStateMachine(unittest.TestCase):
    """Test cases for state transitions"""

    def test_transition_table(self):
        """Exactly the forward transitions are allowed"""
        for src, dst in itertools.product(State, State):
            with self.subTest(src=src, dst=dst):
                self.assertEqual(valid_state_transition(src, dst), (src, dst) in ALLOWED)

    def test_no_backward_transitions(self):
        for i, src in enumerate(ORDER):
            for dst in ORDER[:i + 1]:
                self.assertFalse(valid_state_transition(src, dst), f"{src} -> {dst}")

    def test_completed_only_from_running(self):
        sources = [s for s in State if valid_state_transition(s, State.COMPLETED)]
        self.assertEqual(sources, [State.RUNNING])

    def test_failed_from_every_non_terminal_state(self):
        for state in (State.PENDING, State.SCHEDULED, State.RUNNING):
            self.assertIn(State.FAILED, next_states(state))

    def test_terminal_states(self):
        self.assertTrue(is_terminal(State.COMPLETED))
        self.assertTrue(is_terminal(State.FAILED))
        self.assertFalse(is_terminal(State.RUNNING))

    def test_check_transition_raises(self):
        with self.assertRaises(InvalidTransition) as cm:
            check_transition(State.COMPLETED, State.RUNNING)
        self.assertEqual(cm.exception.src, State.COMPLETED)
        self.assertEqual(cm.exception.dst, State.RUNNING)
        self.assertIn("completed to running", str(cm.exception))

        check_transition(State.SCHEDULED, State.RUNNING)


if __name__ == '__main__':
    unittest.main()
