#!/usr/bin/env python3
"""
Test Suite for the cancellation context

Usage:
  pytest test_context.py
"""

import unittest
from unittest.mock import MagicMock

import pytest

from taskdriver.core.context import Context
from taskdriver.core.errors import Cancelled, DeadlineExceeded


class TestContext(unittest.TestCase):
    """Test cases for Context"""

    def test_background_is_live(self):
        ctx = Context.background()
        self.assertFalse(ctx.done())
        self.assertIsNone(ctx.err())
        self.assertIsNone(ctx.deadline)

    def test_cancel(self):
        """Cancelling ends the context with Cancelled"""
        ctx = Context.background()
        ctx.cancel()
        self.assertTrue(ctx.done())
        self.assertIsInstance(ctx.err(), Cancelled)

    def test_cancel_is_idempotent(self):
        """A second cancel keeps the first error and fires callbacks once"""
        ctx = Context.background()
        callback = MagicMock()
        ctx.on_cancel(callback)

        ctx.cancel()
        first = ctx.err()
        ctx.cancel()

        self.assertIs(ctx.err(), first)
        callback.assert_called_once_with()

    def test_on_cancel_after_done_fires_immediately(self):
        ctx = Context.background()
        ctx.cancel()
        callback = MagicMock()

        ctx.on_cancel(callback)

        callback.assert_called_once_with()

    def test_unregister_callback(self):
        ctx = Context.background()
        callback = MagicMock()
        unregister = ctx.on_cancel(callback)

        unregister()
        ctx.cancel()

        callback.assert_not_called()

    def test_failing_callback_does_not_block_others(self):
        """A callback that raises is logged and the rest still run"""
        ctx = Context.background()
        ctx.on_cancel(MagicMock(side_effect=OSError("already closed")))
        second = MagicMock()
        ctx.on_cancel(second)

        with self.assertLogs('taskdriver.context', level='WARNING'):
            ctx.cancel()

        second.assert_called_once_with()

    @pytest.mark.timeout(5)
    def test_deadline(self):
        """A context with a timeout ends with DeadlineExceeded"""
        ctx = Context.with_timeout(0.05)
        callback = MagicMock()
        ctx.on_cancel(callback)

        self.assertTrue(ctx.wait(2))
        self.assertIsInstance(ctx.err(), DeadlineExceeded)
        callback.assert_called_once_with()

    def test_expired_deadline(self):
        """A deadline already in the past is done at construction"""
        ctx = Context.with_timeout(0)
        self.assertTrue(ctx.done())
        self.assertIsInstance(ctx.err(), DeadlineExceeded)

    def test_cancel_before_deadline(self):
        ctx = Context.with_timeout(60)
        ctx.cancel()
        self.assertIsInstance(ctx.err(), Cancelled)


if __name__ == '__main__':
    unittest.main()
