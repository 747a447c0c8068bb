"""
Unit tests for the transient error channel.
"""
import unittest
import asyncio
from unittest.mock import Mock

from trivia.error_channel import TransientErrorChannel
from tests.test_fixtures import AsyncTestHelpers


class TestTransientErrorChannel(unittest.IsolatedAsyncioTestCase):
    """Test cases for single-slot auto-clearing errors."""

    def setUp(self):
        self.on_change = Mock()
        self.channel = TransientErrorChannel(timeout=0.03, on_change=self.on_change)

    async def asyncTearDown(self):
        self.channel.close()

    async def test_message_clears_after_timeout(self):
        self.channel.set("Something failed")
        self.assertEqual(self.channel.message, "Something failed")

        self.assertTrue(await AsyncTestHelpers.wait_for(lambda: self.channel.message is None))
        self.assertEqual(self.on_change.call_args_list[-1][0][0], None)

    async def test_newer_error_replaces_and_restarts_window(self):
        self.channel.timeout = 0.1
        self.channel.set("first")
        await asyncio.sleep(0.06)
        self.channel.set("second")
        await asyncio.sleep(0.06)

        # The first window would have ended by now
        self.assertEqual(self.channel.message, "second")

        self.assertTrue(await AsyncTestHelpers.wait_for(lambda: self.channel.message is None))

    async def test_clear_drops_message_immediately(self):
        self.channel.set("oops")

        self.channel.clear()

        self.assertIsNone(self.channel.message)
        self.on_change.assert_called_with(None)

    async def test_clear_without_message_does_not_notify(self):
        self.channel.clear()
        self.on_change.assert_not_called()

    async def test_close_keeps_message_visible(self):
        self.channel.set("stuck")
        self.channel.close()
        await asyncio.sleep(0.05)

        self.assertEqual(self.channel.message, "stuck")
