"""
Tests for caller identity resolution and security event publishing.
"""

import asyncio
import os
import sys
import unittest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from memospark.exceptions import InternalRouterError, UnauthenticatedError
from memospark.suggestions.audit import (
    AuditPublisher,
    AuditSink,
    SecurityEvent,
    sanitize_details,
)
from memospark.suggestions.identity import CallerContext, IdentityResolver


class RecordingSink(AuditSink):
    def __init__(self):
        self.events = []

    async def write(self, event):
        self.events.append(event)


class TestIdentityResolver(unittest.IsolatedAsyncioTestCase):

    async def test_returns_user_id(self):
        resolver = IdentityResolver(audit=AuditPublisher(sinks=[]))

        self.assertEqual(await resolver.resolve_caller(CallerContext(user_id="user_a")), "user_a")

    async def test_missing_identity_publishes_event(self):
        sink = RecordingSink()
        audit = AuditPublisher(sinks=[sink])
        resolver = IdentityResolver(audit=audit)

        with self.assertRaises(UnauthenticatedError):
            await resolver.resolve_caller(CallerContext(request_id="req-7"))
        await audit.drain()

        self.assertEqual(len(sink.events), 1)
        self.assertEqual(sink.events[0].user_id, "anonymous")
        self.assertEqual(sink.events[0].details["action"], "generateAISuggestions")
        self.assertEqual(sink.events[0].details["request_id"], "req-7")

    async def test_provider_timeout_is_internal_error(self):
        async def slow_provider(context):
            await asyncio.sleep(1)
            return "user_a"

        resolver = IdentityResolver(
            provider=slow_provider, audit=AuditPublisher(sinks=[]), timeout=0.01
        )

        with self.assertRaises(InternalRouterError) as ctx:
            await resolver.resolve_caller(CallerContext(user_id="user_a"))

        self.assertEqual(ctx.exception.stage, "identity")


class TestAuditPublisher(unittest.IsolatedAsyncioTestCase):

    async def test_publish_is_fire_and_forget(self):
        """publish returns before delivery; drain waits for it."""
        sink = RecordingSink()
        audit = AuditPublisher(sinks=[sink])

        task = audit.security_event("authentication", "medium", details={"token": "abc"})

        self.assertIsNotNone(task)
        await audit.drain()
        self.assertEqual(sink.events[0].details["token"], "[REDACTED]")
        self.assertEqual(audit.pending, 0)

    async def test_failing_sink_does_not_block_others(self):

        class FailingSink(AuditSink):
            async def write(self, event):
                raise ConnectionError("down")

        sink = RecordingSink()
        audit = AuditPublisher(sinks=[FailingSink(), sink])

        audit.security_event("authentication", "low")
        await audit.drain()

        self.assertEqual(len(sink.events), 1)


class TestPublishWithoutLoop(unittest.TestCase):

    def test_publish_outside_event_loop_returns_none(self):
        audit = AuditPublisher(sinks=[RecordingSink()])

        self.assertIsNone(audit.publish(SecurityEvent(type="authentication", severity="low")))


class TestSanitizeDetails(unittest.TestCase):

    def test_nested_and_long_values(self):
        details = sanitize_details({
            "headers": {"authorization": "Bearer x"},
            "note": "a" * 3000,
            "count": 3,
        })

        self.assertEqual(details["headers"]["authorization"], "[REDACTED]")
        self.assertTrue(details["note"].endswith("...[truncated]"))
        self.assertEqual(details["count"], 3)


if __name__ == "__main__":
    unittest.main()
