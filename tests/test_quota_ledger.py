"""
Tests for the daily quota ledger.

This module tests:
- Check against tier limits (including unlimited tiers)
- Atomic commits under concurrency
- Accounting day boundaries in the configured timezone
- Fail-closed behaviour when the store errors or times out
"""

import asyncio
import os
import sys
import unittest
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from memospark.exceptions import InternalRouterError
from memospark.types.usage import SubscriptionTier
from memospark.usage.quota_service import QuotaLedger
from memospark.usage.store import InMemoryUsageStore

FIXED_NOW = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


def make_ledger(store=None, **kwargs):
    kwargs.setdefault("accounting_zone", ZoneInfo("UTC"))
    kwargs.setdefault("clock", lambda: FIXED_NOW)
    return QuotaLedger(store=store or InMemoryUsageStore(), **kwargs)


class TestQuotaCheck(unittest.IsolatedAsyncioTestCase):
    """Tests for reading usage against tier limits."""

    async def test_check_permits_under_limit(self):
        """A free caller with 9 of 10 requests used is still permitted."""
        store = InMemoryUsageStore()
        store.seed("user_a", date(2026, 3, 2), 9)
        ledger = make_ledger(store)

        check = await ledger.check("user_a", SubscriptionTier.FREE)

        self.assertTrue(check.permitted)
        self.assertEqual(check.used, 9)
        self.assertEqual(check.limit, 10)
        self.assertEqual(check.remaining, 1)

    async def test_check_blocks_at_limit(self):
        """Usage equal to the limit is not permitted."""
        store = InMemoryUsageStore()
        store.seed("user_a", date(2026, 3, 2), 10)
        ledger = make_ledger(store)

        check = await ledger.check("user_a", SubscriptionTier.FREE)

        self.assertFalse(check.permitted)
        self.assertEqual(check.remaining, 0)

    async def test_check_does_not_mutate(self):
        """Checking twice leaves the count unchanged."""
        store = InMemoryUsageStore()
        ledger = make_ledger(store)

        await ledger.check("user_a", SubscriptionTier.FREE)
        await ledger.check("user_a", SubscriptionTier.FREE)

        self.assertEqual(await ledger.get_usage("user_a"), 0)
        self.assertIsNone(await store.get_record("user_a", date(2026, 3, 2)))

    async def test_zero_limit_is_unlimited(self):
        """A limit of 0 always permits and reports remaining as -1."""
        store = InMemoryUsageStore()
        store.seed("user_a", date(2026, 3, 2), 10_000)
        ledger = make_ledger(store, daily_limits={"premium_plus": 0})

        check = await ledger.check("user_a", SubscriptionTier.PREMIUM_PLUS)

        self.assertTrue(check.permitted)
        self.assertTrue(check.is_unlimited)
        self.assertEqual(check.remaining, -1)

    async def test_configured_limits_override_defaults(self):
        """Limits passed in replace the defaults for the named tier only."""
        ledger = make_ledger(daily_limits={"premium": 3})

        self.assertEqual(ledger.limit_for(SubscriptionTier.PREMIUM), 3)
        self.assertEqual(ledger.limit_for(SubscriptionTier.FREE), 10)
        self.assertEqual(ledger.limit_for(SubscriptionTier.PREMIUM_PLUS), 500)


class TestQuotaCommit(unittest.IsolatedAsyncioTestCase):
    """Tests for recording successful requests."""

    async def test_first_commit_creates_record(self):
        """The first commit of the day creates the record with count 1."""
        store = InMemoryUsageStore()
        ledger = make_ledger(store)

        count = await ledger.commit("user_a")

        self.assertEqual(count, 1)
        record = await store.get_record("user_a", date(2026, 3, 2))
        self.assertEqual(record.request_count, 1)
        self.assertIsNotNone(record.last_request_at)

    async def test_commits_are_per_caller(self):
        """Commits for one caller never change another caller's count."""
        ledger = make_ledger()

        await ledger.commit("user_a")
        await ledger.commit("user_a")
        await ledger.commit("user_b")

        self.assertEqual(await ledger.get_usage("user_a"), 2)
        self.assertEqual(await ledger.get_usage("user_b"), 1)

    async def test_concurrent_commits_are_not_lost(self):
        """N concurrent commits increase the count by exactly N."""
        ledger = make_ledger()

        results = await asyncio.gather(*(ledger.commit("user_a") for _ in range(50)))

        self.assertEqual(await ledger.get_usage("user_a"), 50)
        self.assertEqual(sorted(results), list(range(1, 51)))


class TestAccountingDay(unittest.IsolatedAsyncioTestCase):
    """Tests for the accounting day boundary."""

    def test_accounting_date_uses_configured_zone(self):
        """02:00 UTC is still the previous day in New York."""
        ledger = make_ledger(accounting_zone=ZoneInfo("America/New_York"))

        now = datetime(2026, 3, 1, 2, 0, tzinfo=timezone.utc)

        self.assertEqual(ledger.accounting_date(now), date(2026, 2, 28))

    def test_seconds_until_reset(self):
        """One hour before midnight UTC leaves 3600 seconds."""
        ledger = make_ledger()

        now = datetime(2026, 3, 2, 23, 0, tzinfo=timezone.utc)

        self.assertEqual(ledger.seconds_until_reset(now), 3600)

    def test_seconds_until_reset_across_dst_change(self):
        """The New York day of the spring-forward change is 23 hours long."""
        ledger = make_ledger(accounting_zone=ZoneInfo("America/New_York"))

        # Midnight EST on 2026-03-08
        now = datetime(2026, 3, 8, 5, 0, tzinfo=timezone.utc)

        self.assertEqual(ledger.seconds_until_reset(now), 23 * 3600)

    async def test_usage_resets_on_new_day(self):
        """Counts from yesterday are not visible today."""
        store = InMemoryUsageStore()
        store.seed("user_a", date(2026, 3, 1), 10)
        ledger = make_ledger(store)

        check = await ledger.check("user_a", SubscriptionTier.FREE)

        self.assertTrue(check.permitted)
        self.assertEqual(check.used, 0)


class TestLedgerFailures(unittest.IsolatedAsyncioTestCase):
    """Store failures fail the request closed."""

    async def test_store_error_becomes_internal_error(self):
        """A store exception surfaces as InternalRouterError."""
        store = InMemoryUsageStore()
        store.get_usage = AsyncMock(side_effect=ConnectionError("connection refused"))
        ledger = make_ledger(store)

        with self.assertRaises(InternalRouterError) as ctx:
            await ledger.check("user_a", SubscriptionTier.FREE)

        self.assertEqual(ctx.exception.stage, "quota_check")

    async def test_commit_timeout_becomes_internal_error(self):
        """A commit slower than the ledger timeout is an internal error."""
        store = InMemoryUsageStore()

        async def slow_increment(caller_id, usage_date):
            await asyncio.sleep(1)
            return 1

        store.increment_usage = slow_increment
        ledger = make_ledger(store, timeout=0.01)

        with self.assertRaises(InternalRouterError) as ctx:
            await ledger.commit("user_a")

        self.assertEqual(ctx.exception.stage, "usage_commit")


if __name__ == "__main__":
    unittest.main()
