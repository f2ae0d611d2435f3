"""
Daily AI request quota ledger.

Admission is check-then-commit:
- check: read today's counter and compare it with the tier's daily cap
- commit: after a successful dispatch, atomically add one

The two steps are not locked together. Two concurrent requests can both
pass the check and both commit, so a caller may overshoot the cap by a
small margin under concurrent load. Commits themselves never lose updates.

Uses Postgres when DATABASE_URL is configured, otherwise an in-memory store.
"""

import asyncio
import logging
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Callable, Mapping, Optional

from memospark.config import get_settings
from memospark.db import is_database_configured
from memospark.exceptions import InternalRouterError
from memospark.types.usage import (
    QuotaCheck,
    SubscriptionTier,
    UNLIMITED,
    resolve_daily_limits,
)
from memospark.usage.store import InMemoryUsageStore, PostgresUsageStore, UsageStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuotaLedger:
    """
    Reads and records per-caller daily usage against tier limits.

    Every store call is bounded by the ledger timeout; a timeout or store
    error surfaces as InternalRouterError so the request fails closed.
    """

    def __init__(
        self,
        store: Optional[UsageStore] = None,
        daily_limits: Optional[Mapping[str, int]] = None,
        accounting_zone: Optional[tzinfo] = None,
        timeout: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        settings = get_settings()

        if store is None:
            if is_database_configured():
                store = PostgresUsageStore()
                logger.info("Quota ledger initialized with Postgres")
            else:
                store = InMemoryUsageStore()
                logger.info("DATABASE_URL not configured, using in-memory usage store")

        self.store = store
        self._limits = resolve_daily_limits(
            daily_limits if daily_limits is not None else settings.quota.daily_limits
        )
        self._zone = accounting_zone or settings.quota.accounting_zone
        self._timeout = timeout or settings.timeouts.ledger_timeout_seconds
        self._clock = clock or _utcnow

    # -------------------------------------------------------------------------
    # Accounting day
    # -------------------------------------------------------------------------

    def limit_for(self, tier: SubscriptionTier) -> int:
        return self._limits[tier]

    def accounting_date(self, now: Optional[datetime] = None) -> date:
        """Calendar date of ``now`` in the accounting timezone."""
        now = now or self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(self._zone).date()

    def seconds_until_reset(self, now: Optional[datetime] = None) -> int:
        """Seconds until the next accounting day starts (at least 1)."""
        now = now or self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        local = now.astimezone(self._zone)
        next_day = datetime.combine(
            local.date() + timedelta(days=1),
            datetime.min.time(),
            tzinfo=self._zone,
        )
        delta = next_day.astimezone(timezone.utc) - now.astimezone(timezone.utc)
        return max(1, int(delta.total_seconds()))

    # -------------------------------------------------------------------------
    # Store access
    # -------------------------------------------------------------------------

    async def _call_store(self, stage: str, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise InternalRouterError(
                stage=stage,
                internal_message=f"{self.store.name} store timed out after {self._timeout}s",
            ) from e
        except InternalRouterError:
            raise
        except Exception as e:
            raise InternalRouterError(
                stage=stage,
                internal_message=f"{self.store.name} store error: {e}",
            ) from e

    async def get_usage(self, caller_id: str) -> int:
        """Today's request count for the caller (0 when none recorded)."""
        return await self._call_store(
            "quota_check",
            self.store.get_usage(caller_id, self.accounting_date()),
        )

    async def check(self, caller_id: str, tier: SubscriptionTier) -> QuotaCheck:
        """
        Compare today's usage with the tier's cap. Never mutates.

        Args:
            caller_id: The caller identifier.
            tier: The caller's resolved tier.

        Returns:
            QuotaCheck with permitted=False once used >= limit (limit > 0).
        """
        used = await self.get_usage(caller_id)
        limit = self.limit_for(tier)
        permitted = limit == UNLIMITED or used < limit

        if not permitted:
            logger.info(
                f"Daily quota reached for {caller_id[:8]}...: {used}/{limit} ({tier.value})"
            )

        return QuotaCheck(permitted=permitted, tier=tier, used=used, limit=limit)

    async def commit(self, caller_id: str) -> int:
        """
        Record one successful dispatch and return the new count.

        Creates today's record with count=1 when it does not exist yet.
        """
        count = await self._call_store(
            "usage_commit",
            self.store.increment_usage(caller_id, self.accounting_date()),
        )
        logger.debug(f"Usage committed for {caller_id[:8]}...: {count} today")
        return count


_quota_ledger: Optional[QuotaLedger] = None


def get_quota_ledger() -> QuotaLedger:
    """Get or create the process-wide ledger."""
    global _quota_ledger
    if _quota_ledger is None:
        _quota_ledger = QuotaLedger()
    return _quota_ledger


def reset_quota_ledger() -> None:
    global _quota_ledger
    _quota_ledger = None
