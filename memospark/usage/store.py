"""
Storage backends for daily AI usage counters.

Both backends expose the same two operations:
- get_usage: read a caller's count for a day (0 when no row exists)
- increment_usage: atomically add one and return the new count

PostgresUsageStore is used when DATABASE_URL is configured; the in-memory
store backs development and tests.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from typing import Dict, Optional, Tuple

from memospark.db import fetchrow as db_fetchrow, fetchval as db_fetchval
from memospark.types.usage import DailyUsageRecord

logger = logging.getLogger(__name__)


class UsageStore(ABC):
    """Key/row store for (caller_id, usage_date) counters."""

    name: str = "base"

    @abstractmethod
    async def get_usage(self, caller_id: str, usage_date: date) -> int:
        """Return the request count, treating a missing row as 0."""

    @abstractmethod
    async def increment_usage(self, caller_id: str, usage_date: date) -> int:
        """Atomically add one request and return the new count."""

    async def get_record(
        self, caller_id: str, usage_date: date
    ) -> Optional[DailyUsageRecord]:
        count = await self.get_usage(caller_id, usage_date)
        if not count:
            return None
        return DailyUsageRecord(
            caller_id=caller_id,
            usage_date=usage_date,
            request_count=count,
        )


class PostgresUsageStore(UsageStore):
    """ai_usage_tracking table; one row per caller per day."""

    name = "postgres"

    async def get_usage(self, caller_id: str, usage_date: date) -> int:
        count = await db_fetchval(
            """
            SELECT ai_requests_count
            FROM ai_usage_tracking
            WHERE clerk_user_id = $1 AND usage_date = $2
            """,
            caller_id,
            usage_date,
        )
        return int(count or 0)

    async def increment_usage(self, caller_id: str, usage_date: date) -> int:
        # Single-statement upsert; concurrent commits serialize on the row.
        count = await db_fetchval(
            """
            INSERT INTO ai_usage_tracking (
                clerk_user_id, usage_date, ai_requests_count, last_request_at
            )
            VALUES ($1, $2, 1, NOW())
            ON CONFLICT (clerk_user_id, usage_date)
            DO UPDATE SET
                ai_requests_count = ai_usage_tracking.ai_requests_count + 1,
                last_request_at = NOW(),
                updated_at = NOW()
            RETURNING ai_requests_count
            """,
            caller_id,
            usage_date,
        )
        if count is None:
            raise RuntimeError("Usage upsert returned no row")
        return int(count)

    async def get_record(
        self, caller_id: str, usage_date: date
    ) -> Optional[DailyUsageRecord]:
        row = await db_fetchrow(
            """
            SELECT ai_requests_count, last_request_at
            FROM ai_usage_tracking
            WHERE clerk_user_id = $1 AND usage_date = $2
            """,
            caller_id,
            usage_date,
        )
        if not row:
            return None
        return DailyUsageRecord(
            caller_id=caller_id,
            usage_date=usage_date,
            request_count=int(row["ai_requests_count"] or 0),
            last_request_at=row["last_request_at"],
        )


class InMemoryUsageStore(UsageStore):
    """Process-local counters guarded by an asyncio.Lock."""

    name = "memory"

    def __init__(self):
        self._records: Dict[Tuple[str, date], DailyUsageRecord] = {}
        self._lock = asyncio.Lock()

    async def get_usage(self, caller_id: str, usage_date: date) -> int:
        record = self._records.get((caller_id, usage_date))
        return record.request_count if record else 0

    async def increment_usage(self, caller_id: str, usage_date: date) -> int:
        async with self._lock:
            key = (caller_id, usage_date)
            record = self._records.get(key)
            if record is None:
                record = DailyUsageRecord(caller_id=caller_id, usage_date=usage_date)
                self._records[key] = record
            record.request_count += 1
            record.last_request_at = datetime.now(timezone.utc)
            return record.request_count

    async def get_record(
        self, caller_id: str, usage_date: date
    ) -> Optional[DailyUsageRecord]:
        record = self._records.get((caller_id, usage_date))
        return record.model_copy() if record else None

    def seed(self, caller_id: str, usage_date: date, count: int) -> None:
        """Set a counter directly (fixtures and local tooling)."""
        self._records[(caller_id, usage_date)] = DailyUsageRecord(
            caller_id=caller_id,
            usage_date=usage_date,
            request_count=count,
        )

    def clear(self) -> None:
        self._records.clear()
