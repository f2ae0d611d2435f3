"""
Daily AI usage tracking and quota enforcement.
"""

from .quota_service import QuotaLedger, get_quota_ledger, reset_quota_ledger
from .store import InMemoryUsageStore, PostgresUsageStore, UsageStore

__all__ = [
    "QuotaLedger",
    "get_quota_ledger",
    "reset_quota_ledger",
    "InMemoryUsageStore",
    "PostgresUsageStore",
    "UsageStore",
]
