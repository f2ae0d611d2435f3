"""
Pydantic models for subscription tiers and daily AI usage.

This module defines:
- Subscription tiers and the alias table used to parse stored tier values
- Per-tier configuration exposed through the tier catalogue
- Daily usage records and quota check results
- The usage snapshot returned in every response envelope
"""

from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SubscriptionTier(str, Enum):
    """Subscription tiers, lowest first."""

    FREE = "free"
    PREMIUM = "premium"
    PREMIUM_PLUS = "premium_plus"


# Every tier string seen in storage or session claims. "enterprise" is a
# legacy value that collapses to premium; anything not listed is free.
TIER_ALIASES: Dict[str, SubscriptionTier] = {
    "free": SubscriptionTier.FREE,
    "premium": SubscriptionTier.PREMIUM,
    "premium_plus": SubscriptionTier.PREMIUM_PLUS,
    "enterprise": SubscriptionTier.PREMIUM,
}

TIER_RANK: Dict[SubscriptionTier, int] = {
    SubscriptionTier.FREE: 0,
    SubscriptionTier.PREMIUM: 1,
    SubscriptionTier.PREMIUM_PLUS: 2,
}

DEFAULT_DAILY_LIMITS: Dict[SubscriptionTier, int] = {
    SubscriptionTier.FREE: 10,
    SubscriptionTier.PREMIUM: 100,
    SubscriptionTier.PREMIUM_PLUS: 500,
}

# 0 is reserved for "no daily cap"
UNLIMITED = 0


def parse_tier(value: Optional[str]) -> SubscriptionTier:
    """Map a stored or claimed tier value through TIER_ALIASES."""
    if isinstance(value, SubscriptionTier):
        return value
    if not value:
        return SubscriptionTier.FREE
    return TIER_ALIASES.get(str(value).strip().lower(), SubscriptionTier.FREE)


def tier_includes(tier: SubscriptionTier, required: SubscriptionTier) -> bool:
    return TIER_RANK[tier] >= TIER_RANK[required]


def resolve_daily_limits(
    overrides: Optional[Mapping[str, int]] = None,
) -> Dict[SubscriptionTier, int]:
    """Merge configured limits (keyed by tier value) over the defaults."""
    limits = dict(DEFAULT_DAILY_LIMITS)
    for key, value in (overrides or {}).items():
        limits[SubscriptionTier(key)] = int(value)
    return limits


class TierConfig(BaseModel):
    """A tier as shown in the catalogue."""

    tier: SubscriptionTier
    name: str
    daily_limit: int = Field(
        ...,
        description="Maximum AI requests per accounting day (0 for unlimited)",
    )
    features: List[str] = Field(
        default_factory=list,
        description="Feature tags available at this tier",
    )

    @property
    def is_unlimited(self) -> bool:
        return self.daily_limit == UNLIMITED


TIER_NAMES: Dict[SubscriptionTier, str] = {
    SubscriptionTier.FREE: "Free",
    SubscriptionTier.PREMIUM: "Premium",
    SubscriptionTier.PREMIUM_PLUS: "Premium Plus",
}


class DailyUsageRecord(BaseModel):
    """
    One caller's usage for one accounting day.

    Created lazily by the first commit of the day and only ever incremented.
    """

    caller_id: str
    usage_date: date
    request_count: int = Field(default=0, ge=0)
    last_request_at: Optional[datetime] = None


class QuotaCheck(BaseModel):
    """Result of reading the ledger against a tier's daily cap."""

    permitted: bool
    tier: SubscriptionTier
    used: int = Field(..., ge=0)
    limit: int = Field(..., ge=0)

    @property
    def is_unlimited(self) -> bool:
        return self.limit == UNLIMITED

    @property
    def remaining(self) -> int:
        """-1 when the tier is unlimited, otherwise never negative."""
        if self.is_unlimited:
            return -1
        return max(0, self.limit - self.used)


class UsageSnapshot(BaseModel):
    """Usage block of the response envelope."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    requests_used: int = 0
    requests_remaining: int = 0
    feature_available: bool = False

    @classmethod
    def from_count(
        cls,
        used: int,
        limit: int,
        feature_available: bool,
    ) -> "UsageSnapshot":
        if limit == UNLIMITED:
            remaining = -1
        else:
            remaining = max(0, limit - used)
        return cls(
            requests_used=used,
            requests_remaining=remaining,
            feature_available=feature_available,
        )
