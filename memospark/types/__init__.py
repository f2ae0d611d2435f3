"""Shared data models for the AI suggestion router."""

from .ai import (
    ExtendedTask,
    FeatureRequest,
    FeatureType,
    ResponseEnvelope,
    SuggestionContext,
    SuggestionMetadata,
    SuggestionRecord,
    UsageStatus,
    UserPreferences,
)
from .usage import (
    DEFAULT_DAILY_LIMITS,
    TIER_ALIASES,
    DailyUsageRecord,
    QuotaCheck,
    SubscriptionTier,
    TierConfig,
    UsageSnapshot,
    parse_tier,
)

__all__ = [
    "ExtendedTask",
    "FeatureRequest",
    "FeatureType",
    "ResponseEnvelope",
    "SuggestionContext",
    "SuggestionMetadata",
    "SuggestionRecord",
    "UsageStatus",
    "UserPreferences",
    "DEFAULT_DAILY_LIMITS",
    "TIER_ALIASES",
    "DailyUsageRecord",
    "QuotaCheck",
    "SubscriptionTier",
    "TierConfig",
    "UsageSnapshot",
    "parse_tier",
]
