"""
Subscription tier resolution and feature access rules.

Tier lookup is an external call (Postgres, session claims or a static map
for development). Every value it returns goes through ``parse_tier`` so
the "enterprise" alias and the free default are applied in one place.
A failing or slow lookup is an internal error; it is never treated as
"free".

Access itself is a pure check against FEATURE_REQUIREMENTS.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from memospark.config import get_settings
from memospark.db import fetchval as db_fetchval, is_database_configured
from memospark.exceptions import InternalRouterError
from memospark.types.ai import FeatureType
from memospark.types.usage import (
    TIER_NAMES,
    SubscriptionTier,
    TierConfig,
    parse_tier,
    tier_includes,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeatureRequirement:
    name: str
    required_tier: SubscriptionTier
    description: str
    upgrade_message: str


FEATURE_REQUIREMENTS: Dict[FeatureType, FeatureRequirement] = {
    FeatureType.BASIC_SUGGESTIONS: FeatureRequirement(
        name="Basic AI Suggestions",
        required_tier=SubscriptionTier.FREE,
        description="Simple task suggestions and time management tips",
        upgrade_message="Get smarter suggestions with Premium!",
    ),
    FeatureType.ADVANCED_SUGGESTIONS: FeatureRequirement(
        name="Advanced AI Suggestions",
        required_tier=SubscriptionTier.PREMIUM,
        description="Pattern-based suggestions built from your task history",
        upgrade_message="Unlock advanced AI suggestions with Premium!",
    ),
    FeatureType.STUDY_PLANNING: FeatureRequirement(
        name="AI Study Planning",
        required_tier=SubscriptionTier.PREMIUM,
        description="Personalized study schedules and optimization",
        upgrade_message="Get AI-powered study planning with Premium!",
    ),
    FeatureType.VOICE_PROCESSING: FeatureRequirement(
        name="Voice Notes Processing",
        required_tier=SubscriptionTier.PREMIUM,
        description="Convert voice notes to tasks",
        upgrade_message="Add voice notes processing with Premium!",
    ),
    FeatureType.STU_PERSONALITY: FeatureRequirement(
        name="Stu AI Personality",
        required_tier=SubscriptionTier.PREMIUM,
        description="Interactive study mascot with personalized responses",
        upgrade_message="Meet Stu, your AI study buddy with Premium!",
    ),
    FeatureType.ML_PREDICTIONS: FeatureRequirement(
        name="ML Performance Predictions",
        required_tier=SubscriptionTier.PREMIUM,
        description="Predictions about upcoming workload and performance",
        upgrade_message="Get ML predictions and insights with Premium!",
    ),
    FeatureType.COLLABORATIVE_FILTERING: FeatureRequirement(
        name="Community Insights",
        required_tier=SubscriptionTier.PREMIUM,
        description="Learn from similar users anonymously",
        upgrade_message="Access community insights with Premium!",
    ),
    FeatureType.PREMIUM_ANALYTICS: FeatureRequirement(
        name="Advanced Analytics",
        required_tier=SubscriptionTier.PREMIUM_PLUS,
        description="Detailed performance analytics and reporting",
        upgrade_message="Get advanced analytics and insights with Premium Plus!",
    ),
}


def features_for_tier(tier: SubscriptionTier) -> List[FeatureType]:
    return [
        feature
        for feature, requirement in FEATURE_REQUIREMENTS.items()
        if tier_includes(tier, requirement.required_tier)
    ]


def get_tier_catalogue(daily_limits: Mapping[SubscriptionTier, int]) -> List[TierConfig]:
    """All tiers with their daily cap and available features."""
    return [
        TierConfig(
            tier=tier,
            name=TIER_NAMES[tier],
            daily_limit=daily_limits[tier],
            features=[f.value for f in features_for_tier(tier)],
        )
        for tier in SubscriptionTier
    ]


# =============================================================================
# Access Check
# =============================================================================


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    tier: SubscriptionTier
    feature: FeatureType
    required_tier: SubscriptionTier
    message: Optional[str] = None

    @property
    def upgrade_required(self) -> bool:
        return not self.allowed


class AccessChecker:
    """Static feature-by-tier allowlist. Pure; no I/O."""

    def __init__(
        self,
        requirements: Optional[Mapping[FeatureType, FeatureRequirement]] = None,
    ):
        self._requirements = dict(requirements or FEATURE_REQUIREMENTS)

    def requirement_for(self, feature: FeatureType) -> FeatureRequirement:
        return self._requirements.get(
            feature, self._requirements[FeatureType.BASIC_SUGGESTIONS]
        )

    def check(self, tier: SubscriptionTier, feature: FeatureType) -> AccessDecision:
        requirement = self.requirement_for(feature)
        allowed = tier_includes(tier, requirement.required_tier)
        return AccessDecision(
            allowed=allowed,
            tier=tier,
            feature=feature,
            required_tier=requirement.required_tier,
            message=None if allowed else requirement.upgrade_message,
        )


# =============================================================================
# Tier Resolvers
# =============================================================================


class TierResolver(ABC):
    """Looks up a caller's subscription tier."""

    name: str = "base"

    def __init__(self, timeout: Optional[float] = None):
        self._timeout = timeout or get_settings().timeouts.tier_lookup_timeout_seconds

    @abstractmethod
    async def _lookup(self, caller_id: str, claims: Mapping[str, Any]) -> Optional[str]:
        """Raw tier value, or None for a caller with no subscription."""

    async def resolve_tier(
        self,
        caller_id: str,
        claims: Optional[Mapping[str, Any]] = None,
    ) -> SubscriptionTier:
        """
        Resolve and normalize the caller's tier.

        Raises:
            InternalRouterError: The lookup failed or timed out.
        """
        try:
            raw = await asyncio.wait_for(
                self._lookup(caller_id, claims or {}), timeout=self._timeout
            )
        except asyncio.TimeoutError as e:
            raise InternalRouterError(
                stage="tier_lookup",
                internal_message=f"{self.name} tier lookup timed out after {self._timeout}s",
            ) from e
        except Exception as e:
            raise InternalRouterError(
                stage="tier_lookup",
                internal_message=f"{self.name} tier lookup failed: {e}",
            ) from e

        tier = parse_tier(raw)
        if raw and str(raw).strip().lower() != tier.value:
            logger.debug(f"Tier {raw!r} for {caller_id[:8]}... mapped to {tier.value}")
        return tier


class DatabaseTierResolver(TierResolver):
    """Active row in user_subscriptions; no row means free."""

    name = "database"

    async def _lookup(self, caller_id: str, claims: Mapping[str, Any]) -> Optional[str]:
        return await db_fetchval(
            """
            SELECT tier_id
            FROM user_subscriptions
            WHERE clerk_user_id = $1 AND status = 'active'
            LIMIT 1
            """,
            caller_id,
        )


class SessionClaimTierResolver(TierResolver):
    """Tier carried in the session token's public metadata."""

    name = "session_claims"

    CLAIM_KEYS = ("subscriptionTier", "subscription_tier", "tier")

    async def _lookup(self, caller_id: str, claims: Mapping[str, Any]) -> Optional[str]:
        sources = [claims, claims.get("metadata") or {}, claims.get("public_metadata") or {}]
        for source in sources:
            for key in self.CLAIM_KEYS:
                if source.get(key):
                    return source[key]
        return None


class StaticTierResolver(TierResolver):
    """In-memory map, for development and tests."""

    name = "static"

    def __init__(
        self,
        tiers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(timeout=timeout)
        self.tiers: Dict[str, str] = dict(tiers or {})

    async def _lookup(self, caller_id: str, claims: Mapping[str, Any]) -> Optional[str]:
        return self.tiers.get(caller_id)


def create_tier_resolver() -> TierResolver:
    """Pick a resolver from AuthSettings.tier_source."""
    source = get_settings().auth.tier_source
    if source == "session_claims":
        return SessionClaimTierResolver()
    if source == "static":
        return StaticTierResolver()
    if not is_database_configured():
        logger.warning("DATABASE_URL not configured, using static tier resolver (all callers free)")
        return StaticTierResolver()
    return DatabaseTierResolver()
