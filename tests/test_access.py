"""
Tests for tier resolution and feature access rules.
"""

import asyncio
import os
import sys
import unittest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from memospark.exceptions import InternalRouterError
from memospark.suggestions.access import (
    AccessChecker,
    SessionClaimTierResolver,
    StaticTierResolver,
    TierResolver,
    features_for_tier,
    get_tier_catalogue,
)
from memospark.types.ai import FeatureType
from memospark.types.usage import DEFAULT_DAILY_LIMITS, SubscriptionTier, parse_tier

PREMIUM_FEATURES = [
    FeatureType.ADVANCED_SUGGESTIONS,
    FeatureType.STUDY_PLANNING,
    FeatureType.VOICE_PROCESSING,
    FeatureType.STU_PERSONALITY,
    FeatureType.ML_PREDICTIONS,
    FeatureType.COLLABORATIVE_FILTERING,
]


class TestParseTier(unittest.TestCase):
    """Tests for tier normalization."""

    def test_known_tiers(self):
        self.assertEqual(parse_tier("free"), SubscriptionTier.FREE)
        self.assertEqual(parse_tier("premium"), SubscriptionTier.PREMIUM)
        self.assertEqual(parse_tier("premium_plus"), SubscriptionTier.PREMIUM_PLUS)

    def test_enterprise_maps_to_premium(self):
        """The legacy enterprise tier is treated as premium."""
        self.assertEqual(parse_tier("enterprise"), SubscriptionTier.PREMIUM)

    def test_missing_or_unknown_is_free(self):
        self.assertEqual(parse_tier(None), SubscriptionTier.FREE)
        self.assertEqual(parse_tier(""), SubscriptionTier.FREE)
        self.assertEqual(parse_tier("platinum"), SubscriptionTier.FREE)


class TestAccessChecker(unittest.TestCase):
    """Tests for the feature-by-tier allowlist."""

    def setUp(self):
        self.checker = AccessChecker()

    def test_free_tier_gets_basic_only(self):
        """Free callers may use basic suggestions and nothing else."""
        self.assertTrue(
            self.checker.check(SubscriptionTier.FREE, FeatureType.BASIC_SUGGESTIONS).allowed
        )
        for feature in PREMIUM_FEATURES + [FeatureType.PREMIUM_ANALYTICS]:
            decision = self.checker.check(SubscriptionTier.FREE, feature)
            self.assertFalse(decision.allowed, feature)
            self.assertTrue(decision.upgrade_required)
            self.assertTrue(decision.message)

    def test_premium_tier(self):
        """Premium unlocks everything except premium analytics."""
        for feature in PREMIUM_FEATURES:
            self.assertTrue(self.checker.check(SubscriptionTier.PREMIUM, feature).allowed)

        decision = self.checker.check(SubscriptionTier.PREMIUM, FeatureType.PREMIUM_ANALYTICS)
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.required_tier, SubscriptionTier.PREMIUM_PLUS)

    def test_premium_plus_gets_everything(self):
        for feature in FeatureType:
            self.assertTrue(self.checker.check(SubscriptionTier.PREMIUM_PLUS, feature).allowed)

    def test_allowed_decision_has_no_message(self):
        decision = self.checker.check(SubscriptionTier.PREMIUM, FeatureType.STUDY_PLANNING)
        self.assertIsNone(decision.message)


class TestTierCatalogue(unittest.TestCase):

    def test_catalogue_lists_every_tier(self):
        catalogue = get_tier_catalogue(DEFAULT_DAILY_LIMITS)

        self.assertEqual([t.tier for t in catalogue], list(SubscriptionTier))
        self.assertEqual(catalogue[0].daily_limit, 10)
        self.assertEqual(catalogue[0].features, ["basic_suggestions"])
        self.assertIn("premium_analytics", catalogue[2].features)

    def test_features_for_tier_are_cumulative(self):
        free = set(features_for_tier(SubscriptionTier.FREE))
        premium = set(features_for_tier(SubscriptionTier.PREMIUM))

        self.assertTrue(free < premium)


class TestTierResolvers(unittest.IsolatedAsyncioTestCase):
    """Tests for tier lookup collaborators."""

    async def test_static_resolver_defaults_to_free(self):
        resolver = StaticTierResolver({"user_p": "premium"})

        self.assertEqual(await resolver.resolve_tier("user_p"), SubscriptionTier.PREMIUM)
        self.assertEqual(await resolver.resolve_tier("user_x"), SubscriptionTier.FREE)

    async def test_static_resolver_applies_alias(self):
        resolver = StaticTierResolver({"user_e": "enterprise"})

        self.assertEqual(await resolver.resolve_tier("user_e"), SubscriptionTier.PREMIUM)

    async def test_session_claims_resolver(self):
        """Tier is read from top-level or public metadata claims."""
        resolver = SessionClaimTierResolver()

        tier = await resolver.resolve_tier(
            "user_a", {"public_metadata": {"subscriptionTier": "premium_plus"}}
        )
        self.assertEqual(tier, SubscriptionTier.PREMIUM_PLUS)
        self.assertEqual(await resolver.resolve_tier("user_a", {}), SubscriptionTier.FREE)

    async def test_lookup_failure_is_internal_error(self):
        """A failing lookup is never treated as the free tier."""

        class BrokenResolver(TierResolver):
            name = "broken"

            async def _lookup(self, caller_id, claims):
                raise ConnectionError("subscriptions table unavailable")

        with self.assertRaises(InternalRouterError) as ctx:
            await BrokenResolver(timeout=1).resolve_tier("user_a")

        self.assertEqual(ctx.exception.stage, "tier_lookup")

    async def test_lookup_timeout_is_internal_error(self):

        class SlowResolver(TierResolver):
            name = "slow"

            async def _lookup(self, caller_id, claims):
                await asyncio.sleep(1)
                return "premium"

        with self.assertRaises(InternalRouterError):
            await SlowResolver(timeout=0.01).resolve_tier("user_a")


if __name__ == "__main__":
    unittest.main()
