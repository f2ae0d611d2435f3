"""
AI suggestion router.

Runs one request through the pipeline:

    identity -> validate -> access -> quota check -> dispatch
             -> usage commit -> assemble

Each stage raises a SuggestionRouterError subclass on failure; ``route``
catches at its boundary and always returns a ResponseEnvelope. Quota is
consumed only after a successful dispatch.
"""

import logging
import time
from typing import Any, Dict, List, Mapping, Optional

from memospark.exceptions import (
    AccessDeniedError,
    InternalRouterError,
    QuotaExceededError,
    SuggestionRouterError,
    is_client_error,
)
from memospark.suggestions.access import (
    AccessChecker,
    TierResolver,
    create_tier_resolver,
    get_tier_catalogue,
)
from memospark.suggestions.assembler import ResponseAssembler
from memospark.suggestions.audit import AuditPublisher, get_audit_publisher
from memospark.suggestions.dispatcher import FeatureDispatcher
from memospark.suggestions.identity import CallerContext, IdentityResolver
from memospark.suggestions.validator import PayloadValidator
from memospark.types.ai import FeatureType, ResponseEnvelope, UsageStatus
from memospark.types.usage import SubscriptionTier, TierConfig, UsageSnapshot
from memospark.usage.quota_service import QuotaLedger, get_quota_ledger
from memospark.utils.logging import set_request_context

logger = logging.getLogger(__name__)


class SuggestionRouter:
    """Tier-aware router for AI suggestion requests."""

    def __init__(
        self,
        identity: Optional[IdentityResolver] = None,
        validator: Optional[PayloadValidator] = None,
        tier_resolver: Optional[TierResolver] = None,
        access: Optional[AccessChecker] = None,
        ledger: Optional[QuotaLedger] = None,
        dispatcher: Optional[FeatureDispatcher] = None,
        assembler: Optional[ResponseAssembler] = None,
        audit: Optional[AuditPublisher] = None,
    ):
        self.audit = audit or get_audit_publisher()
        self.identity = identity or IdentityResolver(audit=self.audit)
        self.validator = validator or PayloadValidator()
        self.tier_resolver = tier_resolver or create_tier_resolver()
        self.access = access or AccessChecker()
        self.ledger = ledger or get_quota_ledger()
        self.dispatcher = dispatcher or FeatureDispatcher()
        self.assembler = assembler or ResponseAssembler()
        self._started_at = time.monotonic()

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    async def route(
        self,
        raw_payload: Any,
        caller_context: CallerContext,
        field_errors: Optional[Mapping[str, List[str]]] = None,
    ) -> ResponseEnvelope:
        """
        Route one AI request.

        Args:
            raw_payload: Decoded request body or parsed form fields.
            caller_context: What the transport knows about the caller.
            field_errors: Errors found while decoding the transport payload.

        Returns:
            ResponseEnvelope; never raises for request-level failures.
        """
        tier: Optional[SubscriptionTier] = None
        usage: Optional[UsageSnapshot] = None

        try:
            caller_id = await self.identity.resolve_caller(caller_context)
            set_request_context(user_id=caller_id)

            request = self.validator.validate(raw_payload, field_errors)
            tier = await self.tier_resolver.resolve_tier(
                caller_id, caller_context.session_claims
            )

            decision = self.access.check(tier, request.feature)
            if not decision.allowed:
                usage = await self._usage_for_denial(caller_id, tier)
                raise AccessDeniedError(
                    feature=request.feature.value,
                    tier=tier.value,
                    required_tier=decision.required_tier.value,
                    message=decision.message,
                )

            check = await self.ledger.check(caller_id, tier)
            usage = UsageSnapshot.from_count(check.used, check.limit, feature_available=True)
            if not check.permitted:
                raise QuotaExceededError(
                    tier=tier.value,
                    used=check.used,
                    limit=check.limit,
                    retry_after=self.ledger.seconds_until_reset(),
                )

            records = await self.dispatcher.dispatch(caller_id, tier, request)
            used = await self.ledger.commit(caller_id)

            logger.info(
                f"AI request served: {request.feature.value} ({tier.value}), "
                f"{len(records)} suggestions, {used} used today",
                extra={
                    "feature": request.feature.value,
                    "requested_feature": request.requested_feature,
                    "tier": tier.value,
                    "suggestions": len(records),
                },
            )
            return self.assembler.success(records, tier, used, check.limit)

        except SuggestionRouterError as e:
            self._log_failure(e)
            return self.assembler.failure(e, tier=tier, usage=usage)
        except Exception as e:
            logger.error(f"Unexpected error routing AI request: {e}", exc_info=True)
            error = InternalRouterError(stage="router", internal_message=str(e))
            return self.assembler.failure(error, tier=tier, usage=usage)

    async def route_feature(
        self,
        feature: str,
        raw_payload: Any,
        caller_context: CallerContext,
    ) -> ResponseEnvelope:
        """Route with ``feature`` taking precedence over the payload's tag."""
        if isinstance(raw_payload, Mapping):
            raw_payload = {**raw_payload, "feature": feature}
        return await self.route(raw_payload, caller_context)

    async def _usage_for_denial(
        self, caller_id: str, tier: SubscriptionTier
    ) -> Optional[UsageSnapshot]:
        """Best-effort usage for an access-denied envelope."""
        try:
            used = await self.ledger.get_usage(caller_id)
        except InternalRouterError as e:
            logger.warning(f"Could not read usage for denied request: {e.internal_message}")
            return None
        return UsageSnapshot.from_count(used, self.ledger.limit_for(tier), feature_available=False)

    def _log_failure(self, error: SuggestionRouterError) -> None:
        extra = {"reason": error.reason.value, "status_code": error.status_code}
        if is_client_error(error):
            logger.info(f"AI request rejected: {error.reason.value}", extra=extra)
        else:
            logger.error(
                f"AI request failed: {error.reason.value}: "
                f"{error.internal_message or error.message}",
                extra=extra,
            )

    # -------------------------------------------------------------------------
    # Read-only operations
    # -------------------------------------------------------------------------

    async def get_usage_status(
        self,
        caller_context: CallerContext,
        feature: Optional[str] = None,
    ) -> UsageStatus:
        """
        Tier and today's usage, without dispatching or committing.

        Raises:
            UnauthenticatedError: No caller identity.
            InternalRouterError: Tier lookup or ledger read failed.
        """
        caller_id = await self.identity.resolve_caller(caller_context)
        tier = await self.tier_resolver.resolve_tier(caller_id, caller_context.session_claims)
        used = await self.ledger.get_usage(caller_id)
        limit = self.ledger.limit_for(tier)

        available = True
        upgrade_message = None
        resolved_feature = None
        if feature:
            resolved_feature = FeatureType.resolve(feature)
            decision = self.access.check(tier, resolved_feature)
            available = decision.allowed
            upgrade_message = decision.message

        return UsageStatus(
            tier=tier.value,
            usage=UsageSnapshot.from_count(used, limit, feature_available=available),
            daily_limit=limit,
            feature=resolved_feature.value if resolved_feature else None,
            upgrade_required=not available,
            upgrade_message=upgrade_message,
        )

    def list_tiers(self) -> List[TierConfig]:
        limits = {tier: self.ledger.limit_for(tier) for tier in SubscriptionTier}
        return get_tier_catalogue(limits)

    async def health(self) -> Dict[str, Any]:
        """Collaborator status for the authenticated health endpoint."""
        engine = self.dispatcher.engine.health()
        is_healthy = bool(engine.get("isHealthy", False))
        return {
            "status": "healthy" if is_healthy else "degraded",
            "isHealthy": is_healthy,
            "uptime": round(time.monotonic() - self._started_at, 3),
            "engine": engine,
            "usageStore": self.ledger.store.name,
            "tierSource": self.tier_resolver.name,
            "features": [f.value for f in self.dispatcher.registry.features],
            "auditPending": self.audit.pending,
        }


_router: Optional[SuggestionRouter] = None


def get_suggestion_router() -> SuggestionRouter:
    """Get or create the process-wide router."""
    global _router
    if _router is None:
        _router = SuggestionRouter()
    return _router


def reset_suggestion_router() -> None:
    global _router
    _router = None
