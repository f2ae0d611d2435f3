"""
Response envelope assembly.

Builds the uniform ResponseEnvelope for both outcomes. Assembly never
raises: a failure envelope is built from whatever tier and usage the
pipeline had established before it stopped.
"""

from typing import List, Optional

from memospark.exceptions import (
    AccessDeniedError,
    QuotaExceededError,
    SuggestionRouterError,
    ValidationFailedError,
)
from memospark.types.ai import ResponseEnvelope, SuggestionRecord
from memospark.types.usage import SubscriptionTier, UsageSnapshot


def _outward(tier: Optional[SubscriptionTier]) -> Optional[str]:
    return tier.value if tier is not None else None


class ResponseAssembler:
    def success(
        self,
        records: List[SuggestionRecord],
        tier: SubscriptionTier,
        used: int,
        limit: int,
    ) -> ResponseEnvelope:
        """Envelope for a dispatched request; ``used`` is the post-commit count."""
        return ResponseEnvelope(
            success=True,
            data=records,
            tier=_outward(tier),
            usage=UsageSnapshot.from_count(used, limit, feature_available=True),
            upgrade_required=False,
            message=f"Generated {len(records)} AI suggestions",
        )

    def failure(
        self,
        error: SuggestionRouterError,
        tier: Optional[SubscriptionTier] = None,
        usage: Optional[UsageSnapshot] = None,
    ) -> ResponseEnvelope:
        field_errors = None

        if isinstance(error, ValidationFailedError):
            field_errors = error.field_errors
        elif isinstance(error, QuotaExceededError):
            usage = UsageSnapshot(
                requests_used=error.used,
                requests_remaining=0,
                feature_available=False,
            )
        elif isinstance(error, AccessDeniedError):
            base = usage or UsageSnapshot()
            usage = base.model_copy(update={"feature_available": False})

        return ResponseEnvelope(
            success=False,
            tier=_outward(tier),
            usage=usage,
            upgrade_required=error.upgrade_required,
            error=error.message,
            field_errors=field_errors,
            reason=error.reason.value,
        ).with_status(
            error.status_code,
            retry_after=getattr(error, "retry_after", None),
        )
