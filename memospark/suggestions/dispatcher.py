"""
Dispatch of a validated request to its feature handler.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from memospark.config import get_settings
from memospark.exceptions import (
    HandlerUnavailableError,
    InternalRouterError,
    SuggestionRouterError,
)
from memospark.suggestions.engine import LocalSuggestionEngine, SuggestionEngine
from memospark.suggestions.handlers import HandlerCall, HandlerRegistry
from memospark.suggestions.normalizer import NormalizeContext
from memospark.types.ai import FeatureRequest, SuggestionRecord
from memospark.types.usage import SubscriptionTier
from memospark.utils.logging import Timer

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FeatureDispatcher:
    """
    Runs exactly one handler per request.

    Engine errors and empty results become HandlerUnavailableError; a
    handler that exceeds the timeout is an InternalRouterError.
    """

    def __init__(
        self,
        engine: Optional[SuggestionEngine] = None,
        registry: Optional[HandlerRegistry] = None,
        timeout: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.engine = engine or LocalSuggestionEngine()
        self.registry = registry or HandlerRegistry()
        self._timeout = timeout or get_settings().timeouts.handler_timeout_seconds
        self._clock = clock or _utcnow

    async def dispatch(
        self,
        caller_id: str,
        tier: SubscriptionTier,
        request: FeatureRequest,
    ) -> List[SuggestionRecord]:
        """
        Validate feature inputs, invoke the engine and normalize the result.

        Raises:
            MissingInputError: Feature-specific input absent; engine not called.
            HandlerUnavailableError: Engine raised or returned nothing usable.
            InternalRouterError: Engine timed out.
        """
        feature = request.feature
        handler = self.registry.get(feature)
        handler.validate(request)

        call = HandlerCall(caller_id=caller_id, tier=tier, request=request)

        with Timer(f"dispatch.{feature.value}", logger):
            try:
                payload = await asyncio.wait_for(
                    handler.invoke(self.engine, call), timeout=self._timeout
                )
            except asyncio.TimeoutError as e:
                raise InternalRouterError(
                    stage="dispatch",
                    internal_message=f"{feature.value} handler timed out after {self._timeout}s",
                ) from e
            except SuggestionRouterError:
                raise
            except Exception as e:
                logger.error(
                    f"{feature.value} handler failed: {e}",
                    exc_info=True,
                    extra={"feature": feature.value},
                )
                raise HandlerUnavailableError(
                    feature=feature.value,
                    internal_message=str(e),
                    original_error=e,
                ) from e

        context = NormalizeContext(tier=tier.value, now=self._clock())
        try:
            records = handler.normalize(payload, context)
        except Exception as e:
            logger.error(
                f"{feature.value} produced an unusable payload: {e}",
                extra={"feature": feature.value},
            )
            raise HandlerUnavailableError(
                feature=feature.value,
                internal_message=f"normalization failed: {e}",
                original_error=e,
            ) from e

        if not records:
            raise HandlerUnavailableError(
                feature=feature.value,
                internal_message=f"{feature.value} handler produced no suggestions",
            )

        return records
