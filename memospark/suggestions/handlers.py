"""
Feature handler registry.

Each FeatureHandler bundles three steps for one feature tag:

- validate: feature-specific input checks (raises MissingInputError)
- invoke: call the matching SuggestionEngine coroutine
- normalize: turn the engine payload into SuggestionRecords

Lookups for a tag with no handler fall back to basic suggestions.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from memospark.exceptions import MissingInputError
from memospark.suggestions import normalizer
from memospark.suggestions.engine import SuggestionEngine
from memospark.suggestions.normalizer import NormalizeContext
from memospark.types.ai import FeatureRequest, FeatureType, SuggestionRecord
from memospark.types.usage import SubscriptionTier


@dataclass(frozen=True)
class HandlerCall:
    """Arguments for one handler invocation."""

    caller_id: str
    tier: SubscriptionTier
    request: FeatureRequest


Invoker = Callable[[SuggestionEngine, HandlerCall], Awaitable[Any]]
Normalizer = Callable[[Any, NormalizeContext], List[SuggestionRecord]]
Validator = Callable[[FeatureRequest], None]


def _no_requirements(request: FeatureRequest) -> None:
    return None


def _require_audio(request: FeatureRequest) -> None:
    if request.audio_data in (None, "", {}, []):
        raise MissingInputError(
            field="audioData",
            message="Audio data required for voice processing",
        )


@dataclass(frozen=True)
class FeatureHandler:
    feature: FeatureType
    invoke: Invoker
    normalize: Normalizer
    validate: Validator = _no_requirements


# =============================================================================
# Invokers
# =============================================================================


async def _basic(engine: SuggestionEngine, call: HandlerCall) -> Any:
    return await engine.generate_suggestions(
        call.caller_id, call.tier, call.request.tasks, call.request.context
    )


async def _advanced(engine: SuggestionEngine, call: HandlerCall) -> Any:
    return await engine.generate_suggestions(
        call.caller_id, call.tier, call.request.tasks, call.request.context, advanced=True
    )


async def _study_plan(engine: SuggestionEngine, call: HandlerCall) -> Any:
    return await engine.generate_study_plan(
        call.caller_id, call.tier, call.request.tasks, call.request.context
    )


async def _voice(engine: SuggestionEngine, call: HandlerCall) -> Any:
    return await engine.process_voice(
        call.caller_id, call.request.audio_data, call.request.tasks, call.request.context
    )


async def _stu(engine: SuggestionEngine, call: HandlerCall) -> Any:
    return await engine.generate_stu_response(
        call.caller_id, call.tier, call.request.tasks, call.request.context
    )


async def _predictions(engine: SuggestionEngine, call: HandlerCall) -> Any:
    return await engine.generate_predictions(
        call.caller_id, call.request.tasks, call.request.context
    )


async def _collaborative(engine: SuggestionEngine, call: HandlerCall) -> Any:
    return await engine.get_collaborative_insights(call.caller_id, call.request.tasks)


async def _analytics(engine: SuggestionEngine, call: HandlerCall) -> Any:
    return await engine.generate_analytics(
        call.caller_id, call.request.tasks, call.request.context
    )


DEFAULT_HANDLERS: List[FeatureHandler] = [
    FeatureHandler(FeatureType.BASIC_SUGGESTIONS, _basic, normalizer.normalize_basic_suggestions),
    FeatureHandler(
        FeatureType.ADVANCED_SUGGESTIONS, _advanced, normalizer.normalize_advanced_suggestions
    ),
    FeatureHandler(FeatureType.STUDY_PLANNING, _study_plan, normalizer.normalize_study_plan),
    FeatureHandler(
        FeatureType.VOICE_PROCESSING, _voice, normalizer.normalize_voice, _require_audio
    ),
    FeatureHandler(FeatureType.STU_PERSONALITY, _stu, normalizer.normalize_stu_response),
    FeatureHandler(FeatureType.ML_PREDICTIONS, _predictions, normalizer.normalize_predictions),
    FeatureHandler(
        FeatureType.COLLABORATIVE_FILTERING, _collaborative, normalizer.normalize_collaborative
    ),
    FeatureHandler(FeatureType.PREMIUM_ANALYTICS, _analytics, normalizer.normalize_analytics),
]


class HandlerRegistry:
    """Maps feature tags to handlers."""

    def __init__(self, handlers: Optional[List[FeatureHandler]] = None):
        self._handlers: Dict[FeatureType, FeatureHandler] = {}
        for handler in handlers if handlers is not None else DEFAULT_HANDLERS:
            self.register(handler)

    def register(self, handler: FeatureHandler) -> None:
        self._handlers[handler.feature] = handler

    def get(self, feature: FeatureType) -> FeatureHandler:
        handler = self._handlers.get(feature)
        if handler is None:
            handler = self._handlers[FeatureType.BASIC_SUGGESTIONS]
        return handler

    @property
    def features(self) -> List[FeatureType]:
        return list(self._handlers)
