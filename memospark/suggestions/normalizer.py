"""
Normalization of handler payloads into SuggestionRecords.

One pure function per feature. Ids are ``{prefix}_{epoch_ms}`` or
``{prefix}_{epoch_ms}_{index}`` for list-producing handlers. Confidence is
clamped to [0, 1] and difficulty to [1, 10].
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from memospark.types.ai import SuggestionMetadata, SuggestionRecord

PRIORITIES = ("low", "medium", "high")


@dataclass(frozen=True)
class NormalizeContext:
    tier: str
    now: datetime

    @property
    def epoch_ms(self) -> int:
        return int(self.now.timestamp() * 1000)


def _clamp(value: Any, low: float, high: float, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(low, min(high, number))


def _confidence(value: Any, default: float) -> float:
    # 0 is treated as "not provided"
    return _clamp(value or default, 0.0, 1.0, default)


def _difficulty(value: Any, default: int) -> int:
    return int(round(_clamp(value or default, 1, 10, default)))


def _priority(value: Any, default: str) -> str:
    return value if value in PRIORITIES else default


def build_record(
    ctx: NormalizeContext,
    *,
    id: str,
    type: str,
    title: str,
    description: str,
    priority: str,
    source: str,
    confidence: float,
    reasoning: str,
    category: str,
    tags: List[str],
    difficulty: int,
    estimated_benefit: float,
    payload_key: Optional[str] = None,
    payload: Any = None,
) -> SuggestionRecord:
    extra: Dict[str, Any] = {}
    if payload_key:
        extra[payload_key] = payload

    return SuggestionRecord(
        id=id,
        type=type,
        title=title,
        description=description,
        priority=priority,
        source=source,
        created_at=ctx.now,
        confidence=confidence,
        reasoning=reasoning,
        metadata=SuggestionMetadata(
            category=category,
            tags=list(tags),
            difficulty=difficulty,
            estimated_benefit=_clamp(estimated_benefit, 0.0, 1.0, 0.7),
            tier=ctx.tier,
            confidence=confidence,
            **extra,
        ),
    )


# =============================================================================
# Per-feature normalizers
# =============================================================================


def _normalize_suggestion_list(
    payload: Any, ctx: NormalizeContext, prefix: str, source: str
) -> List[SuggestionRecord]:
    if not isinstance(payload, list):
        raise TypeError(f"expected a list of suggestions, got {type(payload).__name__}")

    records = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict) or not item.get("title"):
            continue
        confidence = _confidence(item.get("confidence"), 0.8)
        records.append(build_record(
            ctx,
            id=f"{prefix}_{ctx.epoch_ms}_{index}",
            type=str(item.get("type") or "task_suggestion"),
            title=str(item["title"]),
            description=str(item.get("description") or ""),
            priority=_priority(item.get("priority"), "medium"),
            source=source,
            confidence=confidence,
            reasoning=str(item.get("reasoning") or "Based on your tasks and preferences"),
            category=str(item.get("category") or "productivity"),
            tags=item.get("tags") or [],
            difficulty=_difficulty(item.get("difficulty"), 5),
            estimated_benefit=_clamp(item.get("estimatedBenefit"), 0.0, 1.0, 0.7),
        ))
    return records


def normalize_basic_suggestions(payload: Any, ctx: NormalizeContext) -> List[SuggestionRecord]:
    return _normalize_suggestion_list(payload, ctx, "basic_suggestion", "local_ml")


def normalize_advanced_suggestions(payload: Any, ctx: NormalizeContext) -> List[SuggestionRecord]:
    return _normalize_suggestion_list(payload, ctx, "advanced_suggestion", "adaptive_ml")


def normalize_study_plan(payload: Any, ctx: NormalizeContext) -> List[SuggestionRecord]:
    if payload is None:
        return []
    return [build_record(
        ctx,
        id=f"study_plan_{ctx.epoch_ms}",
        type="schedule_optimization",
        title="Personalized Study Plan",
        description="Study plan built around your schedule and goals",
        priority="high",
        source="super_intelligent_ml",
        confidence=0.9,
        reasoning="Generated from your open tasks, deadlines and study preferences",
        category="planning",
        tags=["study_plan", "schedule", "ai_generated"],
        difficulty=5,
        estimated_benefit=0.95,
        payload_key="studyPlan",
        payload=payload,
    )]


def normalize_voice(payload: Any, ctx: NormalizeContext) -> List[SuggestionRecord]:
    if not isinstance(payload, dict):
        return []
    confidence = _confidence(payload.get("confidence"), 0.8)
    return [build_record(
        ctx,
        id=f"voice_processed_{ctx.epoch_ms}",
        type="task_suggestion",
        title="Voice Command Processed",
        description=payload.get("transcription") or "Voice input processed successfully",
        priority="medium",
        source="voice_ai",
        confidence=confidence,
        reasoning="Processed from your voice note",
        category="voice",
        tags=["voice_processing", "ai_transcription"],
        difficulty=3,
        estimated_benefit=0.8,
        payload_key="voiceResult",
        payload=payload,
    )]


def normalize_stu_response(payload: Any, ctx: NormalizeContext) -> List[SuggestionRecord]:
    if not isinstance(payload, dict):
        return []
    return [build_record(
        ctx,
        id=f"stu_response_{ctx.epoch_ms}",
        type="mascot_interaction",
        title="Stu's Personalized Advice",
        description=payload.get("message") or "Stu has some helpful advice for you!",
        priority="medium",
        source="stu_personality",
        confidence=0.85,
        reasoning="Generated by Stu's personality system",
        category="motivation",
        tags=["stu_personality", "motivation", "mascot"],
        difficulty=2,
        estimated_benefit=0.7,
        payload_key="stuResponse",
        payload=payload,
    )]


def normalize_predictions(payload: Any, ctx: NormalizeContext) -> List[SuggestionRecord]:
    if isinstance(payload, dict):
        payload = payload.get("predictions")
    if not isinstance(payload, list):
        return []

    records = []
    for index, pred in enumerate(payload):
        if not isinstance(pred, dict):
            continue
        confidence = _confidence(pred.get("confidence"), 0.8)
        records.append(build_record(
            ctx,
            id=f"ml_prediction_{ctx.epoch_ms}_{index}",
            type="task_suggestion",
            title=f"ML Prediction: {pred.get('title') or 'Smart Insight'}",
            description=pred.get("description") or "Prediction based on your patterns",
            priority=_priority(pred.get("priority"), "medium"),
            source="ml_predictions",
            confidence=confidence,
            reasoning=pred.get("reasoning") or "Generated from your task history",
            category="prediction",
            tags=["ml_prediction", "pattern_analysis"],
            difficulty=_difficulty(pred.get("difficulty"), 5),
            estimated_benefit=_clamp(pred.get("impact") or 0.8, 0.0, 1.0, 0.8),
            payload_key="prediction",
            payload=pred,
        ))
    return records


def normalize_collaborative(payload: Any, ctx: NormalizeContext) -> List[SuggestionRecord]:
    if not isinstance(payload, dict):
        return []
    return [build_record(
        ctx,
        id=f"collaborative_{ctx.epoch_ms}",
        type="study_habit_tip",
        title="Community Insights",
        description=payload.get("message")
        or "Insights based on successful study patterns from the community",
        priority="medium",
        source="collaborative_filtering",
        confidence=0.75,
        reasoning="Based on anonymous success patterns from similar users",
        category="social_learning",
        tags=["collaborative", "community_insights"],
        difficulty=4,
        estimated_benefit=0.75,
        payload_key="insights",
        payload=payload,
    )]


def normalize_analytics(payload: Any, ctx: NormalizeContext) -> List[SuggestionRecord]:
    if not isinstance(payload, dict):
        return []
    return [build_record(
        ctx,
        id=f"analytics_{ctx.epoch_ms}",
        type="premium_analytics",
        title="Advanced Analytics",
        description="Analysis of your study patterns and performance",
        priority="high",
        source="premium_analytics",
        confidence=0.95,
        reasoning="Computed across all of your tasks and study time",
        category="analytics",
        tags=["premium_analytics", "performance_analysis"],
        difficulty=7,
        estimated_benefit=0.95,
        payload_key="analytics",
        payload=payload,
    )]
