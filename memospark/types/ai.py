"""
Pydantic models for AI suggestion requests and responses.

Wire names are camelCase (the web client's convention); Python attributes
are snake_case. Dump with ``model_dump(by_alias=True)``.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr
from pydantic.alias_generators import to_camel

from .usage import UsageSnapshot


class FeatureType(str, Enum):
    """The eight AI features a request can be routed to."""

    BASIC_SUGGESTIONS = "basic_suggestions"
    ADVANCED_SUGGESTIONS = "advanced_suggestions"
    STUDY_PLANNING = "study_planning"
    VOICE_PROCESSING = "voice_processing"
    STU_PERSONALITY = "stu_personality"
    ML_PREDICTIONS = "ml_predictions"
    COLLABORATIVE_FILTERING = "collaborative_filtering"
    PREMIUM_ANALYTICS = "premium_analytics"

    @classmethod
    def resolve(cls, value: str) -> "FeatureType":
        """Known tag -> itself; anything else -> BASIC_SUGGESTIONS."""
        try:
            return cls(value)
        except ValueError:
            return cls.BASIC_SUGGESTIONS


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Request Models
# =============================================================================


class ExtendedTask(_CamelModel):
    """A task as sent by the client."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str
    title: str
    completed: bool
    due_date: str
    priority: Literal["low", "medium", "high"]
    type: Literal["academic", "personal"]
    tags: List[str]
    reminder: bool
    description: Optional[str] = None
    subject: Optional[str] = None
    time_spent: Optional[float] = Field(default=None, ge=0)
    difficulty: Optional[int] = Field(default=None, ge=1, le=10)


class UserPreferences(_CamelModel):
    """Suggestion preferences; every field is optional on the wire."""

    enable_suggestions: bool = True
    suggestion_frequency: Literal["minimal", "moderate", "frequent"] = "moderate"
    difficulty_preference: Literal["adaptive", "challenging", "comfortable"] = "adaptive"

    preferred_study_times: List[str] = Field(default_factory=list)
    preferred_study_duration: float = Field(default=45, ge=0, description="Minutes")
    preferred_break_duration: float = Field(default=15, ge=0, description="Minutes")
    max_daily_study_hours: float = Field(default=8, ge=0)

    cloud_sync_enabled: bool = False
    share_anonymous_data: bool = False
    personalized_stu_interaction: bool = True

    enable_break_reminders: bool = True
    enable_study_reminders: bool = True
    reminder_advance_time: float = Field(default=30, ge=0, description="Minutes")

    adaptive_difficulty: bool = True
    focus_on_weak_subjects: bool = True
    balance_subjects: bool = True

    preferred_difficulty: Optional[int] = Field(default=None, ge=1, le=10)
    max_suggestions_per_day: Optional[float] = Field(default=None, ge=0)
    study_style: Optional[str] = None
    time_of_day: Optional[str] = None


class SuggestionContext(_CamelModel):
    current_time: datetime
    upcoming_tasks: List[ExtendedTask] = Field(default_factory=list)
    recent_activity: List[ExtendedTask] = Field(default_factory=list)
    user_preferences: UserPreferences = Field(default_factory=UserPreferences)


class FeatureRequest(BaseModel):
    """
    A validated request, tagged by the feature it will be dispatched to.

    ``requested_feature`` keeps the tag the client sent; ``feature`` is the
    effective tag after unknown values fall back to basic suggestions.
    """

    feature: FeatureType
    requested_feature: str
    tasks: List[ExtendedTask]
    context: SuggestionContext
    audio_data: Optional[Any] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_fallback(self) -> bool:
        return self.requested_feature != self.feature.value


# =============================================================================
# Response Models
# =============================================================================


class SuggestionMetadata(_CamelModel):
    """
    Metadata attached to every suggestion.

    Handler-specific payloads ride along as extra keys (studyPlan,
    voiceResult, stuResponse, prediction, insights, analytics).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    category: str
    tags: List[str] = Field(default_factory=list)
    difficulty: int = Field(..., ge=1, le=10)
    estimated_benefit: float = Field(..., ge=0.0, le=1.0)
    tier: str
    confidence: float = Field(..., ge=0.0, le=1.0)


class SuggestionRecord(_CamelModel):
    id: str
    type: str
    title: str
    description: str
    priority: Literal["low", "medium", "high"]
    source: str
    created_at: datetime
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str
    metadata: SuggestionMetadata


class ResponseEnvelope(_CamelModel):
    """Uniform response for every routed request, success or failure."""

    success: bool
    data: Optional[List[SuggestionRecord]] = None
    tier: Optional[str] = None
    usage: Optional[UsageSnapshot] = None
    upgrade_required: bool = False
    error: Optional[str] = None
    field_errors: Optional[Dict[str, List[str]]] = None
    message: Optional[str] = None
    reason: Optional[str] = None

    _status_code: int = PrivateAttr(default=200)
    _retry_after: Optional[int] = PrivateAttr(default=None)

    @property
    def status_code(self) -> int:
        """HTTP status the API layer answers with; not part of the body."""
        return self._status_code

    @property
    def retry_after(self) -> Optional[int]:
        return self._retry_after

    def with_status(
        self, status_code: int, retry_after: Optional[int] = None
    ) -> "ResponseEnvelope":
        self._status_code = status_code
        self._retry_after = retry_after
        return self

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class UsageStatus(_CamelModel):
    """Read-only view of a caller's tier and today's usage."""

    success: bool = True
    tier: str
    usage: UsageSnapshot
    daily_limit: int
    feature: Optional[str] = None
    upgrade_required: bool = False
    upgrade_message: Optional[str] = None
