"""
Generation engines behind the eight AI features.

SuggestionEngine is the collaborator interface the dispatcher calls; each
method returns a feature-specific payload (plain dicts and lists) that the
normalizer turns into SuggestionRecords.

LocalSuggestionEngine is a deterministic, rule-based engine that needs no
model backend. It derives everything from the request's tasks and context.
"""

import logging
from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from memospark.types.ai import ExtendedTask, SuggestionContext
from memospark.types.usage import SubscriptionTier

logger = logging.getLogger(__name__)


class SuggestionEngine(ABC):
    """One coroutine per feature. Implementations may raise; callers handle it."""

    name: str = "base"

    @abstractmethod
    async def generate_suggestions(
        self,
        caller_id: str,
        tier: SubscriptionTier,
        tasks: List[ExtendedTask],
        context: SuggestionContext,
        advanced: bool = False,
    ) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def generate_study_plan(
        self,
        caller_id: str,
        tier: SubscriptionTier,
        tasks: List[ExtendedTask],
        context: SuggestionContext,
    ) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def process_voice(
        self,
        caller_id: str,
        audio_data: Any,
        tasks: List[ExtendedTask],
        context: SuggestionContext,
    ) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def generate_stu_response(
        self,
        caller_id: str,
        tier: SubscriptionTier,
        tasks: List[ExtendedTask],
        context: SuggestionContext,
    ) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def generate_predictions(
        self,
        caller_id: str,
        tasks: List[ExtendedTask],
        context: SuggestionContext,
    ) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def get_collaborative_insights(
        self,
        caller_id: str,
        tasks: List[ExtendedTask],
    ) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def generate_analytics(
        self,
        caller_id: str,
        tasks: List[ExtendedTask],
        context: SuggestionContext,
    ) -> Dict[str, Any]:
        ...

    def health(self) -> Dict[str, Any]:
        return {"engine": self.name, "isHealthy": True}


def parse_due_date(value: str) -> Optional[datetime]:
    """Parse an ISO date or datetime; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


class LocalSuggestionEngine(SuggestionEngine):
    """Rule-based engine over the caller's own tasks."""

    name = "local"

    # -------------------------------------------------------------------------
    # Task helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _open_tasks(tasks: List[ExtendedTask]) -> List[ExtendedTask]:
        return [t for t in tasks if not t.completed]

    @staticmethod
    def _overdue(tasks: List[ExtendedTask], now: datetime) -> List[ExtendedTask]:
        result = []
        for task in tasks:
            due = parse_due_date(task.due_date)
            if not task.completed and due is not None and due < now:
                result.append(task)
        return result

    @staticmethod
    def _due_within(
        tasks: List[ExtendedTask], now: datetime, window: timedelta
    ) -> List[ExtendedTask]:
        result = []
        for task in tasks:
            due = parse_due_date(task.due_date)
            if not task.completed and due is not None and now <= due <= now + window:
                result.append(task)
        return result

    # -------------------------------------------------------------------------
    # Features
    # -------------------------------------------------------------------------

    async def generate_suggestions(self, caller_id, tier, tasks, context, advanced=False):
        now = _as_aware(context.current_time)
        prefs = context.user_preferences
        suggestions: List[Dict[str, Any]] = []

        for task in self._overdue(tasks, now)[:3]:
            suggestions.append({
                "type": "task_suggestion",
                "title": f"Catch up on {task.title}",
                "description": f"'{task.title}' is past its due date. Block time for it today.",
                "priority": "high",
                "confidence": 0.85,
                "reasoning": "Task is overdue and still open",
                "category": "deadlines",
                "tags": ["overdue", task.type],
                "difficulty": task.difficulty or 5,
                "estimatedBenefit": 0.9,
            })

        for task in self._due_within(tasks, now, timedelta(hours=24))[:3]:
            suggestions.append({
                "type": "deadline_reminder",
                "title": f"Due soon: {task.title}",
                "description": f"'{task.title}' is due within 24 hours.",
                "priority": "high" if task.priority == "high" else "medium",
                "confidence": 0.8,
                "reasoning": "Task is due within the next day",
                "category": "deadlines",
                "tags": ["due_soon", task.type],
                "difficulty": task.difficulty or 4,
                "estimatedBenefit": 0.8,
            })

        if prefs.enable_break_reminders and len(self._open_tasks(tasks)) >= 3:
            suggestions.append({
                "type": "break_reminder",
                "title": "Plan your breaks",
                "description": (
                    f"Work in {prefs.preferred_study_duration:g}-minute blocks with "
                    f"{prefs.preferred_break_duration:g}-minute breaks to stay focused."
                ),
                "priority": "low",
                "confidence": 0.7,
                "reasoning": "Several open tasks compete for attention",
                "category": "wellbeing",
                "tags": ["breaks", "focus"],
                "difficulty": 2,
                "estimatedBenefit": 0.6,
            })

        if advanced:
            suggestions.extend(self._advanced_suggestions(tasks, prefs))

        if not suggestions:
            suggestions.append({
                "type": "study_habit_tip",
                "title": "Plan tomorrow tonight",
                "description": "Spend five minutes listing tomorrow's top three tasks.",
                "priority": "low",
                "confidence": 0.6,
                "reasoning": "No urgent work detected",
                "category": "productivity",
                "tags": ["planning"],
                "difficulty": 1,
                "estimatedBenefit": 0.5,
            })

        return suggestions

    def _advanced_suggestions(self, tasks, prefs) -> List[Dict[str, Any]]:
        result: List[Dict[str, Any]] = []
        subjects = Counter(t.subject for t in self._open_tasks(tasks) if t.subject)

        if prefs.balance_subjects and len(subjects) > 1:
            heaviest, count = subjects.most_common(1)[0]
            result.append({
                "type": "schedule_optimization",
                "title": f"Interleave {heaviest} with other subjects",
                "description": (
                    f"{count} open tasks are in {heaviest}. Alternate subjects "
                    "between sessions to keep retention high."
                ),
                "priority": "medium",
                "confidence": 0.78,
                "reasoning": "Open work is concentrated in one subject",
                "category": "planning",
                "tags": ["subject_balance", heaviest],
                "difficulty": 4,
                "estimatedBenefit": 0.75,
            })

        hard = [t for t in self._open_tasks(tasks) if (t.difficulty or 0) >= 8]
        if prefs.focus_on_weak_subjects and hard:
            result.append({
                "type": "task_suggestion",
                "title": f"Start with {hard[0].title}",
                "description": "Tackle your hardest task during your first study block.",
                "priority": "medium",
                "confidence": 0.72,
                "reasoning": "High-difficulty work benefits from peak focus",
                "category": "productivity",
                "tags": ["difficulty", "focus"],
                "difficulty": hard[0].difficulty,
                "estimatedBenefit": 0.8,
            })
        return result

    async def generate_study_plan(self, caller_id, tier, tasks, context):
        now = _as_aware(context.current_time)
        prefs = context.user_preferences
        far_future = now + timedelta(days=3650)

        ordered = sorted(
            self._open_tasks(tasks),
            key=lambda t: (
                parse_due_date(t.due_date) or far_future,
                {"high": 0, "medium": 1, "low": 2}[t.priority],
            ),
        )

        budget = int(prefs.max_daily_study_hours * 60)
        session_length = max(prefs.preferred_study_duration, 1)
        start = now
        sessions = []
        for task in ordered:
            if budget < session_length:
                break
            sessions.append({
                "taskId": task.id,
                "title": task.title,
                "subject": task.subject,
                "start": start.isoformat(),
                "durationMinutes": session_length,
            })
            start += timedelta(minutes=session_length + prefs.preferred_break_duration)
            budget -= session_length

        return {
            "sessions": sessions,
            "totalStudyMinutes": len(sessions) * session_length,
            "breakMinutes": prefs.preferred_break_duration,
            "unscheduledTasks": [t.id for t in ordered[len(sessions):]],
            "generatedAt": now.isoformat(),
        }

    async def process_voice(self, caller_id, audio_data, tasks, context):
        transcription = None
        if isinstance(audio_data, dict):
            transcription = audio_data.get("transcript") or audio_data.get("text")
        elif isinstance(audio_data, str) and len(audio_data) < 500:
            transcription = audio_data
        return {
            "confidence": 0.8,
            "result": "Voice input processed",
            "transcription": transcription,
        }

    async def generate_stu_response(self, caller_id, tier, tasks, context):
        total = len(tasks)
        done = sum(1 for t in tasks if t.completed)
        ratio = done / total if total else 0.0

        if total and ratio >= 0.8:
            message, animation, mood = "Great job! Keep up the good work!", "celebration", "proud"
        elif ratio >= 0.4:
            message, animation, mood = (
                f"You've finished {done} of {total} tasks. Let's knock out the next one!",
                "encouraging",
                "happy",
            )
        else:
            message, animation, mood = (
                "Every big goal starts small. Pick one task and give it 15 minutes.",
                "thinking",
                "supportive",
            )
        return {"message": message, "animation": animation, "mood": mood}

    async def generate_predictions(self, caller_id, tasks, context):
        now = _as_aware(context.current_time)
        predictions: List[Dict[str, Any]] = []

        overdue = self._overdue(tasks, now)
        due_soon = self._due_within(tasks, now, timedelta(days=3))
        open_count = len(self._open_tasks(tasks))

        predictions.append({
            "title": "Workload forecast",
            "description": (
                f"{open_count} open tasks, {len(due_soon)} due in the next 3 days."
            ),
            "priority": "high" if len(due_soon) >= 5 else "medium",
            "confidence": 0.7,
            "difficulty": min(10, 3 + len(due_soon)),
            "impact": 0.7,
        })

        for task in overdue[:3]:
            predictions.append({
                "title": f"Risk of missing {task.title}",
                "description": "Overdue tasks left open tend to slip further.",
                "priority": "high",
                "confidence": 0.82,
                "difficulty": task.difficulty or 6,
                "impact": 0.9,
                "reasoning": "Task is already past due",
                "taskId": task.id,
            })

        return predictions

    async def get_collaborative_insights(self, caller_id, tasks):
        subjects = sorted({t.subject for t in tasks if t.subject})
        focus = subjects[0] if subjects else "your subjects"
        return {
            "message": (
                f"Students studying {focus} who review in short daily sessions "
                "complete more tasks on time."
            ),
            "insights": [
                {"pattern": "short_daily_sessions", "successRate": 0.74},
                {"pattern": "early_start_on_deadlines", "successRate": 0.69},
            ],
        }

    async def generate_analytics(self, caller_id, tasks, context):
        now = _as_aware(context.current_time)
        total = len(tasks)
        completed = sum(1 for t in tasks if t.completed)
        by_subject: Dict[str, Dict[str, int]] = {}
        for task in tasks:
            key = task.subject or "general"
            bucket = by_subject.setdefault(key, {"total": 0, "completed": 0})
            bucket["total"] += 1
            bucket["completed"] += int(task.completed)

        return {
            "totalTasks": total,
            "completedTasks": completed,
            "completionRate": round(completed / total, 3) if total else 0.0,
            "overdueTasks": len(self._overdue(tasks, now)),
            "timeSpentMinutes": sum(t.time_spent or 0 for t in tasks),
            "subjects": by_subject,
            "generatedAt": now.isoformat(),
        }
