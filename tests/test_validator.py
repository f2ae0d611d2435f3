"""
Tests for AI request payload validation and form decoding.
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from memospark.exceptions import ValidationFailedError
from memospark.suggestions.validator import PayloadValidator, parse_form_fields
from memospark.types.ai import FeatureType


def make_task(**overrides):
    task = {
        "id": "task-1",
        "title": "Read chapter 4",
        "completed": False,
        "dueDate": "2026-03-03",
        "priority": "medium",
        "type": "academic",
        "tags": [],
        "reminder": False,
    }
    task.update(overrides)
    return task


def make_payload(**overrides):
    payload = {
        "feature": "basic_suggestions",
        "tasks": [make_task()],
        "context": {"currentTime": "2026-03-02T10:00:00Z"},
    }
    payload.update(overrides)
    return payload


class TestPayloadValidator(unittest.TestCase):
    """Tests for PayloadValidator.validate."""

    def setUp(self):
        self.validator = PayloadValidator()

    def test_valid_payload(self):
        """A well-formed payload produces a FeatureRequest."""
        request = self.validator.validate(make_payload(feature="study_planning"))

        self.assertEqual(request.feature, FeatureType.STUDY_PLANNING)
        self.assertEqual(len(request.tasks), 1)
        self.assertEqual(request.tasks[0].due_date, "2026-03-03")
        self.assertFalse(request.is_fallback)

    def test_preference_defaults_applied(self):
        """Omitted userPreferences get every documented default."""
        request = self.validator.validate(make_payload())
        prefs = request.context.user_preferences

        self.assertTrue(prefs.enable_suggestions)
        self.assertEqual(prefs.suggestion_frequency, "moderate")
        self.assertEqual(prefs.preferred_study_duration, 45)
        self.assertEqual(prefs.preferred_break_duration, 15)
        self.assertEqual(prefs.max_daily_study_hours, 8)
        self.assertFalse(prefs.cloud_sync_enabled)
        self.assertEqual(prefs.reminder_advance_time, 30)

    def test_partial_preferences_keep_other_defaults(self):
        """Supplied preferences override only the fields given."""
        payload = make_payload(context={
            "currentTime": "2026-03-02T10:00:00Z",
            "userPreferences": {"preferredStudyDuration": 25},
        })

        prefs = self.validator.validate(payload).context.user_preferences

        self.assertEqual(prefs.preferred_study_duration, 25)
        self.assertEqual(prefs.preferred_break_duration, 15)

    def test_fractional_minutes_accepted(self):
        payload = make_payload(context={
            "currentTime": "2026-03-02T10:00:00Z",
            "userPreferences": {"preferredStudyDuration": 45.5, "reminderAdvanceTime": 7.5},
        })

        prefs = self.validator.validate(payload).context.user_preferences

        self.assertEqual(prefs.preferred_study_duration, 45.5)
        self.assertEqual(prefs.reminder_advance_time, 7.5)

    def test_unknown_feature_falls_back_to_basic(self):
        """An unrecognised tag routes to basic suggestions."""
        request = self.validator.validate(make_payload(feature="telepathy"))

        self.assertEqual(request.feature, FeatureType.BASIC_SUGGESTIONS)
        self.assertEqual(request.requested_feature, "telepathy")
        self.assertTrue(request.is_fallback)

    def test_missing_feature_is_field_error(self):
        """feature is required."""
        payload = make_payload()
        del payload["feature"]

        with self.assertRaises(ValidationFailedError) as ctx:
            self.validator.validate(payload)

        self.assertIn("feature", ctx.exception.field_errors)

    def test_all_field_errors_collected(self):
        """Errors in several fields are reported together."""
        payload = {
            "feature": 42,
            "tasks": "not a list",
            "context": {"currentTime": "2026-03-02T10:00:00Z"},
        }

        with self.assertRaises(ValidationFailedError) as ctx:
            self.validator.validate(payload)

        errors = ctx.exception.field_errors
        self.assertEqual(set(errors), {"feature", "tasks"})
        self.assertEqual(errors["tasks"], ["tasks must be a list"])

    def test_every_bad_task_reported(self):
        """Each invalid task contributes its own messages, keyed under tasks."""
        payload = make_payload(tasks=[
            make_task(priority="urgent"),
            make_task(id="task-2", difficulty=11),
        ])

        with self.assertRaises(ValidationFailedError) as ctx:
            self.validator.validate(payload)

        messages = ctx.exception.field_errors["tasks"]
        self.assertEqual(len(messages), 2)
        self.assertTrue(messages[0].startswith("tasks.0.priority"))
        self.assertTrue(messages[1].startswith("tasks.1.difficulty"))

    def test_missing_task_field_reported(self):
        """A task without a required field names the field."""
        task = make_task()
        del task["dueDate"]

        with self.assertRaises(ValidationFailedError) as ctx:
            self.validator.validate(make_payload(tasks=[task]))

        self.assertIn("tasks.0.dueDate: field is required", ctx.exception.field_errors["tasks"])

    def test_context_requires_current_time(self):
        """context.currentTime is required."""
        with self.assertRaises(ValidationFailedError) as ctx:
            self.validator.validate(make_payload(context={}))

        self.assertIn("context", ctx.exception.field_errors)

    def test_non_object_body(self):
        """A list body is rejected as a whole."""
        with self.assertRaises(ValidationFailedError) as ctx:
            self.validator.validate(["feature"])

        self.assertEqual(list(ctx.exception.field_errors), ["request"])

    def test_earlier_errors_are_merged(self):
        """Transport-level errors are reported alongside payload errors."""
        payload = make_payload()
        del payload["feature"]

        with self.assertRaises(ValidationFailedError) as ctx:
            self.validator.validate(payload, {"audioData": ["audioData must be valid JSON"]})

        self.assertEqual(set(ctx.exception.field_errors), {"feature", "audioData"})

    def test_audio_data_carried_through(self):
        """audioData reaches the request untouched."""
        request = self.validator.validate(
            make_payload(feature="voice_processing", audioData={"transcript": "hi"})
        )

        self.assertEqual(request.audio_data, {"transcript": "hi"})


class TestParseFormFields(unittest.TestCase):
    """Tests for form field decoding."""

    def test_json_fields_decoded(self):
        """tasks and context are decoded from JSON strings."""
        payload, errors = parse_form_fields({
            "feature": "basic_suggestions",
            "tasks": '[{"id": "t"}]',
            "context": '{"currentTime": "2026-03-02T10:00:00Z"}',
        })

        self.assertEqual(errors, {})
        self.assertEqual(payload["feature"], "basic_suggestions")
        self.assertEqual(payload["tasks"], [{"id": "t"}])
        self.assertEqual(payload["context"]["currentTime"], "2026-03-02T10:00:00Z")

    def test_defaults_for_missing_fields(self):
        """Missing tasks and context default to [] and {}."""
        payload, errors = parse_form_fields({"feature": "basic_suggestions"})

        self.assertEqual(errors, {})
        self.assertEqual(payload["tasks"], [])
        self.assertEqual(payload["context"], {})
        self.assertNotIn("audioData", payload)

    def test_malformed_json_reported_per_field(self):
        """Bad JSON becomes a field error instead of raising."""
        payload, errors = parse_form_fields({
            "feature": "voice_processing",
            "audioData": "{not json",
        })

        self.assertEqual(errors, {"audioData": ["audioData must be valid JSON"]})
        self.assertNotIn("audioData", payload)

    def test_malformed_tasks_reported_once(self):
        """Undecodable tasks are not also reported as missing."""
        payload, errors = parse_form_fields({
            "feature": "basic_suggestions",
            "tasks": "[oops",
            "context": '{"currentTime": "2026-03-02T10:00:00Z"}',
        })

        with self.assertRaises(ValidationFailedError) as ctx:
            PayloadValidator().validate(payload, errors)

        self.assertEqual(ctx.exception.field_errors, {"tasks": ["tasks must be valid JSON"]})


if __name__ == "__main__":
    unittest.main()
