"""
Tests for error handlers.

Tests error sanitization, envelope serialization and the FastAPI
exception handlers.
"""

import asyncio
import json
import os
import sys
import unittest
from unittest.mock import MagicMock, patch

# Set environment before imports
os.environ["DEV_MODE"] = "true"
os.environ["ENVIRONMENT"] = "development"

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from starlette.requests import Request

from app.error_handlers import (
    envelope_response,
    error_envelope,
    format_pydantic_errors,
    report_to_sentry,
    sanitize_error_message,
    unhandled_exception_handler,
)
from memospark.exceptions import (
    AccessDeniedError,
    HandlerUnavailableError,
    QuotaExceededError,
    ValidationFailedError,
)
from memospark.types.ai import ResponseEnvelope


def make_request(path="/ai/suggestions"):
    return Request({
        "type": "http",
        "method": "POST",
        "path": path,
        "headers": [],
        "query_string": b"",
    })


class TestErrorMessageSanitization(unittest.TestCase):
    """Tests for error message sanitization."""

    def test_normal_message_unchanged(self):
        message = "Daily AI request limit reached"
        self.assertEqual(sanitize_error_message(message), message)

    def test_token_is_redacted(self):
        """Messages mentioning tokens or secrets are replaced."""
        sanitized = sanitize_error_message("Invalid bearer token eyJhbGciOi")
        self.assertNotIn("eyJhbGciOi", sanitized)

    def test_database_url_is_redacted(self):
        sanitized = sanitize_error_message("Connection error: postgresql://user:pass@db/memo")
        self.assertNotIn("postgresql://", sanitized)

    def test_ip_address_is_redacted(self):
        sanitized = sanitize_error_message("Connection failed to 10.0.0.12:5432")
        self.assertNotIn("10.0.0.12", sanitized)

    def test_long_message_is_truncated(self):
        sanitized = sanitize_error_message("a" * 1000)
        self.assertLessEqual(len(sanitized), 503)

    def test_empty_message_returns_empty(self):
        self.assertEqual(sanitize_error_message(""), "")


class TestFormatPydanticErrors(unittest.TestCase):

    def test_groups_by_top_level_field(self):
        errors = [
            {"loc": ("query", "feature"), "msg": "String should have at most 64 characters", "type": "string_too_long"},
            {"loc": ("body", "tasks", 0, "title"), "msg": "Field required", "type": "missing"},
            {"loc": ("body", "tasks", 1, "priority"), "msg": "Input should be 'low'", "type": "literal_error"},
        ]

        grouped = format_pydantic_errors(errors)

        self.assertEqual(sorted(grouped), ["feature", "tasks"])
        self.assertEqual(grouped["tasks"][0], "tasks.0.title: field is required")
        self.assertEqual(len(grouped["tasks"]), 2)

    def test_error_without_location(self):
        grouped = format_pydantic_errors([{"loc": ("body",), "msg": "Invalid", "type": "value_error"}])
        self.assertEqual(grouped, {"request": ["request: Invalid"]})


class TestEnvelopeResponse(unittest.TestCase):
    """Tests for envelope serialization."""

    def test_quota_envelope_sets_retry_after(self):
        response = envelope_response(error_envelope(
            QuotaExceededError(tier="free", used=10, limit=10, retry_after=3600)
        ))

        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.headers["Retry-After"], "3600")
        body = json.loads(response.body)
        self.assertEqual(body["reason"], "QuotaExceeded")
        self.assertTrue(body["upgradeRequired"])

    def test_validation_envelope_carries_field_errors(self):
        response = envelope_response(error_envelope(
            ValidationFailedError({"tasks": ["tasks is required"]})
        ))

        self.assertEqual(response.status_code, 422)
        self.assertNotIn("Retry-After", response.headers)
        self.assertEqual(json.loads(response.body)["fieldErrors"], {"tasks": ["tasks is required"]})

    def test_internal_message_never_returned(self):
        error = HandlerUnavailableError("study_planning", internal_message="engine at /var/run/ai.sock")

        body = json.loads(envelope_response(error_envelope(error)).body)

        self.assertEqual(body["error"], "AI service temporarily unavailable")
        self.assertNotIn("/var/run", json.dumps(body))

    def test_access_denied_status(self):
        error = AccessDeniedError("study_planning", "free", "premium")
        self.assertEqual(envelope_response(error_envelope(error)).status_code, 403)

    def test_default_status_is_200(self):
        envelope = ResponseEnvelope(success=True, data=[])
        self.assertEqual(envelope_response(envelope).status_code, 200)


class TestExceptionHandlers(unittest.TestCase):
    """Exception handlers mounted on the application."""

    def setUp(self):
        from fastapi.testclient import TestClient
        from server import app

        self.client = TestClient(app)

    def test_not_found_is_envelope(self):
        response = self.client.get("/nonexistent-endpoint")

        self.assertEqual(response.status_code, 404)
        data = response.json()
        self.assertFalse(data["success"])
        self.assertIn("reason", data)

    def test_method_not_allowed(self):
        response = self.client.delete("/health")
        self.assertEqual(response.status_code, 405)

    def test_query_validation_is_validation_failed(self):
        response = self.client.get("/ai/usage", params={"feature": "x" * 100})

        self.assertEqual(response.status_code, 422)
        data = response.json()
        self.assertEqual(data["reason"], "ValidationFailed")
        self.assertIn("feature", data["fieldErrors"])


class TestUnhandledExceptions(unittest.TestCase):

    @patch("sentry_sdk.capture_exception", return_value="evt-1")
    @patch("sentry_sdk.get_client")
    def test_unhandled_exception_is_reported(self, mock_get_client, mock_capture):
        """Unexpected errors become a 500 envelope and reach Sentry."""
        mock_client = MagicMock()
        mock_client.is_active.return_value = True
        mock_get_client.return_value = mock_client

        response = asyncio.run(
            unhandled_exception_handler(make_request(), RuntimeError("secret leaked"))
        )

        self.assertEqual(response.status_code, 500)
        body = json.loads(response.body)
        self.assertEqual(body["reason"], "InternalError")
        self.assertTrue(body["message"].startswith("Reference: "))
        self.assertNotIn("secret leaked", json.dumps(body))
        mock_capture.assert_called_once()

    @patch("sentry_sdk.capture_exception")
    def test_report_skipped_when_sentry_inactive(self, mock_capture):
        with patch("sentry_sdk.get_client") as mock_get_client:
            mock_get_client.return_value.is_active.return_value = False

            self.assertIsNone(report_to_sentry(RuntimeError("x"), make_request()))

        mock_capture.assert_not_called()


if __name__ == "__main__":
    unittest.main()
