"""
Payload validation for AI suggestion requests.

Accepts either a JSON body or form fields (whose ``tasks``, ``context``,
``audioData`` and ``metadata`` values are JSON strings) and produces a
FeatureRequest. All structural problems are collected before failing;
errors are keyed by the top-level field they belong to.
"""

import json
import logging
from collections import defaultdict
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from memospark.exceptions import ValidationFailedError
from memospark.types.ai import (
    ExtendedTask,
    FeatureRequest,
    FeatureType,
    SuggestionContext,
)

logger = logging.getLogger(__name__)

FORM_JSON_FIELDS = ("tasks", "context", "audioData", "metadata")

# Form submissions omit empty fields; these are the values assumed instead.
FORM_DEFAULTS = {"tasks": "[]", "context": "{}"}

MAX_ERRORS_PER_FIELD = 20


def _format_error(error: Dict[str, Any], prefix: str) -> str:
    """Render one pydantic error as ``path: message``."""
    parts = [prefix] + [str(p) for p in error.get("loc", ())]
    path = ".".join(p for p in parts if p)
    if error.get("type") == "missing":
        return f"{path}: field is required"
    if error.get("type") == "literal_error":
        expected = (error.get("ctx") or {}).get("expected", "")
        return f"{path}: must be one of {expected}"
    return f"{path}: {error.get('msg', 'invalid value')}"


def parse_form_fields(
    form: Mapping[str, Any],
) -> Tuple[Dict[str, Any], Dict[str, List[str]]]:
    """
    Decode JSON-encoded form fields.

    Returns:
        (payload, field_errors). Malformed JSON is reported against its
        field rather than raised.
    """
    payload: Dict[str, Any] = {}
    errors: Dict[str, List[str]] = {}

    for key, value in form.items():
        if key in FORM_JSON_FIELDS and isinstance(value, str):
            if not value.strip():
                continue
            try:
                payload[key] = json.loads(value)
            except json.JSONDecodeError:
                errors[key] = [f"{key} must be valid JSON"]
        else:
            payload[key] = value

    for key, default in FORM_DEFAULTS.items():
        if key not in payload and key not in errors:
            payload[key] = json.loads(default)

    return payload, errors


class PayloadValidator:
    """Turns an untyped payload into a FeatureRequest or ValidationFailedError."""

    def validate(
        self,
        raw: Any,
        field_errors: Optional[Mapping[str, List[str]]] = None,
    ) -> FeatureRequest:
        """
        Validate ``raw`` and build a FeatureRequest.

        Args:
            raw: Decoded JSON body or parsed form fields.
            field_errors: Errors found earlier (e.g. while decoding form JSON).

        Raises:
            ValidationFailedError: With every field error found.
        """
        errors: Dict[str, List[str]] = defaultdict(list)
        for key, messages in (field_errors or {}).items():
            errors[key].extend(messages)

        if not isinstance(raw, Mapping):
            if not errors:
                errors["request"].append("Request body must be a JSON object")
            raise ValidationFailedError(dict(errors))

        requested = self._check_feature(raw.get("feature"), errors)
        tasks = self._check_tasks(raw, errors)
        context = self._check_context(raw, errors)

        metadata = raw.get("metadata")
        if metadata is not None and not isinstance(metadata, Mapping):
            errors["metadata"].append("metadata must be an object")

        if errors:
            logger.info(
                f"AI request failed validation: {sorted(errors)}",
                extra={"field_errors": {k: len(v) for k, v in errors.items()}},
            )
            raise ValidationFailedError(
                {k: v[:MAX_ERRORS_PER_FIELD] for k, v in errors.items()}
            )

        feature = FeatureType.resolve(requested)
        if feature.value != requested:
            logger.info(f"Unknown feature {requested!r}, routing to {feature.value}")

        return FeatureRequest(
            feature=feature,
            requested_feature=requested,
            tasks=tasks,
            context=context,
            audio_data=raw.get("audioData"),
            metadata=dict(metadata or {}),
        )

    # -------------------------------------------------------------------------
    # Field checks
    # -------------------------------------------------------------------------

    @staticmethod
    def _check_feature(value: Any, errors: Dict[str, List[str]]) -> str:
        if value is None:
            errors["feature"].append("feature is required")
            return ""
        if not isinstance(value, str) or not value.strip():
            errors["feature"].append("feature must be a non-empty string")
            return ""
        return value.strip()

    @staticmethod
    def _check_tasks(
        raw: Mapping[str, Any], errors: Dict[str, List[str]]
    ) -> List[ExtendedTask]:
        if "tasks" not in raw or raw["tasks"] is None:
            # Undecodable form JSON was already reported
            if "tasks" not in errors:
                errors["tasks"].append("tasks is required")
            return []
        if not isinstance(raw["tasks"], list):
            errors["tasks"].append("tasks must be a list")
            return []

        tasks: List[ExtendedTask] = []
        for index, item in enumerate(raw["tasks"]):
            try:
                tasks.append(ExtendedTask.model_validate(item))
            except PydanticValidationError as e:
                errors["tasks"].extend(
                    _format_error(err, f"tasks.{index}") for err in e.errors()
                )
        return tasks

    @staticmethod
    def _check_context(
        raw: Mapping[str, Any], errors: Dict[str, List[str]]
    ) -> Optional[SuggestionContext]:
        value = raw.get("context")
        if value is None:
            if "context" not in errors:
                errors["context"].append("context is required")
            return None
        if not isinstance(value, Mapping):
            errors["context"].append("context must be an object")
            return None

        value = dict(value)
        if value.get("userPreferences") is None:
            value.pop("userPreferences", None)

        try:
            return SuggestionContext.model_validate(value)
        except PydanticValidationError as e:
            errors["context"].extend(_format_error(err, "context") for err in e.errors())
            return None
