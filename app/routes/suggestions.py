"""
AI suggestion endpoints.

Every routed request answers with the ResponseEnvelope body; the status
code follows the envelope's failure reason.
"""

import base64
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from app.dependencies import get_caller_context, get_router
from app.error_handlers import envelope_response
from memospark.suggestions.identity import CallerContext
from memospark.suggestions.router import SuggestionRouter
from memospark.suggestions.validator import parse_form_fields

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])


async def _read_json(request: Request) -> Tuple[Any, Optional[Dict[str, List[str]]]]:
    """Decoded body, or (None, field_errors) when it is not valid JSON."""
    body = await request.body()
    if not body:
        return None, {"request": ["Request body is required"]}
    try:
        return json.loads(body), None
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None, {"request": ["Request body must be valid JSON"]}


async def _encode_upload(upload: UploadFile) -> Dict[str, Any]:
    content = await upload.read()
    return {
        "filename": upload.filename,
        "contentType": upload.content_type,
        "size": len(content),
        "data": base64.b64encode(content).decode("ascii"),
    }


@router.post("/suggestions")
async def generate_suggestions(
    request: Request,
    caller: CallerContext = Depends(get_caller_context),
    suggestion_router: SuggestionRouter = Depends(get_router),
) -> JSONResponse:
    """Route a JSON request to the feature named in its ``feature`` field."""
    payload, field_errors = await _read_json(request)
    envelope = await suggestion_router.route(payload, caller, field_errors=field_errors)
    return envelope_response(envelope)


@router.post("/suggestions/form")
async def generate_suggestions_form(
    request: Request,
    caller: CallerContext = Depends(get_caller_context),
    suggestion_router: SuggestionRouter = Depends(get_router),
) -> JSONResponse:
    """
    Route a form submission.

    ``tasks``, ``context``, ``audioData`` and ``metadata`` are JSON strings;
    ``audioData`` may also be an uploaded file.
    """
    form = await request.form()
    fields: Dict[str, Any] = {}
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            fields[key] = await _encode_upload(value)
        else:
            fields[key] = value

    payload, field_errors = parse_form_fields(fields)
    envelope = await suggestion_router.route(payload, caller, field_errors=field_errors or None)
    return envelope_response(envelope)


@router.post("/features/{feature}")
async def run_feature(
    feature: str,
    request: Request,
    caller: CallerContext = Depends(get_caller_context),
    suggestion_router: SuggestionRouter = Depends(get_router),
) -> JSONResponse:
    """Route to ``feature``; a ``feature`` field in the body is ignored."""
    payload, field_errors = await _read_json(request)
    if field_errors:
        envelope = await suggestion_router.route(payload, caller, field_errors=field_errors)
    else:
        envelope = await suggestion_router.route_feature(feature, payload, caller)
    return envelope_response(envelope)


@router.get("/usage")
async def get_usage(
    feature: Optional[str] = Query(default=None, max_length=64),
    caller: CallerContext = Depends(get_caller_context),
    suggestion_router: SuggestionRouter = Depends(get_router),
) -> Dict[str, Any]:
    """Tier and today's usage; never consumes quota."""
    status = await suggestion_router.get_usage_status(caller, feature=feature)
    return status.model_dump(by_alias=True, mode="json")


@router.get("/tiers")
async def list_tiers(
    suggestion_router: SuggestionRouter = Depends(get_router),
) -> Dict[str, Any]:
    """Tier catalogue with daily limits and features."""
    return {
        "success": True,
        "tiers": [
            {
                "tier": tier.tier.value,
                "name": tier.name,
                "dailyLimit": tier.daily_limit,
                "unlimited": tier.is_unlimited,
                "features": tier.features,
            }
            for tier in suggestion_router.list_tiers()
        ],
    }


@router.get("/health")
async def ai_health(
    caller: CallerContext = Depends(get_caller_context),
    suggestion_router: SuggestionRouter = Depends(get_router),
) -> Dict[str, Any]:
    """Router collaborator status. Requires a signed-in caller."""
    await suggestion_router.identity.resolve_caller(caller)
    return {"success": True, "data": await suggestion_router.health()}
