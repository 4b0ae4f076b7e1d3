"""Reviewer feedback handler for POST /suggestions/{id}/feedback."""

from __future__ import annotations

import json
import uuid
from typing import Dict, Optional

from handlers.dependencies import get_orchestrator
from utils.error_handling import AppError, ValidationError, to_response
from utils.logging_config import get_logger
from utils.validators import ensure_present

logger = get_logger(__name__)


def _suggestion_id(event) -> Optional[str]:
    params = event.get("pathParameters") or {}
    if params.get("id"):
        return params["id"]
    path = event.get("requestContext", {}).get("http", {}).get("path", "")
    parts = [part for part in path.split("/") if part]
    # /suggestions/{id}/feedback
    if len(parts) == 3 and parts[0] == "suggestions" and parts[2] == "feedback":
        return parts[1]
    return None


def lambda_handler(event, context) -> Dict:
    correlation_id = str(uuid.uuid4())
    try:
        suggestion_id = _suggestion_id(event)
        ensure_present(suggestion_id, "suggestion id")
        try:
            payload = json.loads(event.get("body") or "{}")
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Body is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise ValidationError("Body must be a JSON object")
        ensure_present(payload.get("outcome"), "outcome")

        suggestion = get_orchestrator().record_review_feedback(
            suggestion_id, payload["outcome"], payload.get("details")
        )
    except AppError as exc:
        logger.warning(
            "Feedback rejected",
            extra={"correlation_id": correlation_id, "error": str(exc)},
        )
        return to_response(exc, correlation_id)

    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(
            {
                "suggestion_id": suggestion.id,
                "status": suggestion.status.value,
                "correlation_id": correlation_id,
            }
        ),
    }
