"""Batch triage handler for POST /tickets/triage/batch."""

from __future__ import annotations

import json
import uuid
from typing import Any, Dict, List

from pydantic import ValidationError as PydanticValidationError

from handlers.dependencies import get_orchestrator
from models.ticket import Ticket
from utils.error_handling import AppError, ValidationError, to_response
from utils.logging_config import get_logger

logger = get_logger(__name__)


def _response(status: int, body: Dict) -> Dict:
    return {
        "statusCode": status,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def lambda_handler(event, context) -> Dict:
    """
    Triage ``{"tickets": [...]}`` and return one result per input position.

    Tickets that fail validation get an ``error`` entry and are not run; the
    rest go through the pipeline as one batch.
    """
    correlation_id = str(uuid.uuid4())
    try:
        try:
            payload = json.loads(event.get("body") or "{}")
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Body is not valid JSON: {exc}") from exc
        items = payload.get("tickets") if isinstance(payload, dict) else None
        if not isinstance(items, list) or not items:
            raise ValidationError("Body must be an object with a non-empty 'tickets' list")

        results: List[Dict[str, Any]] = [{"index": index} for index in range(len(items))]
        valid: List[int] = []
        tickets: List[Ticket] = []
        for index, item in enumerate(items):
            try:
                tickets.append(Ticket.model_validate(item))
                valid.append(index)
            except PydanticValidationError as exc:
                results[index]["error"] = str(exc)

        suggestions = get_orchestrator().process_batch(tickets)
    except AppError as exc:
        logger.warning(
            "Batch rejected", extra={"correlation_id": correlation_id, "error": str(exc)}
        )
        return to_response(exc, correlation_id)

    for index, suggestion in zip(valid, suggestions):
        results[index]["suggestion"] = suggestion.model_dump(mode="json")

    return _response(
        200,
        {
            "results": results,
            "processed": len(suggestions),
            "rejected": len(items) - len(suggestions),
            "correlation_id": correlation_id,
        },
    )
