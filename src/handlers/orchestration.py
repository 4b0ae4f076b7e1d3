"""Triage handler for POST /tickets/triage."""

from __future__ import annotations

import json
import uuid
from typing import Dict

from pydantic import ValidationError as PydanticValidationError

from handlers.dependencies import get_orchestrator
from models.ticket import Ticket
from utils.error_handling import AppError, to_response
from utils.logging_config import get_logger

logger = get_logger(__name__)


def lambda_handler(event, context) -> Dict:
    """Run the full pipeline for one ticket and return the Suggestion."""
    correlation_id = str(uuid.uuid4())
    try:
        body = event.get("body")
        payload = json.loads(body) if body else event.get("ticket", {})
        ticket = Ticket.model_validate(payload)
    except (json.JSONDecodeError, PydanticValidationError) as exc:
        logger.warning(
            "Invalid triage request",
            extra={"correlation_id": correlation_id, "error": str(exc)},
        )
        return {
            "statusCode": 400,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps(
                {"message": "Invalid request", "error": str(exc), "correlation_id": correlation_id}
            ),
        }

    try:
        suggestion = get_orchestrator().process_ticket(ticket, trace_id=correlation_id)
    except AppError as exc:
        logger.error(
            "Triage failed", extra={"correlation_id": correlation_id, "error": str(exc)}
        )
        return to_response(exc, correlation_id)

    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": suggestion.model_dump_json(),
    }
