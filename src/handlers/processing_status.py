"""Processing status handler for GET /tickets/{id}/status."""

import json
from typing import Dict, Optional

from handlers.dependencies import get_orchestrator


def _ticket_id(event) -> Optional[str]:
    params = event.get("pathParameters") or {}
    if params.get("id"):
        return params["id"]
    path = event.get("requestContext", {}).get("http", {}).get("path", "")
    parts = [part for part in path.split("/") if part]
    # /tickets/{id}/status
    if len(parts) == 3 and parts[0] == "tickets" and parts[2] == "status":
        return parts[1]
    return None


def lambda_handler(event, context) -> Dict:
    """Latest triage outcome for a ticket; ``not_processed`` when it never ran."""
    ticket_id = _ticket_id(event)
    if not ticket_id:
        return {
            "statusCode": 400,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({"message": "ticket id is required"}),
        }
    status = get_orchestrator().get_processing_status(ticket_id)
    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": status.model_dump_json(),
    }
