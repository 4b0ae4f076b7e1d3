"""Health check handler with a pipeline diagnostic snapshot."""

import json
import os
from datetime import datetime, timezone

from handlers.dependencies import get_orchestrator


def lambda_handler(event, context):
    """Return index, cache and rate limiter state."""
    health = get_orchestrator().get_health()
    body = health.model_dump(mode="json")
    body["environment"] = os.environ.get("ENVIRONMENT", "dev")
    body["timestamp"] = datetime.now(timezone.utc).isoformat()
    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }
