"""
Single entrypoint Lambda that routes HTTP API requests to thin handler modules.

One Lambda keeps the index and caches warm across routes.
"""

import json
import re
from typing import Callable, Dict, Tuple

from handlers import (
    batch,
    feedback,
    health_check,
    kb_sync,
    orchestration,
    processing_status,
)


def _response(status: int, body: Dict) -> Dict:
    """Format a JSON API Gateway HTTP API response."""
    return {
        "statusCode": status,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


ROUTES: Tuple[Tuple[str, "re.Pattern[str]", Callable], ...] = (
    ("GET", re.compile(r"^/health/?$"), health_check.lambda_handler),
    ("POST", re.compile(r"^/tickets/triage/?$"), orchestration.lambda_handler),
    ("POST", re.compile(r"^/tickets/triage/batch/?$"), batch.lambda_handler),
    ("GET", re.compile(r"^/tickets/[^/]+/status/?$"), processing_status.lambda_handler),
    ("POST", re.compile(r"^/kb/reindex/?$"), kb_sync.lambda_handler),
    ("POST", re.compile(r"^/suggestions/[^/]+/feedback/?$"), feedback.lambda_handler),
)


def lambda_handler(event, context):
    """Entry point invoked by API Gateway HTTP API."""
    http = event.get("requestContext", {}).get("http", {})
    method = http.get("method", "").upper()
    path = http.get("path", "")

    for route_method, pattern, handler in ROUTES:
        if method == route_method and pattern.match(path):
            return handler(event, context)

    return _response(404, {"message": "Route not found", "route": f"{method} {path}"})
