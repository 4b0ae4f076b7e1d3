"""Knowledge reindex handler for POST /kb/reindex (manual or scheduled)."""

import json

from handlers.dependencies import get_orchestrator
from utils.logging_config import get_logger

logger = get_logger(__name__)


def lambda_handler(event, context):
    """Rebuild the lexical index from the article store."""
    try:
        count = get_orchestrator().reindex_knowledge()
        logger.info("Knowledge reindexed", extra={"article_count": count})
        return {
            "statusCode": 200,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({"status": "reindexed", "article_count": count}),
        }
    except Exception as exc:
        logger.exception("Knowledge reindex failed")
        return {
            "statusCode": 500,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({"message": "Knowledge reindex failed", "error": str(exc)}),
        }
