"""DynamoDB-backed suggestion store."""

from typing import Any, Dict, Optional

import boto3

from models.suggestion import Suggestion
from repositories.suggestion_repo import SuggestionStore

TICKET_INDEX = "ticket_id-created_at-index"


class DynamoDbSuggestionStore(SuggestionStore):
    """
    One item per suggestion keyed by suggestion_id.

    The full suggestion travels as a JSON string because DynamoDB rejects
    Python floats; ticket_id, created_at and status are copied out so the
    ticket GSI can find the latest run.
    """

    def __init__(self, table_name: str, table: Any = None, ticket_index: str = TICKET_INDEX):
        self.table = table or boto3.resource("dynamodb").Table(table_name)
        self.ticket_index = ticket_index

    def save(self, suggestion: Suggestion) -> None:
        item: Dict[str, Any] = {
            "suggestion_id": suggestion.id,
            "ticket_id": suggestion.ticket_id,
            "created_at": suggestion.trace.started_at.isoformat(),
            "status": suggestion.status.value,
            "payload": suggestion.model_dump_json(),
        }
        self.table.put_item(Item=item)

    def get(self, suggestion_id: str) -> Optional[Suggestion]:
        resp = self.table.get_item(Key={"suggestion_id": suggestion_id})
        item = resp.get("Item")
        if not item:
            return None
        return Suggestion.model_validate_json(item["payload"])

    def latest_for_ticket(self, ticket_id: str) -> Optional[Suggestion]:
        resp = self.table.query(
            IndexName=self.ticket_index,
            KeyConditionExpression="ticket_id = :tid",
            ExpressionAttributeValues={":tid": ticket_id},
            ScanIndexForward=False,
            Limit=1,
        )
        items = resp.get("Items", [])
        if not items:
            return None
        return Suggestion.model_validate_json(items[0]["payload"])
