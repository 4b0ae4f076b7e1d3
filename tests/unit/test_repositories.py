"""
Repository and provider adapter tests.

SQL stores run against in-memory SQLite; DynamoDB and Bedrock clients are
mocked so no AWS access is needed.

Run with: pytest tests/unit/test_repositories.py -v
"""

import io
import json
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool


@pytest.fixture
def sql_repo():
    from repositories.sql_repo import SqlRepository

    engine = create_engine(
        "sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
    )
    return SqlRepository(engine)


class TestSqlArticleStore:
    """knowledge_articles table."""

    def test_upsert_and_list(self, sql_repo, sample_articles):
        from repositories.article_repo import SqlArticleStore

        store = SqlArticleStore(sql_repo)
        store.create_schema()
        for article in sample_articles:
            store.upsert(article)
        store.upsert(sample_articles[0].model_copy(update={"title": "Refunds explained"}))

        articles = store.list_published_articles()
        by_id = {article.id: article for article in articles}

        assert len(articles) == 4
        assert by_id["kb-refund"].title == "Refunds explained"
        assert by_id["kb-refund"].tags == ["refund", "payment"]
        assert by_id["kb-refund"].updated_at.replace(tzinfo=timezone.utc).date() == (
            sample_articles[0].updated_at.date()
        )

    def test_unpublished_articles_are_skipped(self, sql_repo, sample_articles):
        from repositories.article_repo import SqlArticleStore

        store = SqlArticleStore(sql_repo)
        store.create_schema()
        store.upsert(sample_articles[0])
        sql_repo.execute("UPDATE knowledge_articles SET status = 'draft' WHERE id = :id", {"id": "kb-refund"})

        assert store.list_published_articles() == []

    def test_sql_store_feeds_retrieval(self, sql_repo, sample_articles, settings, rules, clock):
        from repositories.article_repo import SqlArticleStore
        from services.retrieval_service import RetrievalService

        store = SqlArticleStore(sql_repo)
        store.create_schema()
        for article in sample_articles:
            store.upsert(article)

        retriever = RetrievalService(settings, rules, store, clock=clock)
        assert retriever.reindex() == 4
        assert retriever.search("refund my failed payment", "billing")[0].id == "kb-refund"


class TestSqlMetricsStore:
    def test_defaults_until_saved(self, sql_repo):
        from models.metrics import PerformanceMetrics
        from repositories.metrics_repo import SqlMetricsStore

        store = SqlMetricsStore(sql_repo)
        store.create_schema()
        assert store.load() == PerformanceMetrics()

        metrics = store.load()
        metrics.classification_accuracy = 0.9
        metrics.calibration_bins[0].accuracy = 0.2
        store.save(metrics)
        store.save(metrics)

        loaded = store.load()
        assert loaded.classification_accuracy == pytest.approx(0.9)
        assert loaded.calibration_bins[0].accuracy == pytest.approx(0.2)
        assert sql_repo.fetch_one("SELECT COUNT(*) AS n FROM triage_metrics")["n"] == 1


class TestInMemoryStores:
    def test_metrics_store_returns_copies(self):
        from repositories.metrics_repo import InMemoryMetricsStore

        store = InMemoryMetricsStore()
        metrics = store.load()
        metrics.classification_accuracy = 0.1
        assert store.load().classification_accuracy == pytest.approx(0.85)

    def test_suggestion_store_returns_copies(self):
        from models.suggestion import OrchestrationTrace, Suggestion, SuggestionStatus
        from repositories.suggestion_repo import InMemorySuggestionStore

        store = InMemorySuggestionStore()
        suggestion = Suggestion(
            ticket_id="T-1",
            trace_id="trace",
            trace=OrchestrationTrace(started_at=datetime.now(timezone.utc)),
        )
        store.save(suggestion)
        suggestion.status = SuggestionStatus.FAILED

        assert store.get(suggestion.id).status is SuggestionStatus.PENDING
        assert store.get("missing") is None
        assert len(store) == 1

    def test_suggestion_store_latest_for_ticket(self):
        from models.suggestion import OrchestrationTrace, Suggestion
        from repositories.suggestion_repo import InMemorySuggestionStore

        store = InMemorySuggestionStore()
        trace = OrchestrationTrace(started_at=datetime.now(timezone.utc))
        first = Suggestion(ticket_id="T-1", trace_id="a", trace=trace)
        second = Suggestion(ticket_id="T-1", trace_id="b", trace=trace)
        store.save(first)
        store.save(second)
        store.save(first)

        assert store.latest_for_ticket("T-1").id == second.id
        assert store.latest_for_ticket("T-2") is None

    def test_article_store_add_remove(self, article_store):
        article_store.remove("kb-refund")
        assert "kb-refund" not in [a.id for a in article_store.list_published_articles()]


class TestDynamoDbSuggestionStore:
    """Suggestion persistence with a mocked table."""

    def test_save_and_get(self):
        from models.suggestion import OrchestrationTrace, Suggestion
        from repositories.dynamodb_repo import DynamoDbSuggestionStore

        table = MagicMock()
        store = DynamoDbSuggestionStore("suggestions", table=table)
        suggestion = Suggestion(
            ticket_id="T-9",
            trace_id="trace",
            trace=OrchestrationTrace(started_at=datetime.now(timezone.utc)),
        )

        store.save(suggestion)
        item = table.put_item.call_args.kwargs["Item"]
        assert item["suggestion_id"] == suggestion.id
        assert item["ticket_id"] == "T-9"
        assert item["status"] == "pending"

        table.get_item.return_value = {"Item": item}
        loaded = store.get(suggestion.id)
        table.get_item.assert_called_with(Key={"suggestion_id": suggestion.id})
        assert loaded.id == suggestion.id
        assert loaded.trace.started_at == suggestion.trace.started_at

    def test_latest_for_ticket_queries_index(self):
        from models.suggestion import OrchestrationTrace, Suggestion
        from repositories.dynamodb_repo import TICKET_INDEX, DynamoDbSuggestionStore

        table = MagicMock()
        store = DynamoDbSuggestionStore("suggestions", table=table)
        suggestion = Suggestion(
            ticket_id="T-9",
            trace_id="trace",
            trace=OrchestrationTrace(started_at=datetime(2024, 6, 3, 10, 30, tzinfo=timezone.utc)),
        )
        store.save(suggestion)
        item = table.put_item.call_args.kwargs["Item"]
        assert item["created_at"] == "2024-06-03T10:30:00+00:00"

        table.query.return_value = {"Items": [item]}
        assert store.latest_for_ticket("T-9").id == suggestion.id
        kwargs = table.query.call_args.kwargs
        assert kwargs["IndexName"] == TICKET_INDEX
        assert kwargs["ExpressionAttributeValues"] == {":tid": "T-9"}
        assert kwargs["ScanIndexForward"] is False
        assert kwargs["Limit"] == 1

        table.query.return_value = {"Items": []}
        assert store.latest_for_ticket("T-10") is None

    def test_missing_item(self):
        from repositories.dynamodb_repo import DynamoDbSuggestionStore

        table = MagicMock()
        table.get_item.return_value = {}
        assert DynamoDbSuggestionStore("suggestions", table=table).get("x") is None


class TestResolveDatabaseUrl:
    def test_database_url_wins(self, monkeypatch):
        from repositories.sql_repo import resolve_database_url

        monkeypatch.setenv("DATABASE_URL", "sqlite://")
        assert resolve_database_url() == "sqlite://"

    def test_built_from_secret(self, monkeypatch):
        from repositories.sql_repo import resolve_database_url

        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setenv("DB_SECRET_ARN", "arn:aws:secretsmanager:eu-west-2:1:secret:db")
        secret = {"host": "db.local", "username": "triage", "password": "pw", "dbname": "kb"}

        with patch("repositories.sql_repo.boto3") as mock_boto3:
            mock_boto3.client.return_value.get_secret_value.return_value = {
                "SecretString": json.dumps(secret)
            }
            url = resolve_database_url()

        assert url == "postgresql+psycopg2://triage:pw@db.local:5432/kb"

    def test_unavailable_secret(self, monkeypatch):
        from repositories.sql_repo import resolve_database_url

        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setenv("DB_SECRET_ARN", "arn:aws:secretsmanager:eu-west-2:1:secret:db")

        with patch("repositories.sql_repo.boto3") as mock_boto3:
            mock_boto3.client.return_value.get_secret_value.side_effect = RuntimeError("denied")
            assert resolve_database_url() is None


class TestBedrockTextProvider:
    """Bedrock adapter with a mocked runtime client."""

    @staticmethod
    def _response(payload):
        return {"body": io.BytesIO(json.dumps(payload).encode())}

    def test_complete_sends_messages_request(self):
        from services.bedrock_service import BedrockTextProvider

        client = MagicMock()
        client.invoke_model.return_value = self._response(
            {"content": [{"type": "text", "text": " Try resetting your password. "}]}
        )
        provider = BedrockTextProvider(model_id="anthropic.claude-3-haiku", client=client)

        assert provider.complete("prompt", 200, 0.2) == "Try resetting your password."
        kwargs = client.invoke_model.call_args.kwargs
        body = json.loads(kwargs["body"])
        assert kwargs["modelId"] == "anthropic.claude-3-haiku"
        assert body["max_tokens"] == 200
        assert body["messages"][0]["content"][0]["text"] == "prompt"

    def test_output_style_payload(self):
        from services.bedrock_service import BedrockTextProvider

        client = MagicMock()
        client.invoke_model.return_value = self._response(
            {"output": {"message": {"content": [{"text": "Hello"}]}}}
        )
        provider = BedrockTextProvider(model_id="amazon.nova-lite", client=client)
        assert provider.complete("prompt", 100, 0.5) == "Hello"

    def test_client_failure_is_provider_error(self):
        from services.bedrock_service import BedrockTextProvider
        from utils.error_handling import ProviderError

        client = MagicMock()
        client.invoke_model.side_effect = RuntimeError("ThrottlingException")
        provider = BedrockTextProvider(model_id="m", client=client)

        with pytest.raises(ProviderError) as excinfo:
            provider.complete("prompt", 100, 0.5)
        assert excinfo.value.provider == "bedrock"

    def test_missing_credentials_is_configuration_error(self):
        from botocore.exceptions import NoCredentialsError

        from services.bedrock_service import BedrockTextProvider
        from utils.error_handling import ConfigurationError, ProviderError

        client = MagicMock()
        client.invoke_model.side_effect = NoCredentialsError()
        provider = BedrockTextProvider(model_id="m", client=client)

        with pytest.raises(ConfigurationError) as excinfo:
            provider.complete("prompt", 100, 0.5)
        assert not isinstance(excinfo.value, ProviderError)

    def test_empty_completion_is_provider_error(self):
        from services.bedrock_service import BedrockTextProvider
        from utils.error_handling import ProviderError

        client = MagicMock()
        client.invoke_model.return_value = self._response({"content": []})
        with pytest.raises(ProviderError):
            BedrockTextProvider(model_id="m", client=client).complete("prompt", 100, 0.5)

    def test_missing_model_id(self, monkeypatch):
        from services.bedrock_service import BedrockTextProvider
        from utils.error_handling import ConfigurationError

        monkeypatch.delenv("MODEL_ID", raising=False)
        with pytest.raises(ConfigurationError):
            BedrockTextProvider(client=MagicMock())
