"""
Lambda handler tests against a prebuilt in-memory pipeline.

Run with: pytest tests/unit/test_handlers.py -v
"""

import json

import pytest


def _event(method, path, body=None, path_parameters=None):
    event = {"requestContext": {"http": {"method": method, "path": path}}}
    if body is not None:
        event["body"] = body if isinstance(body, str) else json.dumps(body)
    if path_parameters is not None:
        event["pathParameters"] = path_parameters
    return event


@pytest.fixture
def service(make_orchestrator):
    from handlers.dependencies import reset_orchestrator

    orchestrator = make_orchestrator()
    reset_orchestrator(orchestrator)
    yield orchestrator
    reset_orchestrator()


TICKET = {
    "id": "T-1001",
    "subject": "Urgent: payment failed",
    "description": "My invoice charge did not go through, please refund immediately",
    "requester": {"first_name": "Ada", "last_name": "Lovelace"},
    "attachments": [],
}


class TestRouter:
    """Test the main router."""

    def test_unknown_route(self):
        from handlers.main import lambda_handler

        result = lambda_handler(_event("GET", "/unknown/path"), None)

        assert result["statusCode"] == 404
        body = json.loads(result["body"])
        assert body["message"] == "Route not found"
        assert body["route"] == "GET /unknown/path"

    def test_wrong_method_is_not_found(self, service):
        from handlers.main import lambda_handler

        assert lambda_handler(_event("GET", "/tickets/triage"), None)["statusCode"] == 404

    def test_routes_health(self, service):
        from handlers.main import lambda_handler

        result = lambda_handler(_event("GET", "/health"), None)

        assert result["statusCode"] == 200
        body = json.loads(result["body"])
        assert body["status"] == "healthy"
        assert body["indexed_article_count"] == 4
        assert body["environment"] == "dev"
        assert "timestamp" in body


class TestTriageHandler:
    """POST /tickets/triage."""

    def test_triage_returns_suggestion(self, service):
        from handlers.main import lambda_handler

        result = lambda_handler(_event("POST", "/tickets/triage", TICKET), None)

        assert result["statusCode"] == 200
        body = json.loads(result["body"])
        assert body["ticket_id"] == "T-1001"
        assert body["classification"]["category"]["value"] == "billing"
        assert body["classification"]["priority"]["value"] == "urgent"
        assert body["status"] == "completed"
        assert body["auto_resolve"] is False
        assert service.suggestions.get(body["id"]) is not None

    def test_invalid_json_is_bad_request(self, service):
        from handlers.orchestration import lambda_handler

        result = lambda_handler({"body": "{not json"}, None)

        assert result["statusCode"] == 400
        body = json.loads(result["body"])
        assert "correlation_id" in body

    def test_invalid_ticket_is_bad_request(self, service):
        from handlers.orchestration import lambda_handler

        result = lambda_handler({"body": json.dumps({"subject": "x", "attachment_count": -2})}, None)
        assert result["statusCode"] == 400

    def test_configuration_error_maps_to_500(self, service, monkeypatch):
        from handlers.orchestration import lambda_handler
        from utils.error_handling import ConfigurationError

        def broken(ticket, trace_id=None):
            raise ConfigurationError("MODEL_ID is required")

        monkeypatch.setattr(service, "process_ticket", broken)
        result = lambda_handler({"body": json.dumps(TICKET)}, None)

        assert result["statusCode"] == 500
        assert json.loads(result["body"])["message"] == "MODEL_ID is required"


class TestFeedbackHandler:
    """POST /suggestions/{id}/feedback."""

    def test_feedback_updates_status(self, service, billing_ticket):
        from handlers.main import lambda_handler

        suggestion = service.process_ticket(billing_ticket)
        result = lambda_handler(
            _event(
                "POST",
                f"/suggestions/{suggestion.id}/feedback",
                {"outcome": "correct", "details": "Sent unchanged"},
            ),
            None,
        )

        assert result["statusCode"] == 200
        body = json.loads(result["body"])
        assert body["suggestion_id"] == suggestion.id
        assert body["status"] == "approved"

    def test_path_parameters_take_precedence(self, service, billing_ticket):
        from handlers.feedback import lambda_handler

        suggestion = service.process_ticket(billing_ticket)
        result = lambda_handler(
            _event("POST", "/ignored", {"outcome": "partial"}, {"id": suggestion.id}), None
        )
        assert json.loads(result["body"])["status"] == "modified"

    def test_unknown_suggestion_is_404(self, service):
        from handlers.main import lambda_handler

        result = lambda_handler(
            _event("POST", "/suggestions/nope/feedback", {"outcome": "correct"}), None
        )

        assert result["statusCode"] == 404
        assert "correlation_id" in json.loads(result["body"])

    @pytest.mark.parametrize("body", [{}, {"outcome": "great"}, "{broken", "[]", "1", "\"correct\""])
    def test_invalid_feedback_is_422(self, service, billing_ticket, body):
        from handlers.main import lambda_handler

        suggestion = service.process_ticket(billing_ticket)
        result = lambda_handler(
            _event("POST", f"/suggestions/{suggestion.id}/feedback", body), None
        )
        assert result["statusCode"] == 422

    def test_json_array_body_is_rejected(self, service):
        from handlers.feedback import lambda_handler

        result = lambda_handler(_event("POST", "/suggestions/abc/feedback", "[]"), None)

        assert result["statusCode"] == 422
        assert json.loads(result["body"])["message"] == "Body must be a JSON object"

    def test_second_review_is_422(self, service, billing_ticket):
        from handlers.main import lambda_handler

        suggestion = service.process_ticket(billing_ticket)
        path = f"/suggestions/{suggestion.id}/feedback"
        lambda_handler(_event("POST", path, {"outcome": "correct"}), None)

        result = lambda_handler(_event("POST", path, {"outcome": "correct"}), None)
        assert result["statusCode"] == 422


class TestBatchHandler:
    """POST /tickets/triage/batch."""

    def test_batch_with_invalid_entry(self, service):
        from handlers.main import lambda_handler

        tickets = [
            TICKET,
            {"subject": "x", "attachment_count": -2},
            {"id": "T-2001", "subject": "Cannot sign in", "description": "Forgot my password"},
        ]
        result = lambda_handler(_event("POST", "/tickets/triage/batch", {"tickets": tickets}), None)

        assert result["statusCode"] == 200
        body = json.loads(result["body"])
        assert body["processed"] == 2
        assert body["rejected"] == 1
        assert [r["index"] for r in body["results"]] == [0, 1, 2]
        assert body["results"][0]["suggestion"]["ticket_id"] == "T-1001"
        assert "error" in body["results"][1] and "suggestion" not in body["results"][1]
        assert body["results"][2]["suggestion"]["ticket_id"] == "T-2001"

    @pytest.mark.parametrize("body", ["[]", {"tickets": []}, {"tickets": "T-1"}, "{broken"])
    def test_malformed_batch_is_422(self, service, body):
        from handlers.batch import lambda_handler

        result = lambda_handler(_event("POST", "/tickets/triage/batch", body), None)
        assert result["statusCode"] == 422

    def test_oversized_batch_is_422(self, service):
        from handlers.batch import lambda_handler

        tickets = [dict(TICKET, id=f"T-{n}") for n in range(service.settings.batch_max_size + 1)]
        result = lambda_handler(_event("POST", "/tickets/triage/batch", {"tickets": tickets}), None)

        assert result["statusCode"] == 422
        assert len(service.suggestions) == 0


class TestProcessingStatusHandler:
    """GET /tickets/{id}/status."""

    def test_not_processed(self, service):
        from handlers.main import lambda_handler

        result = lambda_handler(_event("GET", "/tickets/T-404/status"), None)

        assert result["statusCode"] == 200
        assert json.loads(result["body"])["status"] == "not_processed"

    def test_latest_run(self, service, billing_ticket):
        from handlers.main import lambda_handler

        suggestion = service.process_ticket(billing_ticket)
        result = lambda_handler(_event("GET", "/tickets/T-1001/status"), None)

        body = json.loads(result["body"])
        assert body["suggestion_id"] == suggestion.id
        assert body["status"] == "completed"
        assert body["recommendation"] == suggestion.confidence.recommendation.value


class TestKbSyncHandler:
    """POST /kb/reindex."""

    def test_reindex(self, service, article_store):
        from handlers.main import lambda_handler
        from models.knowledge import KnowledgeArticle

        article_store.add(KnowledgeArticle(id="kb-new", title="Exporting reports"))
        result = lambda_handler(_event("POST", "/kb/reindex"), None)

        assert result["statusCode"] == 200
        assert json.loads(result["body"]) == {"status": "reindexed", "article_count": 5}

    def test_reindex_failure_is_500(self, service, monkeypatch):
        from handlers.kb_sync import lambda_handler

        def broken():
            raise RuntimeError("article table missing")

        monkeypatch.setattr(service, "reindex_knowledge", broken)
        result = lambda_handler({}, None)

        assert result["statusCode"] == 500
        assert json.loads(result["body"])["error"] == "article table missing"


class TestDependencies:
    def test_lazy_build_from_environment(self, monkeypatch):
        from handlers import dependencies

        for name in ("DATABASE_URL", "DB_SECRET_ARN", "SUGGESTIONS_TABLE", "GENERATION_ENABLED"):
            monkeypatch.delenv(name, raising=False)
        dependencies.reset_orchestrator()
        try:
            first = dependencies.get_orchestrator()
            assert dependencies.get_orchestrator() is first
            assert first.get_health().index_built is True
        finally:
            dependencies.reset_orchestrator()
