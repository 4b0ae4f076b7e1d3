"""
Pytest configuration to ensure paths are set up correctly for tests.

This allows imports like `from services import classification_service` to
work when running tests, simulating the Lambda environment where code is
deployed from the src/ directory.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import boto3
import pytest


def _ensure_paths_on_sys_path() -> None:
    """Add src/ to sys.path for Lambda-style imports (from services import ...)."""
    src_root = Path(__file__).resolve().parents[1] / "src"
    src_str = str(src_root)
    if src_str not in sys.path:
        sys.path.insert(0, src_str)


_ensure_paths_on_sys_path()

# Ensure boto3 has offline-friendly defaults so tests do not require AWS access.
os.environ.setdefault("AWS_REGION", "eu-west-2")
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-2")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "test")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")
os.environ.setdefault("AWS_SESSION_TOKEN", "test")
os.environ.setdefault("ENVIRONMENT", "dev")
os.environ.setdefault("BEDROCK_REGION", "eu-west-2")
os.environ.setdefault("MODEL_ID", "anthropic.claude-3-haiku-20240307-v1:0")

# Create a default boto3 session so resources/clients do not error during import.
boto3.setup_default_session(region_name="eu-west-2")

FIXED_NOW = datetime(2024, 6, 3, 10, 30, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock that tests can move forward."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    from config.settings import Settings

    return Settings()


@pytest.fixture
def rules():
    from config.rules import RuleSet

    return RuleSet.default()


@pytest.fixture
def sample_articles():
    from models.knowledge import KnowledgeArticle

    return [
        KnowledgeArticle(
            id="kb-refund",
            title="How refunds work",
            summary="Requesting a refund for a failed or duplicate payment",
            body="<p>If a payment failed or you were charged twice, request a refund "
            "from the billing page. Refunds reach your card in 5 days.</p>",
            category="billing",
            tags=["refund", "payment"],
            view_count=340,
            helpfulness_ratio=0.9,
            updated_at=FIXED_NOW - timedelta(days=3),
        ),
        KnowledgeArticle(
            id="kb-invoice",
            title="Understanding your invoice",
            summary="Line items, taxes and billing periods explained",
            body="Each invoice lists the subscription plan, charges and credits.",
            category="billing",
            tags=["invoice"],
            view_count=80,
            helpfulness_ratio=0.7,
            updated_at=FIXED_NOW - timedelta(days=90),
        ),
        KnowledgeArticle(
            id="kb-password",
            title="Reset your password",
            summary="Use the forgot password link to reset your login",
            body="Click Forgot Password on the login page and follow the email link.",
            category="account",
            tags=["password", "login"],
            view_count=1200,
            helpfulness_ratio=0.95,
            updated_at=FIXED_NOW - timedelta(days=10),
        ),
        KnowledgeArticle(
            id="kb-api-errors",
            title="Troubleshooting API errors",
            summary="Common API error codes and how to fix them",
            body="A 500 error from the API usually means a server timeout. Retry with backoff.",
            category="technical",
            tags=["api", "error"],
            view_count=150,
            helpfulness_ratio=0.6,
            updated_at=FIXED_NOW - timedelta(days=45),
        ),
    ]


@pytest.fixture
def article_store(sample_articles):
    from repositories.article_repo import InMemoryArticleStore

    return InMemoryArticleStore(sample_articles)


@pytest.fixture
def billing_ticket():
    from models.ticket import Ticket

    return Ticket(
        id="T-1001",
        subject="Urgent: payment failed",
        description="My invoice charge did not go through, please refund immediately",
        requester={"first_name": "Ada", "last_name": "Lovelace", "tier": "standard"},
    )


@pytest.fixture
def make_orchestrator(settings, rules, article_store, clock):
    """Factory for a fully in-memory pipeline; keyword overrides replace defaults."""
    from services.orchestration_service import OrchestrationService

    def _make(**overrides):
        kwargs = {
            "settings": settings,
            "rules": rules,
            "article_store": article_store,
            "clock": clock,
        }
        kwargs.update(overrides)
        service = OrchestrationService(**kwargs)
        service.reindex_knowledge()
        return service

    return _make
