"""
Triage pipeline orchestration.

Runs classification -> retrieval -> drafting -> confidence for one ticket and
assembles the Suggestion. Each stage degrades on its own; the orchestrator
records stage errors, keeps degraded runs away from auto-resolution and only
lets ConfigurationError escape.
"""

from __future__ import annotations

import os
import time
from typing import Iterable, List, Optional, Union
from uuid import uuid4

from config.rules import RuleSet
from config.settings import Settings
from models.classification import ClassificationResult
from models.confidence import ConfidenceAssessment, Recommendation
from models.suggestion import (
    REVIEW_STATUS,
    HealthStatus,
    NextAction,
    OrchestrationTrace,
    ProcessingStatus,
    Review,
    ReviewOutcome,
    StageError,
    Suggestion,
    SuggestionStatus,
)
from models.ticket import Ticket
from repositories.article_repo import ArticleStore, InMemoryArticleStore, SqlArticleStore
from repositories.metrics_repo import InMemoryMetricsStore, MetricsStore, SqlMetricsStore
from repositories.suggestion_repo import InMemorySuggestionStore, SuggestionStore
from services.classification_service import ClassificationService
from services.confidence_service import ConfidenceService
from services.response_service import ResponseService
from services.retrieval_service import RetrievalService
from services.text_provider import TextProvider
from utils.cache_service import Clock, utc_now
from utils.error_handling import ConfigurationError, NotFoundError, ValidationError
from utils.logging_config import get_logger, stage_timer

logger = get_logger(__name__)

FEEDBACK_ARTICLES = 3


class OrchestrationService:
    """Sequential pipeline shared by every handler in the container."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        rules: Optional[RuleSet] = None,
        article_store: Optional[ArticleStore] = None,
        metrics_store: Optional[MetricsStore] = None,
        suggestion_store: Optional[SuggestionStore] = None,
        provider: Optional[TextProvider] = None,
        clock: Clock = utc_now,
    ):
        self.settings = (settings or Settings()).validate()
        if self.settings.generation_enabled and provider is None:
            raise ConfigurationError("Generation is enabled but no text provider is configured")
        self.rules = rules or RuleSet.load(self.settings.rules_path)
        self.suggestions = suggestion_store or InMemorySuggestionStore()
        self._clock = clock

        self.classifier = ClassificationService(self.settings, self.rules, clock=clock)
        self.retriever = RetrievalService(
            self.settings, self.rules, article_store or InMemoryArticleStore(), clock=clock
        )
        self.responder = ResponseService(self.settings, self.rules, provider=provider, clock=clock)
        self.confidence = ConfidenceService(
            self.settings, self.rules, metrics_store or InMemoryMetricsStore(), clock=clock
        )

    @classmethod
    def from_environment(cls) -> "OrchestrationService":
        """Wire adapters from environment variables, defaulting to in-memory stores."""
        from repositories.sql_repo import SqlRepository, engine_from_url, resolve_database_url

        settings = Settings.from_environment().validate()
        rules = RuleSet.load(settings.rules_path)

        article_store: ArticleStore = InMemoryArticleStore()
        metrics_store: MetricsStore = InMemoryMetricsStore()
        db_url = resolve_database_url()
        if db_url:
            repo = SqlRepository(engine_from_url(db_url))
            sql_articles, sql_metrics = SqlArticleStore(repo), SqlMetricsStore(repo)
            sql_articles.create_schema()
            sql_metrics.create_schema()
            article_store, metrics_store = sql_articles, sql_metrics
        else:
            logger.warning("DATABASE_URL not set; using in-memory article and metrics stores")

        suggestion_store: SuggestionStore = InMemorySuggestionStore()
        table_name = os.environ.get("SUGGESTIONS_TABLE")
        if table_name:
            from repositories.dynamodb_repo import DynamoDbSuggestionStore

            suggestion_store = DynamoDbSuggestionStore(table_name)

        provider: Optional[TextProvider] = None
        if settings.generation_enabled:
            from services.bedrock_service import BedrockTextProvider

            provider = BedrockTextProvider(
                model_id=settings.bedrock_model_id, region=settings.bedrock_region
            )

        return cls(
            settings=settings,
            rules=rules,
            article_store=article_store,
            metrics_store=metrics_store,
            suggestion_store=suggestion_store,
            provider=provider,
        )

    def process_ticket(self, ticket: Ticket, trace_id: Optional[str] = None) -> Suggestion:
        """Run the four stages. Returns a Suggestion even when stages fail."""
        trace_id = trace_id or str(uuid4())
        trace = OrchestrationTrace(started_at=self._clock())
        start = time.perf_counter()
        errors: List[StageError] = []

        try:
            with stage_timer(logger, "classification", trace_id=trace_id) as timing:
                classification = self.classifier.classify(ticket)
            trace.classification_ms = timing["duration_ms"]
            _collect(errors, "classification", classification.error)

            with stage_timer(logger, "retrieval", trace_id=trace_id) as timing:
                retrieval = self.retriever.retrieve(
                    f"{ticket.subject} {ticket.description}".strip(),
                    classification.category.value,
                    ticket.tags,
                )
            trace.retrieval_ms = timing["duration_ms"]
            _collect(errors, "retrieval", retrieval.error)
            matches = retrieval.matches

            with stage_timer(logger, "drafting", trace_id=trace_id) as timing:
                draft = self.responder.draft(ticket, classification, matches)
            trace.drafting_ms = timing["duration_ms"]
            _collect(errors, "drafting", draft.error)

            with stage_timer(logger, "confidence", trace_id=trace_id) as timing:
                assessment = self.confidence.assess(ticket, classification, matches, draft)
            trace.confidence_ms = timing["duration_ms"]
            _collect(errors, "confidence", assessment.error)

            suggestion = Suggestion(
                ticket_id=ticket.id,
                trace_id=trace_id,
                classification=classification,
                knowledge_matches=matches,
                draft_response=draft,
                confidence=assessment,
                errors=errors,
                trace=trace,
            )
            self._apply_resolution_policy(suggestion, classification)
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.exception(
                "Pipeline failed", extra={"trace_id": trace_id, "ticket_id": ticket.id}
            )
            suggestion = self._failed_suggestion(ticket, trace_id, trace, errors, exc)

        trace.completed_at = self._clock()
        trace.total_ms = int((time.perf_counter() - start) * 1000)
        suggestion.trace = trace
        suggestion.next_action = next_action_for(suggestion)
        self._save(suggestion)

        logger.info(
            "Ticket triaged",
            extra={
                "trace_id": trace_id,
                "ticket_id": ticket.id,
                "suggestion_id": suggestion.id,
                "status": suggestion.status.value,
                "recommendation": suggestion.confidence.recommendation.value,
                "next_queue": suggestion.next_action.queue,
                "errors": len(suggestion.errors),
                "total_ms": trace.total_ms,
            },
        )
        return suggestion

    def process_batch(self, tickets: Iterable[Ticket]) -> List[Suggestion]:
        """
        Triage tickets one after another, one Suggestion per ticket in input order.

        A ticket whose run fails still gets its FAILED suggestion and the batch
        carries on; only ConfigurationError stops it. Batches larger than
        ``batch_max_size`` are rejected before any ticket runs.
        """
        tickets = list(tickets)
        if len(tickets) > self.settings.batch_max_size:
            raise ValidationError(
                f"Batch of {len(tickets)} exceeds the limit of {self.settings.batch_max_size}"
            )
        batch_id = str(uuid4())
        suggestions = [self.process_ticket(ticket) for ticket in tickets]
        logger.info(
            "Batch triaged",
            extra={
                "batch_id": batch_id,
                "tickets": len(suggestions),
                "failed": sum(s.status is SuggestionStatus.FAILED for s in suggestions),
            },
        )
        return suggestions

    def get_processing_status(self, ticket_id: str) -> ProcessingStatus:
        """Summary of the latest run for a ticket; ``not_processed`` when there is none."""
        suggestion = self.suggestions.latest_for_ticket(ticket_id)
        if suggestion is None:
            return ProcessingStatus(ticket_id=ticket_id)
        return ProcessingStatus(
            ticket_id=ticket_id,
            status=suggestion.status.value,
            suggestion_id=suggestion.id,
            trace_id=suggestion.trace_id,
            recommendation=suggestion.confidence.recommendation,
            calibrated_confidence=suggestion.confidence.calibrated,
            auto_resolve=suggestion.auto_resolve,
            processed_at=suggestion.trace.started_at,
        )

    def _apply_resolution_policy(
        self, suggestion: Suggestion, classification: ClassificationResult
    ) -> None:
        assessment = suggestion.confidence
        if assessment.recommendation is Recommendation.AUTO_RESOLVE and not (
            self.confidence.auto_resolution_allowed(classification)
            and assessment.calibrated >= self.settings.auto_resolve_threshold
        ):
            assessment.recommendation = self.confidence.review_level(assessment.calibrated)

        if suggestion.errors:
            stages = ", ".join(error.stage for error in suggestion.errors)
            if assessment.recommendation is Recommendation.AUTO_RESOLVE:
                assessment.recommendation = Recommendation.HUMAN_REVIEW
            suggestion.auto_resolve_reason = (
                f"Degraded analysis ({stages}); auto-resolution withheld"
            )
            suggestion.status = SuggestionStatus.COMPLETED
            return

        if assessment.recommendation is Recommendation.AUTO_RESOLVE:
            if self.settings.auto_apply_enabled:
                suggestion.auto_resolve = True
                suggestion.status = SuggestionStatus.AUTO_APPLIED
                suggestion.auto_resolve_reason = (
                    f"High confidence ({assessment.calibrated:.2f}) auto-resolution"
                )
                return
            suggestion.auto_resolve_reason = "Auto-resolution recommended; auto-apply disabled"
        suggestion.status = SuggestionStatus.COMPLETED

    def _failed_suggestion(
        self,
        ticket: Ticket,
        trace_id: str,
        trace: OrchestrationTrace,
        errors: List[StageError],
        exc: Exception,
    ) -> Suggestion:
        message = f"Pipeline failed: {exc}"
        return Suggestion(
            ticket_id=ticket.id,
            trace_id=trace_id,
            draft_response=self.responder.fallback_draft(ticket, message),
            confidence=ConfidenceAssessment(recommendation=Recommendation.ESCALATE, error=message),
            status=SuggestionStatus.FAILED,
            auto_resolve_reason=message,
            errors=errors + [StageError(stage="pipeline", message=message)],
            trace=trace,
        )

    def _save(self, suggestion: Suggestion) -> None:
        try:
            self.suggestions.save(suggestion)
        except Exception as exc:
            logger.error(
                "Failed to persist suggestion",
                extra={"suggestion_id": suggestion.id, "error": str(exc)},
            )

    def reindex_knowledge(self) -> int:
        """Rebuild the lexical index from the article store; returns the article count."""
        return self.retriever.reindex()

    def record_review_feedback(
        self,
        suggestion_id: str,
        outcome: Union[ReviewOutcome, str],
        details: Optional[str] = None,
    ) -> Suggestion:
        """Apply a reviewer's verdict to calibration, article stats and the suggestion."""
        try:
            verdict = ReviewOutcome(outcome)
        except ValueError as exc:
            raise ValidationError(f"Unknown review outcome: {outcome}") from exc

        suggestion = self.suggestions.get(suggestion_id)
        if suggestion is None:
            raise NotFoundError(f"Suggestion {suggestion_id} not found")
        if suggestion.review is not None:
            raise ValidationError(
                f"Suggestion {suggestion_id} was already reviewed "
                f"as {suggestion.review.outcome.value}"
            )

        self.confidence.record_feedback(suggestion, verdict)
        helpful = verdict is not ReviewOutcome.INCORRECT
        for match in suggestion.knowledge_matches[:FEEDBACK_ARTICLES]:
            self.retriever.record_article_feedback(match.id, helpful)

        suggestion.status = REVIEW_STATUS[verdict]
        suggestion.review = Review(outcome=verdict, details=details, reviewed_at=self._clock())
        self.suggestions.save(suggestion)
        logger.info(
            "Review recorded",
            extra={"suggestion_id": suggestion_id, "outcome": verdict.value},
        )
        return suggestion

    def get_health(self) -> HealthStatus:
        index_built = self.retriever.index is not None
        return HealthStatus(
            status="healthy" if index_built else "initializing",
            indexed_article_count=self.retriever.indexed_article_count,
            index_built=index_built,
            cache_sizes={
                "retrieval": len(self.retriever.cache),
                "duplicates": self.classifier.cache_size(),
            },
            rate_limiter_state=self.responder.rate_limiter.state(),
            generative_enabled=self.responder.generative_enabled,
            provider_workers_busy=self.responder.busy_workers,
        )

    def shutdown(self) -> None:
        """Release the provider worker pool."""
        self.responder.shutdown()


def _collect(errors: List[StageError], stage: str, error: Optional[str]) -> None:
    if error:
        errors.append(StageError(stage=stage, message=error))


def next_action_for(suggestion: Suggestion) -> NextAction:
    """Queue and priority the helpdesk should apply for the final recommendation."""
    recommendation = suggestion.confidence.recommendation
    if recommendation is Recommendation.AUTO_RESOLVE:
        if suggestion.auto_resolve:
            return NextAction(
                type=recommendation,
                close_ticket=True,
                notify_customer=True,
                reasoning="High confidence resolution sent to the customer",
            )
        return NextAction(
            type=recommendation,
            queue="ai_review",
            reasoning="High confidence; auto-apply disabled so an agent sends the draft",
        )
    if recommendation is Recommendation.AGENT_REVIEW:
        return NextAction(
            type=recommendation,
            queue="ai_review",
            reasoning="Medium confidence; agent reviews the draft",
        )
    if recommendation is Recommendation.HUMAN_REVIEW:
        return NextAction(
            type=recommendation,
            queue="human_review",
            priority="high",
            reasoning="Low confidence; needs human review",
        )
    return NextAction(
        type=Recommendation.ESCALATE,
        queue="escalations",
        priority="urgent",
        escalation_level="senior",
        reasoning="Very low confidence; escalate to a senior agent",
    )
