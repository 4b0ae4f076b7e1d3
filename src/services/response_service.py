"""
Response drafting service.

Picks a drafting strategy per ticket: a matching template when classification
is confident, the generative provider when one is configured, otherwise the
closest template. Provider calls are rate limited and time bounded; when they
fail the draft degrades to a template instead of failing the run.
"""

from __future__ import annotations

import time
from concurrent.futures import Executor, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from threading import Lock
from typing import List, Optional

from config.rules import RuleSet
from config.settings import Settings
from models.classification import ClassificationResult
from models.knowledge import KnowledgeMatch
from models.response import DraftResponse, DraftStrategy
from models.ticket import RequesterTier, Ticket
from services.templates import TemplateLibrary
from services.text_provider import TextProvider
from utils.cache_service import Clock, utc_now
from utils.error_handling import ConfigurationError, ProviderError, ProviderTimeout
from utils.logging_config import get_logger
from utils.rate_limiter import RateLimiter
from utils.text import clamp, count_keywords

logger = get_logger(__name__)

GENERATIVE_CONFIDENCE = 0.8
HYBRID_BONUS = 0.1
HYBRID_CAP = 0.95
HYBRID_TEMPERATURE = 0.5
FALLBACK_CONFIDENCE = 0.3
TRUNCATION_PENALTY = 0.9
TOP_ARTICLES = 3
DEFAULT_CUSTOMER_NAME = "Valued Customer"


class ResponseService:
    """Draft a candidate reply from classification and knowledge matches."""

    def __init__(
        self,
        settings: Settings,
        rules: RuleSet,
        provider: Optional[TextProvider] = None,
        templates: Optional[TemplateLibrary] = None,
        clock: Clock = utc_now,
        executor: Optional[Executor] = None,
    ):
        self.settings = settings
        self.rules = rules
        self.provider = provider
        self.templates = templates or TemplateLibrary()
        self.rate_limiter = RateLimiter(
            settings.generation_rate_limit_per_minute,
            clock=clock,
            name=provider.name if provider else "provider",
        )
        self._busy = 0
        self._busy_lock = Lock()
        self._executor = executor
        if provider is not None and executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=settings.provider_workers, thread_name_prefix="text-provider"
            )

    @property
    def generative_enabled(self) -> bool:
        return self.provider is not None

    @property
    def busy_workers(self) -> int:
        """Provider calls still running, including ones the caller stopped waiting on."""
        with self._busy_lock:
            return self._busy

    def _release_worker(self, _future) -> None:
        with self._busy_lock:
            self._busy -= 1

    def draft(
        self,
        ticket: Ticket,
        classification: ClassificationResult,
        matches: List[KnowledgeMatch],
    ) -> DraftResponse:
        """Never raises except for configuration mistakes; worst case is the fallback reply."""
        start = time.perf_counter()
        try:
            strategy = self.select_strategy(classification, matches)
            if strategy is DraftStrategy.GENERATIVE:
                draft = self._generative(ticket, classification, matches)
            elif strategy is DraftStrategy.HYBRID:
                draft = self._hybrid(ticket, classification, matches)
            else:
                draft = self._template(ticket, classification, matches)
            draft = self._post_process(draft, ticket)
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.exception("Drafting failed; using fallback", extra={"ticket_id": ticket.id})
            draft = self.fallback_draft(ticket, f"Drafting failed: {exc}")

        draft.generation_time_ms = int((time.perf_counter() - start) * 1000)
        draft.knowledge_used = len(matches)
        logger.info(
            "Draft ready",
            extra={
                "ticket_id": ticket.id,
                "strategy": draft.strategy.value,
                "confidence": round(draft.confidence, 3),
                "duration_ms": draft.generation_time_ms,
            },
        )
        return draft

    def select_strategy(
        self, classification: ClassificationResult, matches: List[KnowledgeMatch]
    ) -> DraftStrategy:
        category = classification.category.value
        priority = classification.priority.value.value
        if (
            classification.confidence > self.settings.template_confidence_threshold
            and self.templates.exact_match(category, priority) is not None
        ):
            return DraftStrategy.TEMPLATE
        if self.provider is not None and matches:
            return DraftStrategy.GENERATIVE
        if self.provider is not None:
            return DraftStrategy.HYBRID
        return DraftStrategy.TEMPLATE

    def _template(
        self,
        ticket: Ticket,
        classification: ClassificationResult,
        matches: List[KnowledgeMatch],
    ) -> DraftResponse:
        category = classification.category.value
        template, score = self.templates.best_match(category, classification.priority.value.value)
        content = self.templates.render(template, self._variables(ticket, category, matches))
        return DraftResponse(
            content=content,
            strategy=DraftStrategy.TEMPLATE,
            confidence=clamp(template.confidence * score),
            source_id=template.id,
        )

    def _generative(
        self,
        ticket: Ticket,
        classification: ClassificationResult,
        matches: List[KnowledgeMatch],
    ) -> DraftResponse:
        prompt = self._build_prompt(ticket, classification, matches)
        try:
            content = self._call_provider(prompt, self.settings.generation_temperature)
        except ProviderError as exc:
            logger.warning(
                "Generative draft failed; degrading to template",
                extra={"ticket_id": ticket.id, "error": str(exc)},
            )
            draft = self._template(ticket, classification, matches)
            draft.error = f"{type(exc).__name__}: {exc}"
            return draft
        return DraftResponse(
            content=content.strip(),
            strategy=DraftStrategy.GENERATIVE,
            confidence=GENERATIVE_CONFIDENCE,
            source_id=self.provider.name,
        )

    def _hybrid(
        self,
        ticket: Ticket,
        classification: ClassificationResult,
        matches: List[KnowledgeMatch],
    ) -> DraftResponse:
        """Template first, then ask the provider to personalise it."""
        draft = self._template(ticket, classification, matches)
        prompt = (
            "Please enhance this customer support response to make it more "
            "personalized and helpful:\n\n"
            f"Original response:\n{draft.content}\n\n"
            f"Customer issue:\n{ticket.subject}\n{ticket.description}\n\n"
            "Make it more empathetic and specific to their issue while keeping it professional."
        )
        try:
            content = self._call_provider(prompt, HYBRID_TEMPERATURE)
        except ProviderError as exc:
            logger.warning(
                "Hybrid enhancement failed; keeping template draft",
                extra={"ticket_id": ticket.id, "error": str(exc)},
            )
            draft.error = f"{type(exc).__name__}: {exc}"
            return draft
        return DraftResponse(
            content=content.strip(),
            strategy=DraftStrategy.HYBRID,
            confidence=min(draft.confidence + HYBRID_BONUS, HYBRID_CAP),
            source_id=draft.source_id,
        )

    def _call_provider(self, prompt: str, temperature: float) -> str:
        """Rate limit, then wait on a worker thread for at most the configured timeout."""
        self.rate_limiter.acquire()
        with self._busy_lock:
            self._busy += 1
        try:
            future = self._executor.submit(
                self.provider.complete, prompt, self.settings.generation_max_tokens, temperature
            )
        except RuntimeError as exc:
            # Executor already shut down.
            self._release_worker(None)
            raise ProviderError(str(exc), provider=self.provider.name) from exc
        future.add_done_callback(self._release_worker)
        try:
            return future.result(timeout=self.settings.generation_timeout_seconds)
        except FutureTimeout as exc:
            future.cancel()
            raise ProviderTimeout(
                f"{self.provider.name} did not answer within "
                f"{self.settings.generation_timeout_seconds}s",
                provider=self.provider.name,
            ) from exc
        except (ProviderError, ConfigurationError):
            raise
        except Exception as exc:
            raise ProviderError(str(exc), provider=self.provider.name) from exc

    def _build_prompt(
        self,
        ticket: Ticket,
        classification: ClassificationResult,
        matches: List[KnowledgeMatch],
    ) -> str:
        lines = [
            "Customer Support Request:",
            "",
            f"Subject: {ticket.subject}",
            f"Description: {ticket.description}",
            f"Customer: {self._customer_name(ticket)}",
            f"Priority: {classification.priority.value.value}",
            f"Category: {classification.category.value}",
            "",
        ]
        if matches:
            lines.append("Relevant Knowledge Base Articles:")
            lines.extend(f"- {match.title}: {match.summary}" for match in matches[:TOP_ARTICLES])
            lines.append("")
        lines.append(
            "Please provide a helpful, professional response that addresses the "
            "customer's issue. Include specific steps or solutions when possible."
        )
        return "\n".join(lines)

    def _variables(self, ticket: Ticket, category: str, matches: List[KnowledgeMatch]) -> dict:
        return {
            "customer_name": self._customer_name(ticket),
            "agent_name": self.settings.agent_name,
            "knowledge_articles": [
                {"title": match.title, "url": match.url, "summary": match.summary}
                for match in matches[:TOP_ARTICLES]
            ],
            "troubleshooting_steps": self.rules.steps_for(category),
            "account_locked": bool(count_keywords(ticket.text, self.rules.lock_keywords)),
            "ticket_subject": ticket.subject,
        }

    def _post_process(self, draft: DraftResponse, ticket: Ticket) -> DraftResponse:
        if self.settings.personalize and ticket.tier in (
            RequesterTier.PREMIUM,
            RequesterTier.ENTERPRISE,
        ):
            draft.content = draft.content.replace("Support Team", "Premium Support Team", 1)

        max_length = self.settings.response_max_length
        if len(draft.content) > max_length:
            draft.content = draft.content[: max_length - 3] + "..."
            draft.confidence = clamp(draft.confidence * TRUNCATION_PENALTY)
        return draft

    def fallback_draft(self, ticket: Ticket, error: Optional[str] = None) -> DraftResponse:
        """Short canned acknowledgement used when drafting cannot proceed."""
        content = (
            f"Hello {self._customer_name(ticket)},\n\n"
            "Thank you for contacting us. We have received your request and one of "
            "our support agents will review it shortly.\n\n"
            "We aim to respond to all inquiries within 24 hours. If your issue is "
            "urgent, please don't hesitate to contact us directly.\n\n"
            "Best regards,\nSupport Team"
        )
        return DraftResponse(
            content=content,
            strategy=DraftStrategy.FALLBACK,
            confidence=FALLBACK_CONFIDENCE,
            source_id="fallback",
            error=error,
        )

    @staticmethod
    def _customer_name(ticket: Ticket) -> str:
        return ticket.requester.full_name or DEFAULT_CUSTOMER_NAME

    def shutdown(self) -> None:
        """Stop accepting provider calls; running ones finish in the background."""
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
