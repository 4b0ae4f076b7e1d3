"""
Confidence fusion and calibration.

Component scores (classification, retrieval, drafting, context) and quality
factors are fused into one overall score, mapped through the calibration
table learned from reviewer feedback, and turned into a recommendation.
"""

from __future__ import annotations

from threading import Lock
from typing import List

from config.rules import RuleSet
from config.settings import Settings
from models.classification import ClassificationResult
from models.confidence import (
    ConfidenceAssessment,
    ConfidenceComponents,
    QualityFactors,
    Recommendation,
)
from models.knowledge import KnowledgeMatch
from models.metrics import PerformanceMetrics
from models.response import DraftResponse, DraftStrategy
from models.suggestion import ReviewOutcome, Suggestion
from models.ticket import Priority, RequesterTier, Ticket, priority_rank
from repositories.metrics_repo import MetricsStore
from utils.cache_service import Clock, utc_now
from utils.logging_config import get_logger
from utils.text import clamp, count_keywords

logger = get_logger(__name__)

COMPONENT_WEIGHTS = {
    "classification": 0.25,
    "knowledge_retrieval": 0.30,
    "response_drafting": 0.25,
    "contextual": 0.20,
}
FACTOR_WEIGHTS = {
    "data_quality": 0.30,
    "historical_performance": 0.25,
    "complexity": 0.25,
    "coverage": 0.20,
}
COMPONENT_SHARE = 0.7
FACTOR_SHARE = 0.3

STRATEGY_MULTIPLIERS = {
    DraftStrategy.TEMPLATE: 1.0,
    DraftStrategy.HYBRID: 0.95,
    DraftStrategy.GENERATIVE: 0.9,
    DraftStrategy.FALLBACK: 0.3,
}

AGENT_REVIEW_THRESHOLD = 0.6
HUMAN_REVIEW_THRESHOLD = 0.3
NO_MATCH_SCORE = 0.1

OUTCOME_TARGETS = {
    ReviewOutcome.CORRECT: 1.0,
    ReviewOutcome.PARTIAL: 0.5,
    ReviewOutcome.INCORRECT: 0.0,
}


class ConfidenceService:
    """Score how much a pipeline run can be trusted."""

    def __init__(
        self,
        settings: Settings,
        rules: RuleSet,
        metrics_store: MetricsStore,
        clock: Clock = utc_now,
    ):
        self.settings = settings
        self.rules = rules
        self.metrics_store = metrics_store
        self._clock = clock
        self._feedback_lock = Lock()

    def assess(
        self,
        ticket: Ticket,
        classification: ClassificationResult,
        matches: List[KnowledgeMatch],
        draft: DraftResponse,
    ) -> ConfidenceAssessment:
        """Never raises; a failure yields an all-zero assessment that escalates."""
        try:
            metrics = self.metrics_store.load()
            components = ConfidenceComponents(
                classification=self.classification_score(classification, metrics),
                knowledge_retrieval=self.retrieval_score(matches, metrics),
                response_drafting=self.drafting_score(draft, metrics),
                contextual=self.contextual_score(ticket, classification),
            )
            factors = QualityFactors(
                data_quality=self.data_quality(ticket),
                historical_performance=self.historical_performance(classification, metrics),
                complexity=self.complexity(ticket, classification),
                coverage=self.coverage(matches),
            )
            overall = self.fuse(components, factors)
            calibrated = self.calibrate(overall, metrics)
            recommendation = self.recommend(calibrated, classification)
        except Exception as exc:
            logger.exception("Confidence assessment failed", extra={"ticket_id": ticket.id})
            return ConfidenceAssessment(
                recommendation=Recommendation.ESCALATE,
                error=f"Confidence assessment failed: {exc}",
            )

        logger.info(
            "Confidence assessed",
            extra={
                "ticket_id": ticket.id,
                "overall": round(overall, 3),
                "calibrated": round(calibrated, 3),
                "recommendation": recommendation.value,
            },
        )
        return ConfidenceAssessment(
            components=components,
            factors=factors,
            overall=overall,
            calibrated=calibrated,
            recommendation=recommendation,
        )

    def classification_score(
        self, classification: ClassificationResult, metrics: PerformanceMetrics
    ) -> float:
        routing = 0.8 if classification.routing.reasoning else 0.5
        duplicates = 0.9 if not classification.duplicates else 0.6
        score = (
            0.4 * classification.category.confidence
            + 0.3 * classification.priority.confidence
            + 0.2 * routing
            + 0.1 * duplicates
        )
        return clamp(score * metrics.category_accuracy_for(classification.category.value))

    def retrieval_score(
        self, matches: List[KnowledgeMatch], metrics: PerformanceMetrics
    ) -> float:
        if not matches:
            return NO_MATCH_SCORE
        top = matches[0]
        score = top.score
        if sum(1 for match in matches if match.score > 0.6) > 1:
            score += 0.1
        if top.helpfulness_ratio > 0.8:
            score += 0.1
        if top.view_count > self.settings.popularity_threshold:
            score += 0.05
        return clamp(score * metrics.retrieval_accuracy)

    def drafting_score(self, draft: DraftResponse, metrics: PerformanceMetrics) -> float:
        score = draft.confidence * STRATEGY_MULTIPLIERS.get(draft.strategy, 0.5)
        length = len(draft.content)
        if length < 100:
            score *= 0.8
        elif length > 2000:
            score *= 0.9
        return clamp(score * metrics.strategy_accuracy_for(draft.strategy.value))

    def contextual_score(self, ticket: Ticket, classification: ClassificationResult) -> float:
        score = 0.5
        if ticket.tier in (RequesterTier.PREMIUM, RequesterTier.ENTERPRISE):
            score += 0.1
        if len(ticket.subject) > 10 and len(ticket.description) > 20:
            score += 0.2
        if ticket.attachment_count > 0:
            score += 0.1
        if classification.priority.reasoning:
            score += 0.1
        start, end = self.settings.business_hours
        if start <= self._clock().hour <= end:
            score += 0.05
        return clamp(score)

    def data_quality(self, ticket: Ticket) -> float:
        quality = 0.0
        subject_length = len(ticket.subject)
        if 10 <= subject_length <= 100:
            quality += 0.25
        elif subject_length > 5:
            quality += 0.15

        description_length = len(ticket.description)
        if 50 <= description_length <= 1000:
            quality += 0.35
        elif description_length > 20:
            quality += 0.25

        if ticket.requester.first_name and ticket.requester.last_name:
            quality += 0.15
        if ticket.requester.email:
            quality += 0.1
        if ticket.category or ticket.tags:
            quality += 0.15
        return clamp(quality)

    @staticmethod
    def historical_performance(
        classification: ClassificationResult, metrics: PerformanceMetrics
    ) -> float:
        category_accuracy = metrics.category_accuracy_for(classification.category.value)
        return clamp((category_accuracy + metrics.classification_accuracy) / 2)

    def complexity(self, ticket: Ticket, classification: ClassificationResult) -> float:
        """1 minus the estimated complexity, so harder tickets lower confidence."""
        text = f"{ticket.subject} {ticket.description}".lower()
        raw = 0.5
        raw += 0.1 * len(count_keywords(text, self.rules.technical_terms))
        raw += 0.05 * len(count_keywords(text, self.rules.multi_issue_indicators))
        raw += 0.1 * len(count_keywords(text, self.rules.complexity_urgency_words))
        if classification.priority.value is Priority.URGENT:
            raw += 0.2
        elif classification.priority.value is Priority.HIGH:
            raw += 0.1
        return clamp(1 - min(raw, 1.0))

    @staticmethod
    def coverage(matches: List[KnowledgeMatch]) -> float:
        if not matches:
            return NO_MATCH_SCORE
        coverage = matches[0].score
        if len(matches) >= 3 and matches[2].score > 0.5:
            coverage += 0.1
        coverage += 0.2 * (sum(match.helpfulness_ratio for match in matches) / len(matches))
        return clamp(coverage)

    @staticmethod
    def fuse(components: ConfidenceComponents, factors: QualityFactors) -> float:
        component_score = sum(
            weight * getattr(components, name) for name, weight in COMPONENT_WEIGHTS.items()
        )
        factor_score = sum(
            weight * getattr(factors, name) for name, weight in FACTOR_WEIGHTS.items()
        )
        return clamp(COMPONENT_SHARE * component_score + FACTOR_SHARE * factor_score)

    @staticmethod
    def calibrate(overall: float, metrics: PerformanceMetrics) -> float:
        """Snap to the containing bin and scale by its observed accuracy."""
        if not metrics.calibration_bins:
            return clamp(overall)
        calibration_bin = metrics.calibration_bins[metrics.bin_index(overall)]
        if calibration_bin.midpoint <= 0:
            return clamp(overall)
        return clamp(overall * (calibration_bin.accuracy / calibration_bin.midpoint))

    def recommend(
        self, calibrated: float, classification: ClassificationResult
    ) -> Recommendation:
        if self.auto_resolution_allowed(classification) and (
            calibrated >= self.settings.auto_resolve_threshold
        ):
            return Recommendation.AUTO_RESOLVE
        return self.review_level(calibrated)

    @staticmethod
    def review_level(calibrated: float) -> Recommendation:
        """Recommendation ladder below auto-resolution."""
        if calibrated >= AGENT_REVIEW_THRESHOLD:
            return Recommendation.AGENT_REVIEW
        if calibrated >= HUMAN_REVIEW_THRESHOLD:
            return Recommendation.HUMAN_REVIEW
        return Recommendation.ESCALATE

    def auto_resolution_allowed(self, classification: ClassificationResult) -> bool:
        """Policy gate: enabled, category allow-listed and priority at or below the cap."""
        return (
            self.settings.auto_resolution_enabled
            and classification.category.value in self.settings.auto_resolution_categories
            and priority_rank(classification.priority.value)
            <= priority_rank(self.settings.auto_resolution_max_priority)
        )

    def record_feedback(self, suggestion: Suggestion, outcome: ReviewOutcome) -> PerformanceMetrics:
        """Move the historical figures towards the reviewer's verdict."""
        target = OUTCOME_TARGETS[outcome]
        rate = self.settings.learning_rate

        def towards(current: float) -> float:
            return clamp(current + rate * (target - current))

        with self._feedback_lock:
            metrics = self.metrics_store.load()
            metrics.classification_accuracy = towards(metrics.classification_accuracy)

            if suggestion.classification is not None:
                category = suggestion.classification.category.value
                metrics.category_accuracy[category] = towards(
                    metrics.category_accuracy_for(category)
                )
            if suggestion.knowledge_matches:
                metrics.retrieval_accuracy = towards(metrics.retrieval_accuracy)
            if suggestion.draft_response is not None:
                strategy = suggestion.draft_response.strategy.value
                metrics.strategy_accuracy[strategy] = towards(
                    metrics.strategy_accuracy_for(strategy)
                )
            if metrics.calibration_bins:
                calibration_bin = metrics.calibration_bins[
                    metrics.bin_index(suggestion.confidence.overall)
                ]
                calibration_bin.accuracy = towards(calibration_bin.accuracy)

            metrics.total_predictions += 1
            if outcome is ReviewOutcome.CORRECT:
                metrics.correct_predictions += 1
            elif outcome is ReviewOutcome.PARTIAL:
                metrics.partial_predictions += 1
            else:
                metrics.incorrect_predictions += 1
            self.metrics_store.save(metrics)

        logger.info(
            "Calibration updated from review",
            extra={
                "suggestion_id": suggestion.id,
                "outcome": outcome.value,
                "classification_accuracy": round(metrics.classification_accuracy, 4),
            },
        )
        return metrics
