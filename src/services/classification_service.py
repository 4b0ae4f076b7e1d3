"""
Ticket classification service.

Keyword scoring for category, urgency plus lexicon sentiment for priority, a
rule table for routing and Jaccard similarity over recent tickets for
duplicates. No model calls, so results are deterministic for a given rule set
and duplicate cache.
"""

from __future__ import annotations

import re
from collections import Counter
from typing import FrozenSet, List, Optional

from config.rules import RuleSet
from config.settings import Settings
from models.classification import (
    CategoryAssessment,
    ClassificationResult,
    DuplicateMatch,
    PriorityAssessment,
    RoutingDecision,
    TextMetadata,
)
from models.ticket import Priority, RequesterTier, Ticket
from utils.cache_service import Clock, TimeWindowCache, utc_now
from utils.error_handling import InputError
from utils.logging_config import get_logger
from utils.text import clamp, count_keywords, stem_tokens, tokenize

logger = get_logger(__name__)

ROUTING_CONFIDENCE = 0.8
URGENCY_DIVISOR = 5

_ENTITY_PATTERNS = (
    re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+"),
    re.compile(r"https?://[^\s)>\]]+"),
    re.compile(r"\berror\s+(?:code\s+)?[a-z]*-?\d{2,}\b"),
    re.compile(r"\b(?:ticket|order|invoice|case)\s*#?\s*\d{3,}\b"),
    re.compile(r"#\d{3,}\b"),
)


class ClassificationService:
    """Category, priority, routing and duplicate analysis for one ticket."""

    def __init__(
        self,
        settings: Settings,
        rules: RuleSet,
        clock: Clock = utc_now,
    ):
        self.settings = settings
        self.rules = rules
        self._lexicon = rules.stemmed_lexicon()
        self._stopwords = frozenset(rules.stopwords)
        self.duplicate_cache = TimeWindowCache(
            window_seconds=settings.duplicate_window_seconds,
            max_size=settings.duplicate_cache_max,
            clock=clock,
        )

    def classify(self, ticket: Ticket) -> ClassificationResult:
        """Classify a ticket. Never raises; failures come back annotated."""
        try:
            return self._classify(ticket)
        except InputError as exc:
            logger.warning(
                "Empty ticket text", extra={"ticket_id": ticket.id, "error": str(exc)}
            )
            return self._empty_result(ticket, f"InputError: {exc}")
        except Exception as exc:
            logger.exception("Classification failed", extra={"ticket_id": ticket.id})
            return self._empty_result(ticket, f"Classification failed: {exc}")

    def _classify(self, ticket: Ticket) -> ClassificationResult:
        text = ticket.text
        tokens = tokenize(text)
        if not tokens:
            raise InputError("Ticket subject, description and tags are empty")

        category = self.classify_category(text)
        priority = self.assess_priority(text, tokens, ticket.tier)
        routing = self.determine_routing(category.value, text)
        duplicates = self.detect_duplicates(ticket.id, tokens)

        result = ClassificationResult(
            ticket_id=ticket.id,
            category=category,
            priority=priority,
            routing=routing,
            duplicates=duplicates,
            text_metadata=self.extract_metadata(text, tokens, ticket),
            confidence=self._overall_confidence(category, priority, duplicates),
        )
        logger.info(
            "Ticket classified",
            extra={
                "ticket_id": ticket.id,
                "category": category.value,
                "priority": priority.value.value,
                "duplicates": len(duplicates),
            },
        )
        return result

    def classify_category(self, text: str) -> CategoryAssessment:
        """Score = share of a category's keywords present; ties go to general."""
        scores = {}
        for category, keywords in self.rules.category_keywords.items():
            if not keywords:
                continue
            matches = count_keywords(text, keywords)
            scores[category] = (len(matches) / len(keywords), matches)

        general_score = scores.get("general", (0.0, []))
        best = CategoryAssessment(
            value="general",
            confidence=clamp(general_score[0]),
            matched_keywords=general_score[1],
        )
        for category, (score, matches) in scores.items():
            if score > best.confidence:
                best = CategoryAssessment(
                    value=category, confidence=clamp(score), matched_keywords=matches
                )
        return best

    def urgency_score(self, text: str) -> float:
        found = count_keywords(text, self.rules.urgency_indicators)
        return min(1.0, len(found) / URGENCY_DIVISOR)

    def sentiment(self, tokens: List[str]) -> float:
        """Mean lexicon polarity per token, clamped to [-1, 1]."""
        if not tokens:
            return 0.0
        total = sum(self._lexicon.get(term, 0) for term in stem_tokens(tokens))
        return clamp(total / len(tokens), -1.0, 1.0)

    def assess_priority(
        self, text: str, tokens: List[str], tier: RequesterTier
    ) -> PriorityAssessment:
        urgency = self.urgency_score(text)
        sentiment = self.sentiment(tokens)

        if urgency > 0.7:
            value, confidence, reason = Priority.URGENT, 0.9, "High urgency indicators detected"
        elif urgency > 0.4 or sentiment < -0.5:
            value, confidence, reason = Priority.HIGH, 0.8, "Medium urgency or negative sentiment"
        elif tier in (RequesterTier.PREMIUM, RequesterTier.ENTERPRISE):
            value, confidence, reason = Priority.HIGH, 0.7, f"{tier.value.title()} requester tier"
        elif urgency < 0.2 and sentiment > 0:
            value, confidence, reason = Priority.LOW, 0.8, "Low urgency and positive sentiment"
        else:
            value, confidence, reason = Priority.MEDIUM, 0.5, None

        return PriorityAssessment(
            value=value,
            confidence=confidence,
            reasoning=[reason] if reason else [],
            urgency_score=urgency,
            sentiment=sentiment,
        )

    def determine_routing(self, category: str, text: str) -> RoutingDecision:
        routing = RoutingDecision()
        rule = self.rules.routing_rules.get(category)
        if rule:
            routing.suggested_agent_groups = list(rule.agent_groups)
            routing.escalation_level = rule.escalation_level
            routing.department = rule.department
            routing.reasoning.append(f"Routed based on category: {category}")

        for department, keywords in self.rules.department_keywords.items():
            if count_keywords(text, keywords):
                routing.department = department
                routing.reasoning.append(f"{department.title()} keywords detected")
                break
        return routing

    def detect_duplicates(self, ticket_id: str, tokens: List[str]) -> List[DuplicateMatch]:
        """
        Compare against tickets seen within the window, then remember this one.

        Entries for the same ticket id are not reported so re-running a ticket
        does not flag it as its own duplicate.
        """
        vector: FrozenSet[str] = frozenset(stem_tokens(tokens))
        if not vector:
            return []

        def compare(cached_id: str, cached_vector: FrozenSet[str]) -> Optional[DuplicateMatch]:
            if cached_id == ticket_id:
                return None
            similarity = jaccard(vector, cached_vector)
            if similarity > self.settings.duplicate_threshold:
                return DuplicateMatch(ticket_id=cached_id, similarity=similarity)
            return None

        duplicates: List[DuplicateMatch] = self.duplicate_cache.compare_and_add(
            ticket_id, vector, compare
        )
        duplicates.sort(key=lambda match: (-match.similarity, match.ticket_id))
        return duplicates

    def extract_metadata(self, text: str, tokens: List[str], ticket: Ticket) -> TextMetadata:
        entities: List[str] = []
        for pattern in _ENTITY_PATTERNS:
            for found in pattern.findall(text):
                if found not in entities:
                    entities.append(found)

        counts = Counter(
            token
            for token in tokens
            if len(token) >= 3 and token not in self._stopwords and not token.isdigit()
        )
        return TextMetadata(
            word_count=len(tokens),
            has_attachments=ticket.attachment_count > 0,
            language="en",
            entities=entities,
            keywords=[token for token, _ in counts.most_common(10)],
        )

    @staticmethod
    def _overall_confidence(
        category: CategoryAssessment,
        priority: PriorityAssessment,
        duplicates: List[DuplicateMatch],
    ) -> float:
        total = (
            0.4 * category.confidence
            + 0.3 * priority.confidence
            + 0.2 * ROUTING_CONFIDENCE
            + 0.1 * (0.9 if not duplicates else 0.5)
        )
        return clamp(total)

    def _empty_result(self, ticket: Ticket, error: Optional[str]) -> ClassificationResult:
        category = CategoryAssessment()
        priority = PriorityAssessment()
        return ClassificationResult(
            ticket_id=ticket.id,
            category=category,
            priority=priority,
            routing=self.determine_routing("general", ""),
            text_metadata=TextMetadata(has_attachments=ticket.attachment_count > 0),
            confidence=self._overall_confidence(category, priority, []),
            error=error,
        )

    def cache_size(self) -> int:
        return len(self.duplicate_cache)


def jaccard(left: FrozenSet[str], right: FrozenSet[str]) -> float:
    union = left | right
    if not union:
        return 0.0
    return len(left & right) / len(union)
