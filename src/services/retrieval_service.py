"""
Knowledge retrieval over the lexical index.

Four strategies run independently (TF-IDF similarity, category, shared tags,
keyword containment) and are merged per article. Results are cached by a
fingerprint of the query so repeated triage of the same text is cheap.
"""

from __future__ import annotations

import hashlib
import json
from datetime import timedelta, timezone
from threading import Lock
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from config.rules import RuleSet
from config.settings import Settings
from models.knowledge import KnowledgeArticle, KnowledgeMatch, RetrievalResult, RetrievalStrategy
from repositories.article_repo import ArticleStore
from services.lexical_index import LexicalIndex
from utils.cache_service import Clock, LRUCache, utc_now
from utils.error_handling import IndexUnavailable
from utils.logging_config import get_logger
from utils.text import clamp, tokenize

logger = get_logger(__name__)

SEMANTIC_WEIGHT = 0.7
RELEVANCE_WEIGHT = 0.3
SUCCESS_BOOST = 0.2
MIN_KEYWORD_LENGTH = 3

Candidates = Dict[str, Tuple[float, List[RetrievalStrategy]]]


class RetrievalService:
    """Multi-strategy search with an atomically swappable index."""

    def __init__(
        self,
        settings: Settings,
        rules: RuleSet,
        article_store: ArticleStore,
        clock: Clock = utc_now,
    ):
        self.settings = settings
        self.article_store = article_store
        self._clock = clock
        self._stopwords = frozenset(rules.stopwords)
        self._index: Optional[LexicalIndex] = None
        self._generation = 0
        self._swap_lock = Lock()
        self.cache = LRUCache(max_size=settings.search_cache_size, clock=clock)
        # article id -> (helpful votes, total votes)
        self._feedback: Dict[str, Tuple[int, int]] = {}
        self._feedback_lock = Lock()

    @property
    def index(self) -> Optional[LexicalIndex]:
        return self._index

    @property
    def indexed_article_count(self) -> int:
        index = self._index
        return len(index) if index is not None else 0

    def reindex(self) -> int:
        """Build a fresh index from the article store and swap it in."""
        articles = self.article_store.list_published_articles()
        new_index = LexicalIndex.build(articles)
        with self._swap_lock:
            self._index = new_index
            self._generation += 1
        self.cache.clear()
        logger.info("Knowledge index rebuilt", extra={"article_count": len(new_index)})
        return len(new_index)

    def search(
        self, text: str, category: Optional[str] = None, tags: Iterable[str] = ()
    ) -> List[KnowledgeMatch]:
        return self.retrieve(text, category, tags).matches

    def retrieve(
        self, text: str, category: Optional[str] = None, tags: Iterable[str] = ()
    ) -> RetrievalResult:
        """Ranked matches; an unbuilt index or internal failure yields an empty list."""
        tag_list = sorted({tag.lower() for tag in tags if tag})
        try:
            index, generation = self._current()
            cache_key = self._fingerprint(text, category, tag_list, generation)
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.info("Retrieval cache hit", extra={"query_hash": cache_key[:8]})
                return RetrievalResult(matches=list(cached), cache_hit=True)

            matches = self._search(index, text, category, tag_list)
            self.cache.set(cache_key, tuple(matches))
            logger.info(
                "Knowledge retrieval complete",
                extra={"query_length": len(text), "results_count": len(matches)},
            )
            return RetrievalResult(matches=matches)
        except IndexUnavailable as exc:
            logger.warning("Knowledge index unavailable", extra={"error": str(exc)})
            return RetrievalResult(matches=[], error=f"IndexUnavailable: {exc}")
        except Exception as exc:
            logger.exception("Knowledge retrieval failed")
            return RetrievalResult(matches=[], error=f"Retrieval failed: {exc}")

    def _current(self) -> Tuple[LexicalIndex, int]:
        with self._swap_lock:
            index, generation = self._index, self._generation
        if index is None:
            raise IndexUnavailable()
        return index, generation

    def _search(
        self,
        index: LexicalIndex,
        text: str,
        category: Optional[str],
        tags: Sequence[str],
    ) -> List[KnowledgeMatch]:
        if not len(index):
            return []

        candidates: Candidates = {}
        for article_id, score in index.score(text, self.settings.semantic_top_n):
            _merge(candidates, article_id, score, RetrievalStrategy.SEMANTIC)

        if category:
            for article_id in index.ids_for_category(category):
                _merge(candidates, article_id, self.settings.category_score, RetrievalStrategy.CATEGORY)

        tag_scores: Dict[str, float] = {}
        for tag in tags:
            for article_id in index.ids_for_tag(tag):
                tag_scores[article_id] = min(
                    1.0, tag_scores.get(article_id, 0.0) + self.settings.tag_score
                )
        for article_id, score in tag_scores.items():
            _merge(candidates, article_id, score, RetrievalStrategy.TAGS)

        query_terms = {
            token
            for token in tokenize(text)
            if len(token) >= MIN_KEYWORD_LENGTH and token not in self._stopwords
        }
        if query_terms:
            for article_id, entry in index.articles.items():
                hits = sum(1 for term in query_terms if term in entry.searchable_text)
                if hits:
                    score = min(1.0, hits * self.settings.keyword_hit_score)
                    _merge(candidates, article_id, score, RetrievalStrategy.KEYWORD)

        matches: List[KnowledgeMatch] = []
        for article_id, (score, strategies) in candidates.items():
            article = index.articles[article_id].article
            relevance = self._relevance(article, category)
            final = SEMANTIC_WEIGHT * score + RELEVANCE_WEIGHT * relevance
            final = clamp(final * (1 + SUCCESS_BOOST * self.success_rate(article_id)))
            if final < self.settings.knowledge_min_score:
                continue
            matches.append(_to_match(article, final, strategies))

        matches.sort(key=lambda match: (-match.score, match.id))
        return matches[: self.settings.knowledge_max_results]

    def _relevance(self, article: KnowledgeArticle, category: Optional[str]) -> float:
        relevance = 0.3 * article.helpfulness_ratio
        if article.updated_at is not None:
            updated_at = article.updated_at
            if updated_at.tzinfo is None:
                updated_at = updated_at.replace(tzinfo=timezone.utc)
            if self._clock() - updated_at <= timedelta(days=self.settings.recency_days):
                relevance += 0.2
        if article.view_count > self.settings.popularity_threshold:
            relevance += 0.2
        if category and article.category == category:
            relevance += 0.3
        return min(1.0, relevance)

    def record_article_feedback(self, article_id: str, helpful: bool) -> None:
        """Track reviewer votes; the success rate boosts future rankings."""
        with self._feedback_lock:
            good, total = self._feedback.get(article_id, (0, 0))
            self._feedback[article_id] = (good + int(helpful), total + 1)
        self.cache.clear()

    def success_rate(self, article_id: str) -> float:
        with self._feedback_lock:
            good, total = self._feedback.get(article_id, (0, 0))
        return good / total if total else 0.0

    @staticmethod
    def _fingerprint(
        text: str, category: Optional[str], tags: Sequence[str], generation: int
    ) -> str:
        payload = json.dumps(
            {"text": text, "category": category, "tags": list(tags), "generation": generation},
            sort_keys=True,
        )
        return hashlib.md5(payload.encode()).hexdigest()


def _merge(
    candidates: Candidates, article_id: str, score: float, strategy: RetrievalStrategy
) -> None:
    current_score, strategies = candidates.get(article_id, (0.0, []))
    if strategy not in strategies:
        strategies = strategies + [strategy]
    candidates[article_id] = (max(current_score, score), strategies)


def _to_match(
    article: KnowledgeArticle, score: float, strategies: List[RetrievalStrategy]
) -> KnowledgeMatch:
    return KnowledgeMatch(
        id=article.id,
        title=article.title,
        summary=article.summary,
        category=article.category,
        tags=list(article.tags),
        score=score,
        source_strategy=strategies[0] if len(strategies) == 1 else RetrievalStrategy.COMBINATION,
        strategies=list(strategies),
        url=f"/articles/{article.id}",
        helpfulness_ratio=article.helpfulness_ratio,
        view_count=article.view_count,
    )
