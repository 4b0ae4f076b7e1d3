"""
TF-IDF index over published knowledge articles.

An index is an immutable snapshot: ``LexicalIndex.build`` returns a new one
and the retrieval service swaps its reference, so readers never see a
half-built index.
"""

from __future__ import annotations

import math
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from models.knowledge import KnowledgeArticle
from utils.text import stem_tokens, strip_html, tokenize


@dataclass(frozen=True)
class IndexedArticle:
    article: KnowledgeArticle
    searchable_text: str
    weights: Mapping[str, float]
    norm: float


@dataclass(frozen=True)
class LexicalIndex:
    articles: Mapping[str, IndexedArticle] = field(default_factory=dict)
    idf: Mapping[str, float] = field(default_factory=dict)
    by_category: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    by_tag: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)

    @classmethod
    def build(cls, articles: Iterable[KnowledgeArticle]) -> "LexicalIndex":
        """Weight terms with idf = ln(N / df) + 1 over title, summary, body and tags."""
        documents: Dict[str, Tuple[KnowledgeArticle, str, Counter]] = {}
        for article in articles:
            searchable = " ".join(
                [
                    article.title,
                    article.summary,
                    strip_html(article.body),
                    " ".join(article.tags),
                ]
            ).lower()
            documents[article.id] = (
                article,
                searchable,
                Counter(stem_tokens(tokenize(searchable))),
            )

        doc_freq: Counter = Counter()
        for _, _, counts in documents.values():
            doc_freq.update(counts.keys())
        total = len(documents)
        idf = {term: math.log(total / df) + 1.0 for term, df in doc_freq.items()}

        indexed: Dict[str, IndexedArticle] = {}
        by_category: Dict[str, List[str]] = defaultdict(list)
        by_tag: Dict[str, List[str]] = defaultdict(list)
        for article_id, (article, searchable, counts) in documents.items():
            weights = _weigh(counts, idf)
            indexed[article_id] = IndexedArticle(
                article=article,
                searchable_text=searchable,
                weights=weights,
                norm=_norm(weights),
            )
            by_category[article.category].append(article_id)
            for tag in {t.lower() for t in article.tags}:
                by_tag[tag].append(article_id)

        return cls(
            articles=indexed,
            idf=idf,
            by_category={k: tuple(v) for k, v in by_category.items()},
            by_tag={k: tuple(v) for k, v in by_tag.items()},
        )

    def __len__(self) -> int:
        return len(self.articles)

    def query_vector(self, text: str) -> Dict[str, float]:
        counts = Counter(term for term in stem_tokens(tokenize(text)) if term in self.idf)
        return _weigh(counts, self.idf)

    def score(self, text: str, top_n: int) -> List[Tuple[str, float]]:
        """Cosine similarity of every article against the query, best top_n first."""
        query = self.query_vector(text)
        query_norm = _norm(query)
        if not query_norm:
            return []

        scored: List[Tuple[str, float]] = []
        for article_id, entry in self.articles.items():
            if not entry.norm:
                continue
            dot = sum(weight * entry.weights.get(term, 0.0) for term, weight in query.items())
            if dot > 0:
                scored.append((article_id, min(1.0, dot / (query_norm * entry.norm))))
        scored.sort(key=lambda item: (-item[1], item[0]))
        return scored[:top_n]

    def ids_for_category(self, category: str) -> Sequence[str]:
        return self.by_category.get(category, ())

    def ids_for_tag(self, tag: str) -> Sequence[str]:
        return self.by_tag.get(tag.lower(), ())


def _weigh(counts: Mapping[str, int], idf: Mapping[str, float]) -> Dict[str, float]:
    total = sum(counts.values())
    if not total:
        return {}
    return {term: (count / total) * idf[term] for term, count in counts.items() if term in idf}


def _norm(weights: Mapping[str, float]) -> float:
    return math.sqrt(sum(value * value for value in weights.values()))
