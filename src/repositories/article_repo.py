"""Article stores feeding the knowledge index."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from threading import Lock
from typing import Iterable, List

from models.knowledge import KnowledgeArticle
from repositories.sql_repo import SqlRepository
from utils.logging_config import get_logger

logger = get_logger(__name__)

ARTICLES_DDL = """
CREATE TABLE IF NOT EXISTS knowledge_articles (
    id VARCHAR(64) PRIMARY KEY,
    title TEXT NOT NULL,
    summary TEXT,
    body TEXT,
    category VARCHAR(64),
    tags TEXT,
    view_count INTEGER DEFAULT 0,
    helpfulness_ratio REAL DEFAULT 0,
    updated_at VARCHAR(40),
    status VARCHAR(20) DEFAULT 'published'
)
"""


class ArticleStore(ABC):
    @abstractmethod
    def list_published_articles(self) -> List[KnowledgeArticle]:
        """Every article that may be suggested to customers."""


class InMemoryArticleStore(ArticleStore):
    def __init__(self, articles: Iterable[KnowledgeArticle] = ()):
        self._articles = {article.id: article for article in articles}
        self._lock = Lock()

    def add(self, article: KnowledgeArticle) -> None:
        with self._lock:
            self._articles[article.id] = article

    def remove(self, article_id: str) -> None:
        with self._lock:
            self._articles.pop(article_id, None)

    def list_published_articles(self) -> List[KnowledgeArticle]:
        with self._lock:
            return list(self._articles.values())


class SqlArticleStore(ArticleStore):
    """Reads the knowledge_articles table; tags are stored as a JSON array."""

    def __init__(self, repo: SqlRepository):
        self.repo = repo

    def create_schema(self) -> None:
        self.repo.execute(ARTICLES_DDL)

    def upsert(self, article: KnowledgeArticle) -> None:
        self.repo.execute_many(
            [
                ("DELETE FROM knowledge_articles WHERE id = :id", {"id": article.id}),
                (
                    """
                    INSERT INTO knowledge_articles
                        (id, title, summary, body, category, tags, view_count,
                         helpfulness_ratio, updated_at, status)
                    VALUES
                        (:id, :title, :summary, :body, :category, :tags, :view_count,
                         :helpfulness_ratio, :updated_at, 'published')
                    """,
                    {
                        "id": article.id,
                        "title": article.title,
                        "summary": article.summary,
                        "body": article.body,
                        "category": article.category,
                        "tags": json.dumps(article.tags),
                        "view_count": article.view_count,
                        "helpfulness_ratio": article.helpfulness_ratio,
                        "updated_at": article.updated_at.isoformat()
                        if article.updated_at
                        else None,
                    },
                ),
            ]
        )

    def list_published_articles(self) -> List[KnowledgeArticle]:
        rows = self.repo.fetch_all(
            """
            SELECT id, title, summary, body, category, tags, view_count,
                   helpfulness_ratio, updated_at
            FROM knowledge_articles
            WHERE status = 'published'
            ORDER BY id
            """
        )
        articles: List[KnowledgeArticle] = []
        for row in rows:
            row["tags"] = json.loads(row.get("tags") or "[]")
            row["summary"] = row.get("summary") or ""
            row["body"] = row.get("body") or ""
            row["category"] = row.get("category") or "general"
            row["view_count"] = row.get("view_count") or 0
            row["helpfulness_ratio"] = row.get("helpfulness_ratio") or 0.0
            articles.append(KnowledgeArticle.model_validate(row))
        logger.info("Loaded published articles", extra={"count": len(articles)})
        return articles
