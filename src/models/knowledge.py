"""Knowledge base models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class KnowledgeArticle(BaseModel):
    """Published article as returned by the article store."""

    id: str
    title: str
    summary: str = ""
    body: str = ""
    category: str = "general"
    tags: List[str] = Field(default_factory=list)
    view_count: int = Field(default=0, ge=0)
    helpfulness_ratio: float = Field(default=0.0, ge=0, le=1)
    updated_at: Optional[datetime] = None


class RetrievalStrategy(str, Enum):
    SEMANTIC = "semantic"
    CATEGORY = "category"
    TAGS = "tags"
    KEYWORD = "keyword"
    COMBINATION = "combination"


class KnowledgeMatch(BaseModel):
    """Public view of a ranked article. Carries no index internals."""

    id: str
    title: str
    summary: str = ""
    category: str = "general"
    tags: List[str] = Field(default_factory=list)
    score: float = Field(ge=0, le=1)
    source_strategy: RetrievalStrategy
    strategies: List[RetrievalStrategy] = Field(default_factory=list)
    url: str = ""
    helpfulness_ratio: float = Field(default=0.0, ge=0, le=1)
    view_count: int = Field(default=0, ge=0)


class RetrievalResult(BaseModel):
    matches: List[KnowledgeMatch] = Field(default_factory=list)
    cache_hit: bool = False
    error: Optional[str] = None
