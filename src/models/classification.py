"""Classification stage output."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from models.ticket import Priority


class CategoryAssessment(BaseModel):
    value: str = "general"
    confidence: float = Field(default=0.0, ge=0, le=1)
    matched_keywords: List[str] = Field(default_factory=list)


class PriorityAssessment(BaseModel):
    value: Priority = Priority.MEDIUM
    confidence: float = Field(default=0.5, ge=0, le=1)
    reasoning: List[str] = Field(default_factory=list)
    urgency_score: float = Field(default=0.0, ge=0, le=1)
    sentiment: float = Field(default=0.0, ge=-1, le=1)


class RoutingDecision(BaseModel):
    suggested_agent_groups: List[str] = Field(default_factory=list)
    department: Optional[str] = None
    escalation_level: str = "normal"
    reasoning: List[str] = Field(default_factory=list)


class DuplicateMatch(BaseModel):
    ticket_id: str
    similarity: float = Field(ge=0, le=1)
    reason: str = "Text similarity"


class TextMetadata(BaseModel):
    word_count: int = Field(default=0, ge=0)
    has_attachments: bool = False
    language: str = "en"
    entities: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)


class ClassificationResult(BaseModel):
    """Category, priority, routing and duplicate analysis for one ticket."""

    ticket_id: str
    category: CategoryAssessment = Field(default_factory=CategoryAssessment)
    priority: PriorityAssessment = Field(default_factory=PriorityAssessment)
    routing: RoutingDecision = Field(default_factory=RoutingDecision)
    duplicates: List[DuplicateMatch] = Field(default_factory=list)
    text_metadata: TextMetadata = Field(default_factory=TextMetadata)
    confidence: float = Field(default=0.0, ge=0, le=1)
    error: Optional[str] = None
