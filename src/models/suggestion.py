"""Suggestion aggregate persisted once per pipeline run."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from models.classification import ClassificationResult
from models.confidence import ConfidenceAssessment, Recommendation
from models.knowledge import KnowledgeMatch
from models.response import DraftResponse


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REVIEWED = "reviewed"
    APPROVED = "approved"
    REJECTED = "rejected"
    MODIFIED = "modified"
    AUTO_APPLIED = "auto_applied"


class ReviewOutcome(str, Enum):
    CORRECT = "correct"
    PARTIAL = "partial"
    INCORRECT = "incorrect"


REVIEW_STATUS: Dict[ReviewOutcome, SuggestionStatus] = {
    ReviewOutcome.CORRECT: SuggestionStatus.APPROVED,
    ReviewOutcome.PARTIAL: SuggestionStatus.MODIFIED,
    ReviewOutcome.INCORRECT: SuggestionStatus.REJECTED,
}


class Review(BaseModel):
    outcome: ReviewOutcome
    details: Optional[str] = None
    reviewed_at: datetime


class StageError(BaseModel):
    stage: str
    message: str


class NextAction(BaseModel):
    """Where the ticket goes after triage."""

    type: Recommendation
    queue: Optional[str] = None
    priority: str = "normal"
    escalation_level: Optional[str] = None
    close_ticket: bool = False
    notify_customer: bool = False
    reasoning: str = ""


class OrchestrationTrace(BaseModel):
    """Timing for one pipeline run."""

    started_at: datetime
    completed_at: Optional[datetime] = None
    classification_ms: int = 0
    retrieval_ms: int = 0
    drafting_ms: int = 0
    confidence_ms: int = 0
    total_ms: int = 0


class Suggestion(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    ticket_id: str
    trace_id: str
    classification: Optional[ClassificationResult] = None
    knowledge_matches: List[KnowledgeMatch] = Field(default_factory=list)
    draft_response: Optional[DraftResponse] = None
    confidence: ConfidenceAssessment = Field(default_factory=ConfidenceAssessment)
    status: SuggestionStatus = SuggestionStatus.PENDING
    auto_resolve: bool = False
    auto_resolve_reason: Optional[str] = None
    errors: List[StageError] = Field(default_factory=list)
    trace: OrchestrationTrace
    review: Optional[Review] = None
    next_action: Optional[NextAction] = None

    @property
    def degraded(self) -> bool:
        return bool(self.errors)


class HealthStatus(BaseModel):
    """Diagnostic snapshot of the pipeline."""

    status: str
    indexed_article_count: int = 0
    index_built: bool = False
    cache_sizes: Dict[str, int] = Field(default_factory=dict)
    rate_limiter_state: Dict[str, int] = Field(default_factory=dict)
    generative_enabled: bool = False
    provider_workers_busy: int = 0


class ProcessingStatus(BaseModel):
    """Latest triage outcome for a ticket."""

    ticket_id: str
    status: str = "not_processed"
    suggestion_id: Optional[str] = None
    trace_id: Optional[str] = None
    recommendation: Optional[Recommendation] = None
    calibrated_confidence: Optional[float] = None
    auto_resolve: bool = False
    processed_at: Optional[datetime] = None
