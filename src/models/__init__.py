"""Pydantic models shared by services, repositories and handlers."""

from models.classification import ClassificationResult  # noqa: F401
from models.confidence import ConfidenceAssessment, Recommendation  # noqa: F401
from models.knowledge import KnowledgeArticle, KnowledgeMatch, RetrievalResult  # noqa: F401
from models.metrics import CalibrationBin, PerformanceMetrics  # noqa: F401
from models.response import DraftResponse, DraftStrategy  # noqa: F401
from models.suggestion import (  # noqa: F401
    HealthStatus,
    NextAction,
    ProcessingStatus,
    ReviewOutcome,
    Suggestion,
    SuggestionStatus,
)
from models.ticket import Priority, Requester, RequesterTier, Ticket  # noqa: F401
