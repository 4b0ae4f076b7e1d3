"""Confidence assessment models."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Recommendation(str, Enum):
    AUTO_RESOLVE = "auto_resolve"
    AGENT_REVIEW = "agent_review"
    HUMAN_REVIEW = "human_review"
    ESCALATE = "escalate"


class ConfidenceComponents(BaseModel):
    classification: float = Field(default=0.0, ge=0, le=1)
    knowledge_retrieval: float = Field(default=0.0, ge=0, le=1)
    response_drafting: float = Field(default=0.0, ge=0, le=1)
    contextual: float = Field(default=0.0, ge=0, le=1)


class QualityFactors(BaseModel):
    data_quality: float = Field(default=0.0, ge=0, le=1)
    historical_performance: float = Field(default=0.0, ge=0, le=1)
    complexity: float = Field(default=0.0, ge=0, le=1)
    coverage: float = Field(default=0.0, ge=0, le=1)


class ConfidenceAssessment(BaseModel):
    """Fused and calibrated confidence plus the resulting recommendation."""

    components: ConfidenceComponents = Field(default_factory=ConfidenceComponents)
    factors: QualityFactors = Field(default_factory=QualityFactors)
    overall: float = Field(default=0.0, ge=0, le=1)
    calibrated: float = Field(default=0.0, ge=0, le=1)
    recommendation: Recommendation = Recommendation.ESCALATE
    error: Optional[str] = None
