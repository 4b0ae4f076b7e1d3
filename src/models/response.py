"""Draft response models."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class DraftStrategy(str, Enum):
    TEMPLATE = "template"
    GENERATIVE = "generative"
    HYBRID = "hybrid"
    FALLBACK = "fallback"


class DraftResponse(BaseModel):
    """Candidate reply for a human (or auto-apply) to send."""

    content: str
    strategy: DraftStrategy
    confidence: float = Field(ge=0, le=1)
    source_id: str = ""
    generation_time_ms: int = Field(default=0, ge=0)
    knowledge_used: int = Field(default=0, ge=0)
    error: Optional[str] = None
