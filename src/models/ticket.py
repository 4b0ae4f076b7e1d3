"""Ticket input models. A Ticket is never mutated by the pipeline."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Priority(str, Enum):
    """Priority levels, lowest first."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


PRIORITY_ORDER: List[str] = [p.value for p in Priority]


def priority_rank(value: Any) -> int:
    """Position in PRIORITY_ORDER; unknown values rank above urgent."""
    raw = value.value if isinstance(value, Priority) else str(value)
    try:
        return PRIORITY_ORDER.index(raw)
    except ValueError:
        return len(PRIORITY_ORDER)


class RequesterTier(str, Enum):
    STANDARD = "standard"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


class Requester(BaseModel):
    model_config = ConfigDict(frozen=True)

    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    tier: RequesterTier = RequesterTier.STANDARD

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Ticket(BaseModel):
    """Inbound ticket as handed over by the ticket store."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    subject: str = ""
    description: str = ""
    tags: Tuple[str, ...] = ()
    attachment_count: int = Field(default=0, ge=0)
    requester: Requester = Field(default_factory=Requester)
    category: Optional[str] = None
    priority: Optional[Priority] = None
    created_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def count_attachments(cls, data: Any) -> Any:
        """Only the number of attachments matters, so a list is reduced to its length."""
        if isinstance(data, dict) and "attachments" in data:
            data = dict(data)
            attachments = data.pop("attachments") or []
            data.setdefault("attachment_count", len(attachments))
        return data

    @field_validator("subject", "description", mode="before")
    @classmethod
    def strip_text(cls, value: Optional[str]) -> str:
        return (value or "").strip()

    @field_validator("tags", mode="before")
    @classmethod
    def clean_tags(cls, value: Any) -> Tuple[str, ...]:
        if not value:
            return ()
        return tuple(str(tag).strip() for tag in value if str(tag).strip())

    @property
    def tier(self) -> RequesterTier:
        return self.requester.tier

    @property
    def text(self) -> str:
        """Subject, description and tags joined and lowercased for analysis."""
        return " ".join([self.subject, self.description, " ".join(self.tags)]).lower().strip()
