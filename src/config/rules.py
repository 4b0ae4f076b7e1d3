"""
Keyword, routing and lexicon tables used by the analysis stages.

Tables are plain data: DEFAULT_RULES ships with the service and a JSON file
with the same shape (RULES_PATH) can replace any of them. Tests build small
RuleSet fixtures instead of patching code.
"""

import json
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from utils.error_handling import ConfigurationError
from utils.logging_config import get_logger
from utils.text import stem

logger = get_logger(__name__)


class RoutingRule(BaseModel):
    """Where tickets of one category go by default."""

    agent_groups: List[str] = Field(default_factory=list)
    escalation_level: str = "normal"
    department: Optional[str] = None


class RuleSet(BaseModel):
    category_keywords: Dict[str, List[str]]
    urgency_indicators: List[str]
    routing_rules: Dict[str, RoutingRule] = Field(default_factory=dict)
    # Checked in order; the first department with a hit wins.
    department_keywords: Dict[str, List[str]] = Field(default_factory=dict)
    sentiment_lexicon: Dict[str, int] = Field(default_factory=dict)
    troubleshooting_steps: Dict[str, List[str]] = Field(default_factory=dict)
    lock_keywords: List[str] = Field(default_factory=list)
    technical_terms: List[str] = Field(default_factory=list)
    multi_issue_indicators: List[str] = Field(default_factory=list)
    complexity_urgency_words: List[str] = Field(default_factory=list)
    stopwords: List[str] = Field(default_factory=list)

    def stemmed_lexicon(self) -> Dict[str, int]:
        """Lexicon keyed by Porter stems so it lines up with stemmed tokens."""
        lexicon: Dict[str, int] = {}
        for word, score in self.sentiment_lexicon.items():
            lexicon.setdefault(stem(word.lower()), score)
        return lexicon

    def steps_for(self, category: str) -> List[str]:
        return self.troubleshooting_steps.get(
            category, self.troubleshooting_steps.get("technical", [])
        )

    @classmethod
    def default(cls) -> "RuleSet":
        return cls.model_validate(DEFAULT_RULES)

    @classmethod
    def from_file(cls, path: str) -> "RuleSet":
        """Load a JSON rules file; missing tables fall back to the defaults."""
        try:
            with open(path, "r", encoding="utf-8") as handle:
                overrides = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Cannot read rules file {path}: {exc}") from exc

        merged = {**DEFAULT_RULES, **overrides}
        try:
            rules = cls.model_validate(merged)
        except PydanticValidationError as exc:
            raise ConfigurationError(f"Invalid rules file {path}: {exc}") from exc
        logger.info("Loaded rules file", extra={"path": path, "tables": sorted(overrides)})
        return rules

    @classmethod
    def load(cls, path: Optional[str] = None) -> "RuleSet":
        return cls.from_file(path) if path else cls.default()


DEFAULT_RULES: dict = {
    "category_keywords": {
        "technical": [
            "error", "bug", "crash", "broken", "not working", "issue", "problem",
            "api", "database", "server", "connection", "timeout", "performance",
            "integration", "sync", "backup", "restore", "update", "upgrade",
        ],
        "billing": [
            "payment", "invoice", "charge", "billing", "subscription", "plan",
            "refund", "credit", "discount", "pricing", "cost", "fee", "money",
        ],
        "account": [
            "login", "password", "access", "account", "profile", "settings",
            "permissions", "role", "user", "authentication", "security", "lock",
        ],
        "feature_request": [
            "feature", "request", "enhancement", "improvement", "suggestion",
            "add", "new", "would like", "could you", "please add", "missing",
        ],
        "general": [
            "question", "help", "how to", "information", "support", "assistance",
        ],
    },
    "urgency_indicators": [
        "urgent", "emergency", "critical", "asap", "immediately", "right away",
        "now", "down", "outage", "broken", "not working", "failed",
        "did not go through", "production", "live", "customers affected",
        "revenue impact", "security breach",
    ],
    "routing_rules": {
        "technical": {
            "agent_groups": ["technical_support", "developer_support"],
            "escalation_level": "high",
            "department": "technical",
        },
        "billing": {
            "agent_groups": ["billing_support", "account_manager"],
            "escalation_level": "medium",
            "department": "billing",
        },
        "account": {
            "agent_groups": ["account_support"],
            "escalation_level": "medium",
            "department": "support",
        },
        "feature_request": {
            "agent_groups": ["product_team"],
            "escalation_level": "normal",
            "department": "product",
        },
        "general": {
            "agent_groups": ["general_support"],
            "escalation_level": "normal",
            "department": "support",
        },
    },
    "department_keywords": {
        "technical": ["api", "integration"],
        "billing": ["billing", "payment"],
    },
    # AFINN-style polarity, -5 (very negative) .. 5 (very positive)
    "sentiment_lexicon": {
        "angry": -3, "annoyed": -2, "awful": -3, "bad": -3, "broken": -1,
        "crash": -2, "disappointed": -2, "error": -2, "fail": -2, "failed": -2,
        "frustrated": -2, "frustrating": -2, "furious": -3, "hate": -3,
        "horrible": -3, "impossible": -2, "lost": -3, "problem": -2,
        "ridiculous": -3, "slow": -2, "stuck": -2, "terrible": -3,
        "unacceptable": -2, "unhappy": -2, "upset": -2, "useless": -2,
        "worst": -3, "wrong": -2, "amazing": 4, "appreciate": 2, "awesome": 4,
        "excellent": 3, "fantastic": 4, "glad": 3, "good": 3, "great": 3,
        "happy": 3, "helpful": 2, "love": 3, "nice": 3, "please": 1,
        "thank": 2, "thanks": 2, "wonderful": 4,
    },
    "troubleshooting_steps": {
        "technical": [
            "Clear your browser cache and cookies",
            "Try using a different browser or incognito mode",
            "Check your internet connection stability",
            "Disable browser extensions temporarily",
            "Try accessing from a different device",
        ],
        "account": [
            "Verify you are using the correct email address",
            "Check if Caps Lock is enabled",
            "Try resetting your password",
            "Clear your browser's saved passwords",
            "Contact us if the issue persists",
        ],
        "billing": [
            "Check your payment method is valid and up to date",
            "Verify your billing address matches your payment method",
            "Check for any bank notifications or blocks",
            "Review your account billing history",
            "Contact your bank if needed",
        ],
    },
    "lock_keywords": ["locked", "lock", "blocked", "suspended", "disabled"],
    "technical_terms": ["api", "database", "server", "integration", "ssl", "dns", "error code"],
    "multi_issue_indicators": ["and", "also", "additionally", "furthermore", "moreover"],
    "complexity_urgency_words": ["urgent", "critical", "emergency", "asap", "immediately"],
    "stopwords": [
        "a", "about", "all", "also", "am", "an", "and", "any", "are", "as", "at",
        "be", "been", "but", "by", "can", "could", "did", "do", "does", "for",
        "from", "get", "got", "had", "has", "have", "hello", "hi", "how", "i",
        "if", "in", "into", "is", "it", "its", "just", "me", "my", "no", "not",
        "of", "on", "or", "our", "please", "so", "that", "the", "their", "them",
        "then", "there", "this", "to", "was", "we", "were", "what", "when",
        "which", "will", "with", "would", "you", "your",
    ],
}
