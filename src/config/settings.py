"""
Pipeline settings with cost-aware defaults.

Everything can be overridden through environment variables so the same code
runs locally, in tests and inside Lambda.
"""

from dataclasses import dataclass, field
import os
from typing import Optional, Tuple

from models.ticket import PRIORITY_ORDER
from utils.error_handling import ConfigurationError
from utils.validators import ensure_positive, ensure_unit_interval


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass
class Settings:
    """Triage settings. Thresholds are fractions in [0, 1]."""

    environment: str = "dev"
    log_level: str = "INFO"

    # Auto-resolution policy
    auto_resolution_enabled: bool = True
    auto_resolution_categories: Tuple[str, ...] = ("account", "general")
    auto_resolution_max_priority: str = "medium"
    auto_resolve_threshold: float = 0.85
    auto_apply_enabled: bool = True

    # Knowledge retrieval
    knowledge_max_results: int = 10
    knowledge_min_score: float = 0.6
    semantic_top_n: int = 20
    category_score: float = 0.8
    tag_score: float = 0.6
    keyword_hit_score: float = 0.15
    recency_days: int = 30
    popularity_threshold: int = 100
    search_cache_size: int = 1000

    # Duplicate detection
    duplicate_threshold: float = 0.8
    duplicate_window_seconds: int = 86400  # 24h
    duplicate_cache_max: int = 5000

    # Response drafting
    template_confidence_threshold: float = 0.8
    response_max_length: int = 2000
    personalize: bool = True
    agent_name: str = "Support Agent"

    # Generative provider (Bedrock). Off by default to avoid surprise spend.
    generation_enabled: bool = False
    bedrock_model_id: str = "anthropic.claude-3-haiku-20240307-v1:0"
    bedrock_region: Optional[str] = None
    generation_max_tokens: int = 1000
    generation_temperature: float = 0.7
    generation_rate_limit_per_minute: int = 60
    generation_timeout_seconds: float = 10.0
    provider_workers: int = 4

    # Largest accepted POST /tickets/triage/batch request
    batch_max_size: int = 25

    # Calibration
    learning_rate: float = 0.1
    business_hours: Tuple[int, int] = field(default=(9, 17))

    rules_path: Optional[str] = None

    @classmethod
    def from_environment(cls) -> "Settings":
        """Load settings from environment variables."""
        defaults = cls()
        start, end = defaults.business_hours
        return cls(
            environment=os.environ.get("ENVIRONMENT", defaults.environment),
            log_level=os.environ.get("LOG_LEVEL", defaults.log_level),
            auto_resolution_enabled=_env_bool(
                "AUTO_RESOLUTION_ENABLED", defaults.auto_resolution_enabled
            ),
            auto_resolution_categories=_env_list(
                "AUTO_RESOLUTION_CATEGORIES", defaults.auto_resolution_categories
            ),
            auto_resolution_max_priority=os.environ.get(
                "AUTO_RESOLUTION_MAX_PRIORITY", defaults.auto_resolution_max_priority
            ),
            auto_resolve_threshold=float(
                os.environ.get("AUTO_RESOLVE_THRESHOLD", defaults.auto_resolve_threshold)
            ),
            auto_apply_enabled=_env_bool("AUTO_APPLY_ENABLED", defaults.auto_apply_enabled),
            knowledge_max_results=int(
                os.environ.get("KNOWLEDGE_MAX_RESULTS", defaults.knowledge_max_results)
            ),
            knowledge_min_score=float(
                os.environ.get("KNOWLEDGE_MIN_SCORE", defaults.knowledge_min_score)
            ),
            search_cache_size=int(
                os.environ.get("SEARCH_CACHE_SIZE", defaults.search_cache_size)
            ),
            duplicate_threshold=float(
                os.environ.get("DUPLICATE_THRESHOLD", defaults.duplicate_threshold)
            ),
            duplicate_window_seconds=int(
                os.environ.get("DUPLICATE_WINDOW_SECONDS", defaults.duplicate_window_seconds)
            ),
            response_max_length=int(
                os.environ.get("RESPONSE_MAX_LENGTH", defaults.response_max_length)
            ),
            personalize=_env_bool("PERSONALIZE_RESPONSES", defaults.personalize),
            agent_name=os.environ.get("AGENT_NAME", defaults.agent_name),
            generation_enabled=_env_bool("GENERATION_ENABLED", defaults.generation_enabled),
            bedrock_model_id=os.environ.get("MODEL_ID", defaults.bedrock_model_id),
            bedrock_region=os.environ.get("BEDROCK_REGION") or os.environ.get("AWS_REGION"),
            generation_max_tokens=int(
                os.environ.get("GENERATION_MAX_TOKENS", defaults.generation_max_tokens)
            ),
            generation_temperature=float(
                os.environ.get("GENERATION_TEMPERATURE", defaults.generation_temperature)
            ),
            generation_rate_limit_per_minute=int(
                os.environ.get(
                    "GENERATION_RATE_LIMIT", defaults.generation_rate_limit_per_minute
                )
            ),
            generation_timeout_seconds=float(
                os.environ.get("GENERATION_TIMEOUT_SECONDS", defaults.generation_timeout_seconds)
            ),
            batch_max_size=int(os.environ.get("BATCH_MAX_SIZE", defaults.batch_max_size)),
            learning_rate=float(os.environ.get("LEARNING_RATE", defaults.learning_rate)),
            business_hours=(
                int(os.environ.get("BUSINESS_HOURS_START", start)),
                int(os.environ.get("BUSINESS_HOURS_END", end)),
            ),
            rules_path=os.environ.get("RULES_PATH") or None,
        )

    def validate(self) -> "Settings":
        """Fail fast on deployment mistakes."""
        for name in (
            "auto_resolve_threshold",
            "knowledge_min_score",
            "category_score",
            "tag_score",
            "keyword_hit_score",
            "duplicate_threshold",
            "template_confidence_threshold",
            "generation_temperature",
            "learning_rate",
        ):
            ensure_unit_interval(getattr(self, name), name)

        for name in (
            "knowledge_max_results",
            "semantic_top_n",
            "search_cache_size",
            "duplicate_window_seconds",
            "duplicate_cache_max",
            "response_max_length",
            "generation_max_tokens",
            "generation_rate_limit_per_minute",
            "generation_timeout_seconds",
            "provider_workers",
            "batch_max_size",
        ):
            ensure_positive(getattr(self, name), name)

        if self.auto_resolution_max_priority not in PRIORITY_ORDER:
            raise ConfigurationError(
                f"auto_resolution_max_priority must be one of {PRIORITY_ORDER}"
            )
        start, end = self.business_hours
        if not 0 <= start < end <= 24:
            raise ConfigurationError(f"business_hours out of range: {self.business_hours}")
        if self.generation_enabled and not self.bedrock_model_id:
            raise ConfigurationError("MODEL_ID is required when generation is enabled")
        return self
