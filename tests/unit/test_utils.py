"""
Utility tests: caches, rate limiter, text helpers, errors and configuration.

Run with: pytest tests/unit/test_utils.py -v
"""

import json
import logging

import pytest


class TestLRUCache:
    """Size-bounded retrieval cache."""

    def test_evicts_least_recently_used(self, clock):
        from utils.cache_service import LRUCache

        cache = LRUCache(max_size=2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.get("a") == 1  # a becomes most recent
        cache.set("c", 3)

        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3
        assert len(cache) == 2

    def test_ttl_expiry(self, clock):
        from utils.cache_service import LRUCache

        cache = LRUCache(max_size=10, ttl_seconds=60, clock=clock)
        cache.set("k", "v")
        clock.advance(seconds=61)
        assert cache.get("k") is None

    def test_delete_and_clear(self, clock):
        from utils.cache_service import LRUCache

        cache = LRUCache(max_size=10, clock=clock)
        cache.set("k", "v")
        assert cache.delete("k") is True
        assert cache.delete("k") is False
        cache.set("x", 1)
        cache.clear()
        assert cache.stats()["size"] == 0

    def test_parallel_writers_respect_max_size(self, clock):
        from concurrent.futures import ThreadPoolExecutor

        from utils.cache_service import LRUCache

        cache = LRUCache(max_size=50, clock=clock)

        def worker(n):
            for i in range(200):
                key = f"{n}-{i}"
                cache.set(key, i)
                value = cache.get(key)
                assert value is None or value == i

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(worker, range(8)))

        assert len(cache) == 50


class TestTimeWindowCache:
    """Duplicate-detection window."""

    def test_entries_expire_after_window(self, clock):
        from utils.cache_service import TimeWindowCache

        cache = TimeWindowCache(window_seconds=3600, clock=clock)
        cache.set("T-1", "old")
        clock.advance(minutes=30)
        cache.set("T-2", "new")
        clock.advance(minutes=31)

        assert cache.snapshot() == [("T-2", "new")]
        assert list(cache) == ["T-2"]

    def test_max_size_drops_oldest(self, clock):
        from utils.cache_service import TimeWindowCache

        cache = TimeWindowCache(window_seconds=3600, max_size=2, clock=clock)
        for key in ("a", "b", "c"):
            cache.set(key, key)
        assert [key for key, _ in cache.snapshot()] == ["b", "c"]

    def test_reset_moves_entry_to_newest(self, clock):
        from utils.cache_service import TimeWindowCache

        cache = TimeWindowCache(window_seconds=3600, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 3)
        assert cache.snapshot() == [("b", 2), ("a", 3)]

    def test_compare_and_add(self, clock):
        from utils.cache_service import TimeWindowCache

        cache = TimeWindowCache(window_seconds=3600, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)

        found = cache.compare_and_add("c", 2, lambda key, value: key if value == 2 else None)

        assert found == ["b"]
        assert [key for key, _ in cache.snapshot()] == ["a", "b", "c"]

    def test_parallel_compare_and_add_sees_every_pair_once(self, clock):
        """Each pair of concurrent adds is observed by exactly one of the two."""
        from concurrent.futures import ThreadPoolExecutor

        from utils.cache_service import TimeWindowCache

        cache = TimeWindowCache(window_seconds=3600, clock=clock)
        workers = 40

        def add(n):
            return cache.compare_and_add(str(n), "same", lambda key, value: key)

        with ThreadPoolExecutor(max_workers=8) as pool:
            seen = list(pool.map(add, range(workers)))

        pairs = {frozenset((str(n), key)) for n, keys in enumerate(seen) for key in keys}
        assert sum(len(keys) for keys in seen) == workers * (workers - 1) // 2
        assert len(pairs) == workers * (workers - 1) // 2
        assert len(cache) == workers


class TestRateLimiter:
    """Rolling one-minute provider budget."""

    def test_limit_enforced_then_released(self, clock):
        from utils.error_handling import RateLimitExceeded
        from utils.rate_limiter import RateLimiter

        limiter = RateLimiter(2, clock=clock, name="static")
        limiter.acquire()
        limiter.acquire()
        with pytest.raises(RateLimitExceeded):
            limiter.acquire()

        clock.advance(seconds=60)
        limiter.acquire()
        assert limiter.state() == {"limit_per_minute": 2, "used": 1, "remaining": 1}

    def test_parallel_acquire_grants_exactly_the_limit(self, clock):
        from concurrent.futures import ThreadPoolExecutor

        from utils.error_handling import RateLimitExceeded
        from utils.rate_limiter import RateLimiter

        limiter = RateLimiter(10, clock=clock, name="static")

        def attempt(_):
            try:
                limiter.acquire()
                return True
            except RateLimitExceeded:
                return False

        with ThreadPoolExecutor(max_workers=16) as pool:
            granted = list(pool.map(attempt, range(100)))

        assert granted.count(True) == 10
        assert limiter.state() == {"limit_per_minute": 10, "used": 10, "remaining": 0}


class TestText:
    """Tokenizing and keyword matching."""

    def test_tokenize_lowercases(self):
        from utils.text import tokenize

        assert tokenize("Payment FAILED, error-500!") == ["payment", "failed", "error", "500"]
        assert tokenize(None) == []

    def test_keyword_match_uses_word_boundaries(self):
        from utils.text import contains_keyword, count_keywords

        assert contains_keyword("please add a seat", "add")
        assert not contains_keyword("update my address", "add")
        assert count_keywords("the api is not working", ["api", "not working", "down"]) == [
            "api",
            "not working",
        ]

    def test_stem_collapses_inflections(self):
        from utils.text import stem

        assert stem("charges") == stem("charge")

    def test_strip_html(self):
        from utils.text import strip_html

        assert "<" not in strip_html("<p>Hello <b>there</b></p>")

    def test_clamp(self):
        from utils.text import clamp

        assert clamp(1.5) == 1.0
        assert clamp(-2, -1, 1) == -1


class TestErrors:
    """Error mapping for API responses."""

    def test_to_response_includes_correlation_id(self):
        from utils.error_handling import NotFoundError, to_response

        response = to_response(NotFoundError("Suggestion x not found"), "corr-1")
        body = json.loads(response["body"])
        assert response["statusCode"] == 404
        assert body["message"] == "Suggestion x not found"
        assert body["correlation_id"] == "corr-1"

    def test_provider_error_family(self):
        from utils.error_handling import ProviderError, ProviderTimeout, RateLimitExceeded

        assert issubclass(ProviderTimeout, ProviderError)
        assert issubclass(RateLimitExceeded, ProviderError)
        assert ProviderTimeout("slow", provider="bedrock").provider == "bedrock"

    def test_validators(self):
        from utils.error_handling import ConfigurationError, ValidationError
        from utils.validators import ensure_positive, ensure_present, ensure_unit_interval

        with pytest.raises(ValidationError):
            ensure_present("", "outcome")
        with pytest.raises(ConfigurationError):
            ensure_unit_interval(1.1, "threshold")
        with pytest.raises(ConfigurationError):
            ensure_positive(0, "max_results")


class TestLogging:
    def test_logger_uses_json_formatter(self):
        from pythonjsonlogger import jsonlogger

        from utils.logging_config import get_logger

        logger = get_logger("tests.logging")
        assert isinstance(logger.handlers[0].formatter, jsonlogger.JsonFormatter)
        assert get_logger("tests.logging") is logger
        assert len(logger.handlers) == 1

    def test_stage_timer_reports_duration(self):
        from utils.logging_config import stage_timer

        logger = logging.getLogger("tests.stage_timer")
        with stage_timer(logger, "classification", trace_id="t") as timing:
            pass
        assert timing["duration_ms"] >= 0


class TestSettings:
    """Settings loading and validation."""

    def test_defaults_are_valid(self):
        from config.settings import Settings

        settings = Settings().validate()
        assert settings.auto_resolve_threshold == 0.85
        assert settings.generation_enabled is False
        assert settings.auto_resolution_categories == ("account", "general")

    def test_from_environment(self, monkeypatch):
        from config.settings import Settings

        monkeypatch.setenv("AUTO_RESOLVE_THRESHOLD", "0.7")
        monkeypatch.setenv("AUTO_RESOLUTION_CATEGORIES", "account, billing")
        monkeypatch.setenv("AUTO_APPLY_ENABLED", "false")
        monkeypatch.setenv("KNOWLEDGE_MAX_RESULTS", "5")
        monkeypatch.setenv("BUSINESS_HOURS_START", "8")

        settings = Settings.from_environment()
        assert settings.auto_resolve_threshold == 0.7
        assert settings.auto_resolution_categories == ("account", "billing")
        assert settings.auto_apply_enabled is False
        assert settings.knowledge_max_results == 5
        assert settings.business_hours == (8, 17)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"auto_resolve_threshold": 1.5},
            {"knowledge_max_results": 0},
            {"auto_resolution_max_priority": "critical"},
            {"business_hours": (18, 9)},
            {"generation_enabled": True, "bedrock_model_id": ""},
        ],
    )
    def test_invalid_settings_raise(self, overrides):
        from config.settings import Settings
        from utils.error_handling import ConfigurationError

        with pytest.raises(ConfigurationError):
            Settings(**overrides).validate()


class TestRules:
    """Rule tables."""

    def test_default_rules_cover_routing_for_every_category(self):
        from config.rules import RuleSet

        rules = RuleSet.default()
        assert set(rules.category_keywords) <= set(rules.routing_rules)
        assert rules.steps_for("shipping") == rules.troubleshooting_steps["technical"]

    def test_rules_file_overrides_tables(self, tmp_path):
        from config.rules import RuleSet

        path = tmp_path / "rules.json"
        path.write_text(json.dumps({"urgency_indicators": ["sev1"]}))

        rules = RuleSet.from_file(str(path))
        assert rules.urgency_indicators == ["sev1"]
        assert "billing" in rules.category_keywords

    def test_unreadable_rules_file_is_configuration_error(self, tmp_path):
        from config.rules import RuleSet
        from utils.error_handling import ConfigurationError

        path = tmp_path / "rules.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError):
            RuleSet.from_file(str(path))
        with pytest.raises(ConfigurationError):
            RuleSet.load(str(tmp_path / "missing.json"))

    def test_stemmed_lexicon(self):
        from config.rules import RuleSet
        from utils.text import stem

        lexicon = RuleSet.default().stemmed_lexicon()
        assert lexicon[stem("frustrated")] < 0
        assert lexicon[stem("thanks")] > 0
