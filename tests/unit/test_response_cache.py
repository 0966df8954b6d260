# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the instant response cache."""

import random
from pathlib import Path

import pytest

from src.core.config.yaml_loader import YAMLLoadError
from src.domains.response_cache.patterns import (
    HALF_HOUR,
    HOUR,
    CachedResponsePattern,
    default_patterns,
    load_patterns,
    parse_patterns,
)
from src.domains.response_cache.service import ResponseCache, ResponseContext


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Provide a controllable clock."""
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> ResponseCache:
    """Provide a cache with the built-in patterns."""
    return ResponseCache(default_patterns(), clock=clock, rng=random.Random(7))


TEACHER = ResponseContext(role="teacher", language="en")
PARENT = ResponseContext(role="parent", language="en")


class TestPatterns:
    """Tests for pattern construction."""

    def test_default_patterns_order(self) -> None:
        """Test the greeting pattern is checked first."""
        patterns = default_patterns()

        assert len(patterns) == 15
        assert patterns[0].matcher.search("hello")
        assert patterns[0].roles is None

    def test_build_is_case_insensitive(self) -> None:
        """Test compiled patterns ignore case."""
        pattern = CachedResponsePattern.build("^open billing", ["Opening Billing..."])

        assert pattern.matcher.search("OPEN Billing please")

    def test_invalid_regex_raises(self) -> None:
        """Test invalid expressions are rejected."""
        with pytest.raises(ValueError):
            CachedResponsePattern.build("([unclosed", ["x"])

    def test_empty_responses_raise(self) -> None:
        """Test a pattern needs at least one response."""
        with pytest.raises(ValueError):
            CachedResponsePattern.build("^x$", [])

    def test_non_positive_ttl_raises(self) -> None:
        """Test TTL must be positive."""
        with pytest.raises(ValueError):
            CachedResponsePattern.build("^x$", ["x"], ttl_seconds=0)


class TestLookup:
    """Tests for lookup."""

    def test_greeting_hit(self, cache: ResponseCache) -> None:
        """Test a greeting is answered from the greeting responses."""
        response = cache.lookup("  Hello ")

        assert response in default_patterns()[0].responses
        assert cache.get_metrics().hits == 1

    def test_repeat_is_served_from_memo(self, cache: ResponseCache) -> None:
        """Test the same input returns the same memoized response."""
        first = cache.lookup("hello", TEACHER)
        second = cache.lookup("HELLO", TEACHER)

        assert first == second
        assert cache.memo_size() == 1
        assert cache.get_metrics().hits == 2

    def test_unknown_input_misses(self, cache: ResponseCache) -> None:
        """Test inputs without a pattern miss."""
        assert cache.lookup("Explain photosynthesis to a five year old") is None

        metrics = cache.get_metrics()
        assert metrics.misses == 1
        assert metrics.hit_rate == 0.0

    def test_role_allow_list(self, cache: ResponseCache) -> None:
        """Test staff navigation is not offered to parents."""
        assert cache.lookup("take me to attendance", PARENT) is None
        assert cache.lookup("take me to attendance", ResponseContext()) is None
        assert cache.lookup("take me to attendance", TEACHER) == (
            "I'll help you mark attendance. Opening Attendance..."
        )

    def test_role_is_case_insensitive(self, cache: ResponseCache) -> None:
        """Test role names are compared case-insensitively."""
        context = ResponseContext(role="Principal")

        assert cache.lookup("open worksheets", context) is not None

    def test_memo_is_not_shared_across_roles(self, cache: ResponseCache) -> None:
        """Test a staff answer memoized for a teacher is not served to a parent."""
        assert cache.lookup("open lessons", TEACHER) is not None

        assert cache.lookup("open lessons", PARENT) is None

    def test_memo_respects_language(self, cache: ResponseCache) -> None:
        """Test a memo recorded in one language is not reused for another."""
        cache.lookup("thanks", ResponseContext(language="en"))

        cache.lookup("thanks", ResponseContext(language="zu"))

        assert cache.get_metrics().hits == 2
        assert cache.memo_size() == 1

    def test_first_matching_pattern_wins(self, cache: ResponseCache) -> None:
        """Test navigation to lessons wins over the lesson generator pattern."""
        response = cache.lookup("show me lessons", TEACHER)

        assert response is not None
        assert "Lessons Hub" in response

    def test_required_context(self, clock: FakeClock) -> None:
        """Test patterns requiring context fields skip callers without them."""
        cache = ResponseCache(
            [
                CachedResponsePattern.build(
                    "^my school$",
                    ["Opening your school dashboard..."],
                    required_context=["organization_type"],
                )
            ],
            clock=clock,
        )

        assert cache.lookup("my school", ResponseContext(role="teacher")) is None
        assert cache.lookup("my school", ResponseContext(organization_type="preschool")) is not None

    def test_disabled_cache_always_misses(self, clock: FakeClock) -> None:
        """Test a disabled cache answers nothing and records nothing."""
        cache = ResponseCache(default_patterns(), enabled=False, clock=clock)

        assert cache.lookup("hello") is None
        assert cache.get_metrics().misses == 0


class TestExpiry:
    """Tests for memo TTL and eviction."""

    def test_expired_memo_is_rebuilt(self, cache: ResponseCache, clock: FakeClock) -> None:
        """Test an expired memo falls through to the pattern scan."""
        cache.lookup("open students", TEACHER)
        clock.now += HALF_HOUR + 1

        assert cache.lookup("open students", TEACHER) is not None
        assert cache.get_metrics().hits == 2

    def test_evict_expired(self, cache: ResponseCache, clock: FakeClock) -> None:
        """Test only expired memo entries are evicted."""
        cache.lookup("yes")
        cache.lookup("hello")
        clock.now += HALF_HOUR + 1

        assert cache.evict_expired() == 1
        assert cache.memo_size() == 1

        clock.now += HOUR
        assert cache.evict_expired() == 1
        assert cache.memo_size() == 0

    def test_clear_keeps_patterns(self, cache: ResponseCache) -> None:
        """Test clear empties the memo but not the patterns."""
        cache.lookup("hello")

        cache.clear()

        assert cache.memo_size() == 0
        assert cache.lookup("hello") is not None


class TestLearn:
    """Tests for learning patterns at runtime."""

    def test_learned_pattern_is_appended(self, cache: ResponseCache) -> None:
        """Test learned patterns are checked after the built-ins."""
        learned = cache.learn("^where are my invoices", ["Opening Billing..."], roles=["principal"])

        assert cache.patterns[-1] is learned
        assert learned.ttl_seconds == HOUR
        assert cache.lookup("where are my invoices?", ResponseContext(role="principal")) == (
            "Opening Billing..."
        )

    def test_learn_rejects_invalid_pattern(self, cache: ResponseCache) -> None:
        """Test invalid expressions are not added."""
        count = len(cache.patterns)

        with pytest.raises(ValueError):
            cache.learn("(", ["x"])

        assert len(cache.patterns) == count


class TestMetrics:
    """Tests for hit/miss metrics."""

    def test_hit_rate_and_latency(self, clock: FakeClock) -> None:
        """Test hit rate is rounded and latency averaged over hits only."""
        ticks = iter([0.0, 0.002, 1.0, 1.004, 2.0])
        cache = ResponseCache(default_patterns(), clock=clock, timer=lambda: next(ticks))

        cache.lookup("hello")
        cache.lookup("hello")
        cache.lookup("what is a noun")

        metrics = cache.get_metrics()
        assert metrics.hits == 2
        assert metrics.misses == 1
        assert metrics.hit_rate == 0.67
        assert metrics.avg_response_time_ms == 3.0

    def test_reset_metrics(self, cache: ResponseCache) -> None:
        """Test counters return to zero."""
        cache.lookup("hello")
        cache.lookup("unknown words")

        cache.reset_metrics()

        metrics = cache.get_metrics()
        assert (metrics.hits, metrics.misses, metrics.hit_rate) == (0, 0, 0.0)
        assert metrics.avg_response_time_ms == 0.0


class TestPatternFiles:
    """Tests for loading patterns from YAML."""

    def test_parse_patterns(self) -> None:
        """Test entries become patterns with defaults applied."""
        patterns = parse_patterns(
            {
                "patterns": [
                    {"pattern": "^open billing", "responses": ["Opening Billing..."]},
                    {
                        "pattern": "^fees",
                        "responses": ["Opening Fees..."],
                        "ttl_seconds": 60,
                        "roles": ["Principal"],
                        "uses_platform_knowledge": False,
                    },
                ]
            },
            default_ttl_seconds=120,
        )

        assert patterns[0].ttl_seconds == 120
        assert patterns[1].ttl_seconds == 60
        assert patterns[1].roles == frozenset({"principal"})
        assert patterns[1].uses_platform_knowledge is False

    @pytest.mark.parametrize(
        "data",
        [
            {"patterns": "not-a-list"},
            {"patterns": [{"responses": ["x"]}]},
            {"patterns": [{"pattern": "(", "responses": ["x"]}]},
            {"patterns": [{"pattern": "^x", "responses": []}]},
        ],
    )
    def test_malformed_entries_raise(self, data: dict) -> None:
        """Test malformed documents are rejected with the source named."""
        with pytest.raises(YAMLLoadError) as exc_info:
            parse_patterns(data, source="patterns.yaml")

        assert "patterns.yaml" in str(exc_info.value)

    def test_load_patterns_appends_file_entries(self, tmp_path: Path) -> None:
        """Test file patterns follow the built-ins."""
        path = tmp_path / "patterns.yaml"
        path.write_text(
            "patterns:\n"
            "  - pattern: '^open billing'\n"
            "    responses: ['Opening Billing...']\n"
        )

        patterns = load_patterns(str(path))

        assert len(patterns) == 16
        assert patterns[-1].matcher.pattern == "^open billing"

    def test_load_patterns_without_file(self) -> None:
        """Test no configured file yields the built-ins only."""
        assert len(load_patterns(None)) == 15
