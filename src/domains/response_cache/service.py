# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Instant response cache.

Common inputs ("hello", "take me to attendance") are answered from canned,
role-aware responses without calling a model. A hit never touches quota or
usage: known vocabulary is answered for free.

Lookup order:
1. Exact memo of the normalized input, if unexpired and recorded under a
   compatible context
2. Ordered pattern scan; the first pattern that matches and whose role
   allow-list and required context accept the caller wins

Example:
    >>> cache = ResponseCache(default_patterns())
    >>> cache.lookup("Hello") is not None
    True
    >>> cache.get_metrics().hits
    1
"""

import logging
import random
import re
import time
from collections.abc import Callable
from dataclasses import dataclass

from pydantic import BaseModel

from src.domains.response_cache.patterns import HOUR, CachedResponsePattern

logger = logging.getLogger(__name__)


class ResponseContext(BaseModel):
    """Caller context used for eligibility checks."""

    role: str | None = None
    tier: str | None = None
    language: str | None = None
    user_name: str | None = None
    organization_type: str | None = None


class CacheMetrics(BaseModel):
    """Running hit/miss counters.

    avg_response_time_ms averages over hits only.
    """

    hits: int
    misses: int
    hit_rate: float
    avg_response_time_ms: float


@dataclass
class _MemoEntry:
    response: str
    expires_at: float
    role: str | None
    language: str | None


class ResponseCache:
    """Pattern-indexed canned responses with a memo of recent hits.

    The cache is in-process and synchronous; lookups do no I/O.
    """

    def __init__(
        self,
        patterns: list[CachedResponsePattern],
        *,
        enabled: bool = True,
        default_ttl_seconds: float = HOUR,
        clock: Callable[[], float] = time.monotonic,
        timer: Callable[[], float] = time.perf_counter,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            patterns: Patterns in match order.
            enabled: When False every lookup misses without recording metrics.
            default_ttl_seconds: TTL for learned patterns that give none.
            clock: Monotonic clock for expiry, in seconds.
            timer: High-resolution timer for hit latency, in seconds.
            rng: Random source for response selection.
        """
        self._patterns = list(patterns)
        self._enabled = enabled
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self._timer = timer
        self._rng = rng or random.Random()
        self._memo: dict[str, _MemoEntry] = {}
        self._hits = 0
        self._misses = 0
        self._hit_time_total = 0.0

    @property
    def patterns(self) -> list[CachedResponsePattern]:
        """Patterns in match order."""
        return list(self._patterns)

    @staticmethod
    def normalize(text: str) -> str:
        """Trim and lowercase input."""
        return text.strip().lower()

    @staticmethod
    def _memo_matches(entry: _MemoEntry, context: ResponseContext) -> bool:
        role = (context.role or "").lower() or None
        if entry.role is not None and entry.role != role:
            return False
        if entry.language is not None and entry.language != context.language:
            return False
        return True

    @staticmethod
    def _accepts(pattern: CachedResponsePattern, context: ResponseContext) -> bool:
        if pattern.roles is not None:
            if not context.role or context.role.lower() not in pattern.roles:
                return False
        for key in pattern.required_context:
            if not getattr(context, key, None):
                return False
        return True

    def lookup(self, text: str, context: ResponseContext | None = None) -> str | None:
        """Find an instant response.

        Args:
            text: Raw user input.
            context: Caller context; None means no role and no language.

        Returns:
            Response text, or None on a miss.
        """
        if not self._enabled:
            return None

        started = self._timer()
        context = context or ResponseContext()
        normalized = self.normalize(text)
        now = self._clock()

        entry = self._memo.get(normalized)
        if entry is not None and entry.expires_at > now and self._memo_matches(entry, context):
            self._record_hit(started)
            logger.debug("Response cache memo hit: %r", normalized)
            return entry.response

        for pattern in self._patterns:
            if not pattern.matcher.search(normalized):
                continue
            if not self._accepts(pattern, context):
                continue

            response = self._rng.choice(pattern.responses)
            self._memo[normalized] = _MemoEntry(
                response=response,
                expires_at=now + pattern.ttl_seconds,
                role=(context.role or "").lower() or None,
                language=context.language,
            )
            self._record_hit(started)
            logger.debug("Response cache pattern hit: %r", normalized)
            return response

        self._misses += 1
        logger.debug("Response cache miss: %r", normalized)
        return None

    def learn(
        self,
        pattern: str | re.Pattern[str],
        responses: list[str],
        *,
        ttl_seconds: float | None = None,
        roles: list[str] | None = None,
        required_context: list[str] | None = None,
        uses_platform_knowledge: bool = True,
    ) -> CachedResponsePattern:
        """Append a pattern after the existing ones.

        Raises:
            ValueError: On an invalid expression or an empty response list.
        """
        learned = CachedResponsePattern.build(
            pattern,
            responses,
            ttl_seconds=ttl_seconds or self._default_ttl,
            roles=roles,
            required_context=required_context,
            uses_platform_knowledge=uses_platform_knowledge,
        )
        self._patterns.append(learned)
        logger.info("Learned response pattern %r", learned.matcher.pattern)
        return learned

    def evict_expired(self) -> int:
        """Drop expired memo entries and return how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._memo.items() if entry.expires_at <= now]
        for key in expired:
            del self._memo[key]
        if expired:
            logger.debug("Evicted %d expired cached responses", len(expired))
        return len(expired)

    def clear(self) -> None:
        """Drop every memoized response; patterns are kept."""
        self._memo.clear()

    def memo_size(self) -> int:
        """Number of memoized inputs, expired ones included."""
        return len(self._memo)

    def _record_hit(self, started: float) -> None:
        self._hits += 1
        self._hit_time_total += self._timer() - started

    def get_metrics(self) -> CacheMetrics:
        """Current counters; hit rate rounded to two decimals."""
        total = self._hits + self._misses
        hit_rate = self._hits / total if total else 0.0
        avg_ms = (self._hit_time_total / self._hits) * 1000 if self._hits else 0.0
        return CacheMetrics(
            hits=self._hits,
            misses=self._misses,
            hit_rate=round(hit_rate, 2),
            avg_response_time_ms=round(avg_ms, 3),
        )

    def reset_metrics(self) -> None:
        """Zero the counters."""
        self._hits = 0
        self._misses = 0
        self._hit_time_total = 0.0
