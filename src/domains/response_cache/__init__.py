# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Instant response cache domain."""

from src.domains.response_cache.patterns import (
    CachedResponsePattern,
    default_patterns,
    load_patterns,
    parse_patterns,
)
from src.domains.response_cache.service import CacheMetrics, ResponseCache, ResponseContext

__all__ = [
    "CacheMetrics",
    "CachedResponsePattern",
    "ResponseCache",
    "ResponseContext",
    "default_patterns",
    "load_patterns",
    "parse_patterns",
]
