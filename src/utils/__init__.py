# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers for the AI Interaction Gateway.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog
- datetime: Timezone-aware datetime operations and billing period keys
"""

from src.utils.datetime import (
    ensure_utc,
    period_bounds,
    period_key,
    shift_period,
    utc_now,
)
from src.utils.logging import bind_context, clear_context, setup_logging

__all__ = [
    # Logging
    "setup_logging",
    "bind_context",
    "clear_context",
    # Datetime
    "utc_now",
    "ensure_utc",
    "period_key",
    "shift_period",
    "period_bounds",
]
