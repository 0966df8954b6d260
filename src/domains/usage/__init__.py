# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Usage domain.

Per-user monthly counters for AI features, reconciled with the server of
record through a retry queue.
"""

from src.domains.usage.ledger import UsageEvent, UsageLedger, empty_usage, parse_usage

__all__ = ["UsageEvent", "UsageLedger", "empty_usage", "parse_usage"]
