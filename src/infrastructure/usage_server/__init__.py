# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Usage server of record client."""

from src.infrastructure.usage_server.client import (
    ServerResult,
    UsageServerClient,
    UsageServerError,
)

__all__ = [
    "ServerResult",
    "UsageServerClient",
    "UsageServerError",
]
