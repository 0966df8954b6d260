# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API middleware components.

This package provides middleware for request processing:
- RequestContextMiddleware: Binds request ids to the logging context.

Exports:
    RequestContextMiddleware: Request context middleware.
"""

from src.api.middleware.request_context import RequestContextMiddleware

__all__ = [
    "RequestContextMiddleware",
]
