# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

This package contains all v1 API endpoint definitions.
Each module provides a FastAPI router for a specific domain.

Modules:
    quota: Effective limits and admission checks.
    usage: Usage counters, increments and queue flushes.
    allocations: Organization pool and member allocations.
    response_cache: Instant responses and cache metrics.
"""

from fastapi import APIRouter

from src.api.v1 import allocations, quota, response_cache, usage

# Create the main v1 router
router = APIRouter(prefix="/api/v1")

# Include domain routers
router.include_router(quota.router, prefix="/quota", tags=["Quota"])
router.include_router(usage.router, prefix="/usage", tags=["Usage"])
router.include_router(allocations.router, prefix="/organizations", tags=["Allocations"])
router.include_router(response_cache.router, prefix="/response-cache", tags=["Response Cache"])

__all__ = ["router"]
