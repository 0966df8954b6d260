# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Instant response cache API endpoints.

This module provides endpoints for the response cache:
- POST /lookup - Instant answer for an input, if one applies
- GET /metrics - Hit/miss counters and average hit latency
- POST /metrics/reset - Zero the counters
- POST /evict - Drop expired memoized answers

Cache hits do not consume quota. Every endpoint requires an identified caller.
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.api.dependencies import get_caller, get_response_cache
from src.domains.quota.schemas import Caller
from src.domains.response_cache.service import CacheMetrics, ResponseCache, ResponseContext

logger = logging.getLogger(__name__)

router = APIRouter()


class LookupRequest(BaseModel):
    """Cache lookup request."""

    input: str = Field(description="Raw user input")
    language: str | None = Field(default=None, description="Caller language")
    user_name: str | None = Field(default=None, description="Caller display name")


class LookupResponse(BaseModel):
    """Cache lookup result."""

    hit: bool
    response: str | None = None


class EvictResponse(BaseModel):
    """Eviction result."""

    evicted: int


@router.post("/lookup", response_model=LookupResponse, summary="Look up an instant response")
async def lookup(
    data: LookupRequest,
    caller: Caller = Depends(get_caller),
    cache: ResponseCache = Depends(get_response_cache),
) -> LookupResponse:
    """Return a canned response when the input matches a known pattern."""
    context = ResponseContext(
        role=caller.role,
        tier=caller.subscription_tier,
        language=data.language,
        user_name=data.user_name,
        organization_type=caller.resolved_organization_type().value,
    )
    response = cache.lookup(data.input, context)
    return LookupResponse(hit=response is not None, response=response)


@router.get("/metrics", response_model=CacheMetrics, summary="Get cache metrics")
async def get_metrics(
    caller: Caller = Depends(get_caller),
    cache: ResponseCache = Depends(get_response_cache),
) -> CacheMetrics:
    """Hit/miss counters and average hit latency."""
    return cache.get_metrics()


@router.post("/metrics/reset", response_model=CacheMetrics, summary="Reset cache metrics")
async def reset_metrics(
    caller: Caller = Depends(get_caller),
    cache: ResponseCache = Depends(get_response_cache),
) -> CacheMetrics:
    """Zero the counters and return them."""
    logger.info("Response cache metrics reset by %s", caller.user_id)
    cache.reset_metrics()
    return cache.get_metrics()


@router.post("/evict", response_model=EvictResponse, summary="Evict expired responses")
async def evict_expired(
    caller: Caller = Depends(get_caller),
    cache: ResponseCache = Depends(get_response_cache),
) -> EvictResponse:
    """Drop expired memoized answers."""
    return EvictResponse(evicted=cache.evict_expired())
