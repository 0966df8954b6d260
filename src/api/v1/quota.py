# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Quota API endpoints.

This module provides endpoints for entitlement checks:
- GET /limits - Effective limits of the caller
- GET /{feature} - Usage position of one feature
- POST /check - Admission decision for a feature and count

Checks are read-only; they never change usage.

Example:
    POST /api/v1/quota/check
    {
        "feature": "homework_help",
        "count": 1
    }
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.api.dependencies import get_caller, get_quota_engine
from src.domains.quota.schemas import (
    Caller,
    CanUseResult,
    EffectiveLimits,
    QuotaFeature,
    QuotaStatus,
)
from src.domains.quota.service import QuotaEngine

logger = logging.getLogger(__name__)

router = APIRouter()


class QuotaCheckRequest(BaseModel):
    """Admission check request."""

    feature: QuotaFeature = Field(description="Requested feature")
    count: int = Field(default=1, ge=0, description="Units the request will consume")


@router.get(
    "/limits",
    response_model=EffectiveLimits,
    summary="Get effective limits",
)
async def get_limits(
    caller: Caller = Depends(get_caller),
    engine: QuotaEngine = Depends(get_quota_engine),
) -> EffectiveLimits:
    """Resolve tier, quotas and allocation rights of the caller."""
    return await engine.get_effective_limits(caller)


@router.post(
    "/check",
    response_model=CanUseResult,
    summary="Check whether a request is allowed",
)
async def check_quota(
    data: QuotaCheckRequest,
    caller: Caller = Depends(get_caller),
    engine: QuotaEngine = Depends(get_quota_engine),
) -> CanUseResult:
    """Decide whether the caller may consume count units of a feature.

    A denial is a normal response with allowed=false and a reason
    (over_quota, suspended or not_enabled), not an HTTP error.
    """
    return await engine.can_use(caller, data.feature, data.count)


@router.get(
    "/{feature}",
    response_model=QuotaStatus,
    summary="Get feature usage position",
)
async def get_feature_status(
    feature: QuotaFeature,
    caller: Caller = Depends(get_caller),
    engine: QuotaEngine = Depends(get_quota_engine),
) -> QuotaStatus:
    """Report used, limit and remaining for one feature."""
    return await engine.get_quota_status(caller, feature)
