# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Usage API endpoints.

This module provides endpoints for usage accounting:
- GET / - Current period usage (server of record, else local)
- POST /increment - Record confirmed consumption
- POST /flush - Retry queued usage events

Increments must only be sent after the AI call succeeded.
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.api.dependencies import (
    GatewayServices,
    get_caller,
    get_services,
    get_usage_ledger,
)
from src.domains.quota.schemas import Caller, QuotaFeature, UsageRecord
from src.domains.usage.ledger import UsageLedger
from src.infrastructure.cache.base import StoreError

logger = logging.getLogger(__name__)

router = APIRouter()


class UsageResponse(BaseModel):
    """Usage counters for a period."""

    period_key: str
    usage: UsageRecord


class UsageIncrementRequest(BaseModel):
    """Confirmed consumption to record."""

    feature: QuotaFeature
    count: int = Field(default=1, ge=0)


class FlushResponse(BaseModel):
    """Outcome of a queue flush."""

    delivered: int
    pending: int


@router.get("", response_model=UsageResponse, summary="Get current usage")
async def get_usage(
    caller: Caller = Depends(get_caller),
    ledger: UsageLedger = Depends(get_usage_ledger),
) -> UsageResponse:
    """Usage for the current period, preferring the server of record."""
    usage = await ledger.get_combined_usage(caller.user_id)
    return UsageResponse(period_key=ledger.current_period(), usage=usage)


@router.post("/increment", response_model=UsageResponse, summary="Record usage")
async def increment_usage(
    data: UsageIncrementRequest,
    caller: Caller = Depends(get_caller),
    services: GatewayServices = Depends(get_services),
) -> UsageResponse:
    """Record confirmed consumption, including the member's allocation."""
    usage = await services.ledger.increment(
        caller.user_id,
        data.feature,
        data.count,
        organization_id=caller.organization_id,
    )
    if caller.organization_id:
        try:
            await services.pool.record_usage(
                caller.organization_id, caller.user_id, data.feature, data.count
            )
        except StoreError as e:
            logger.error("Failed to record allocation usage for %s: %s", caller.user_id, e)
    return UsageResponse(period_key=services.ledger.current_period(), usage=usage)


@router.post("/flush", response_model=FlushResponse, summary="Retry queued usage events")
async def flush_usage(
    caller: Caller = Depends(get_caller),
    ledger: UsageLedger = Depends(get_usage_ledger),
) -> FlushResponse:
    """Deliver queued usage events to the server of record."""
    delivered = await ledger.flush_pending(caller.user_id)
    pending = await ledger.pending_events(caller.user_id)
    return FlushResponse(delivered=delivered, pending=len(pending))
