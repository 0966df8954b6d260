# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""AI request gateway.

Runs one AI request through entitlement, the instant response cache and
usage accounting:

1. QuotaEngine.can_use; a denial is returned as-is
2. ResponseCache.lookup; a hit is returned without touching usage
3. the supplied model call
4. only after it succeeds: UsageLedger.increment, plus the member's
   organization allocation when limits came from one

A failing model call propagates and leaves every counter untouched.

Example:
    >>> result = await gateway.handle(
    ...     caller,
    ...     QuotaFeature.CHAT_COMPLETIONS,
    ...     prompt,
    ...     model_call=lambda: llm.complete(prompt),
    ... )
    >>> if result.outcome == GatewayOutcome.DENIED:
    ...     show_upgrade(result.decision.reason)
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from src.domains.allocation.service import OrganizationAllocationPool
from src.domains.quota.schemas import Caller, CanUseResult, QuotaFeature
from src.domains.quota.service import QuotaEngine
from src.domains.response_cache.service import ResponseCache, ResponseContext
from src.domains.usage.ledger import UsageLedger
from src.infrastructure.cache.base import StoreError
from src.utils.logging import bind_context

logger = logging.getLogger(__name__)

ModelCall = Callable[[], Awaitable[str]]


class GatewayOutcome(str, Enum):
    """How a gateway request was answered."""

    DENIED = "denied"
    CACHED = "cached"
    COMPLETED = "completed"


@dataclass
class GatewayResult:
    """Result of a gateway request."""

    outcome: GatewayOutcome
    decision: CanUseResult
    text: str | None = None


class AIGateway:
    """Entry point for AI-assisted requests."""

    def __init__(
        self,
        quota: QuotaEngine,
        ledger: UsageLedger,
        cache: ResponseCache,
        pool: OrganizationAllocationPool,
    ) -> None:
        self._quota = quota
        self._ledger = ledger
        self._cache = cache
        self._pool = pool

    @staticmethod
    def context_for(caller: Caller, language: str | None = None) -> ResponseContext:
        """Response cache context for a caller."""
        return ResponseContext(
            role=caller.role,
            tier=caller.subscription_tier,
            language=language,
            organization_type=caller.resolved_organization_type().value,
        )

    async def handle(
        self,
        caller: Caller,
        feature: QuotaFeature,
        text: str | None,
        model_call: ModelCall,
        *,
        count: int = 1,
        language: str | None = None,
        use_cache: bool = True,
    ) -> GatewayResult:
        """Answer one AI request.

        Args:
            caller: Requesting user.
            feature: Feature the request consumes.
            text: User input, checked against the response cache.
            model_call: Coroutine factory performing the paid call.
            count: Units the request consumes.
            language: Caller language, for cache eligibility.
            use_cache: Whether the response cache may answer.

        Returns:
            Gateway result.

        Raises:
            ValueError: If count is negative.
            Exception: Whatever model_call raises.
        """
        decision = await self._quota.can_use(caller, feature, count)
        bind_context(feature=feature.value, tier=decision.limits.tier.value)
        if not decision.allowed:
            bind_context(decision=decision.reason)
            logger.info("Gateway request denied")
            return GatewayResult(outcome=GatewayOutcome.DENIED, decision=decision)

        if use_cache and text:
            cached = self._cache.lookup(text, self.context_for(caller, language))
            if cached is not None:
                bind_context(decision=GatewayOutcome.CACHED.value)
                logger.debug("Gateway request answered from cache")
                return GatewayResult(
                    outcome=GatewayOutcome.CACHED,
                    decision=decision,
                    text=cached,
                )

        answer = await model_call()

        await self._ledger.increment(
            caller.user_id,
            feature,
            count,
            organization_id=caller.organization_id,
        )
        if decision.limits.source == "org_allocation" and caller.organization_id:
            try:
                await self._pool.record_usage(
                    caller.organization_id, caller.user_id, feature, count
                )
            except StoreError as e:
                logger.error(
                    "Failed to record allocation usage for %s in %s: %s",
                    caller.user_id,
                    caller.organization_id,
                    e,
                )
        bind_context(decision=GatewayOutcome.COMPLETED.value)
        logger.debug("Gateway request completed")
        return GatewayResult(outcome=GatewayOutcome.COMPLETED, decision=decision, text=answer)
