# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the AI request gateway."""

from unittest.mock import AsyncMock

import pytest
import structlog

from src.domains.allocation.schemas import OrganizationContext
from src.domains.allocation.service import OrganizationAllocationPool
from src.domains.gateway.service import AIGateway, GatewayOutcome
from src.domains.quota.schemas import Caller, QuotaFeature
from src.domains.quota.service import QuotaEngine
from src.domains.response_cache.patterns import default_patterns
from src.domains.response_cache.service import ResponseCache
from src.domains.usage.ledger import UsageLedger

HOMEWORK = QuotaFeature.HOMEWORK_HELP
CHAT = QuotaFeature.CHAT_COMPLETIONS


@pytest.fixture
def cache() -> ResponseCache:
    """Provide a response cache with the built-in patterns."""
    return ResponseCache(default_patterns())


@pytest.fixture
def gateway(
    engine: QuotaEngine,
    ledger: UsageLedger,
    cache: ResponseCache,
    pool: OrganizationAllocationPool,
) -> AIGateway:
    """Provide a gateway over the shared fakes."""
    return AIGateway(engine, ledger, cache, pool)


class TestGateway:
    """Tests for AIGateway.handle."""

    @pytest.mark.asyncio
    async def test_completed_request_records_usage(
        self, gateway: AIGateway, ledger: UsageLedger, server, free_parent: Caller
    ) -> None:
        """Test a successful model call is counted once."""
        model_call = AsyncMock(return_value="Nouns name things.")

        result = await gateway.handle(free_parent, HOMEWORK, "what is a noun", model_call)

        assert result.outcome == GatewayOutcome.COMPLETED
        assert result.text == "Nouns name things."
        model_call.assert_awaited_once()
        assert (await ledger.get_usage(free_parent.user_id))[HOMEWORK] == 1
        assert server.logged[0]["feature"] == "homework_help"

    @pytest.mark.asyncio
    async def test_denied_request_skips_model(
        self, gateway: AIGateway, ledger: UsageLedger, server, free_parent: Caller
    ) -> None:
        """Test an exhausted quota is returned without calling the model."""
        server.enabled = False
        await ledger.increment(free_parent.user_id, HOMEWORK, 15)
        model_call = AsyncMock(return_value="unused")

        result = await gateway.handle(free_parent, HOMEWORK, "hello", model_call)

        assert result.outcome == GatewayOutcome.DENIED
        assert result.decision.reason == "over_quota"
        assert result.text is None
        model_call.assert_not_awaited()
        context = structlog.contextvars.get_contextvars()
        assert context["feature"] == "homework_help"
        assert context["tier"] == "free"
        assert context["decision"] == "over_quota"

    @pytest.mark.asyncio
    async def test_cache_hit_skips_model_and_usage(
        self, gateway: AIGateway, ledger: UsageLedger, cache: ResponseCache, free_parent: Caller
    ) -> None:
        """Test a cached answer costs nothing."""
        model_call = AsyncMock(return_value="unused")

        result = await gateway.handle(free_parent, CHAT, "Hello", model_call, language="en")

        assert result.outcome == GatewayOutcome.CACHED
        assert result.text
        assert structlog.contextvars.get_contextvars()["decision"] == "cached"
        model_call.assert_not_awaited()
        assert (await ledger.get_usage(free_parent.user_id))[CHAT] == 0
        assert cache.get_metrics().hits == 1

    @pytest.mark.asyncio
    async def test_cache_can_be_bypassed(
        self, gateway: AIGateway, free_parent: Caller
    ) -> None:
        """Test use_cache=False always calls the model."""
        model_call = AsyncMock(return_value="Hi from the model")

        result = await gateway.handle(free_parent, CHAT, "hello", model_call, use_cache=False)

        assert result.outcome == GatewayOutcome.COMPLETED
        assert result.text == "Hi from the model"

    @pytest.mark.asyncio
    async def test_failed_model_call_leaves_counters(
        self, gateway: AIGateway, ledger: UsageLedger, server, free_parent: Caller
    ) -> None:
        """Test a failing model call propagates and records nothing."""
        model_call = AsyncMock(side_effect=RuntimeError("provider down"))

        with pytest.raises(RuntimeError):
            await gateway.handle(free_parent, HOMEWORK, "what is a noun", model_call)

        assert (await ledger.get_usage(free_parent.user_id))[HOMEWORK] == 0
        assert server.logged == []

    @pytest.mark.asyncio
    async def test_allocation_usage_is_recorded(
        self,
        gateway: AIGateway,
        pool: OrganizationAllocationPool,
        principal: Caller,
        teacher: Caller,
    ) -> None:
        """Test members with an allocation draw it down on success."""
        await pool.allocate(
            OrganizationContext.from_caller(principal), principal, teacher.user_id, {"homework_help": 25}
        )
        model_call = AsyncMock(return_value="Here is a worksheet idea.")

        result = await gateway.handle(teacher, HOMEWORK, "ideas for counting games", model_call, count=3)

        assert result.outcome == GatewayOutcome.COMPLETED
        assert result.decision.limits.source == "org_allocation"
        allocation = await pool.get_member_allocation("school-1", teacher.user_id)
        assert allocation is not None
        assert allocation.used_quotas[HOMEWORK] == 3
        assert allocation.remaining_quotas[HOMEWORK] == 22

    @pytest.mark.asyncio
    async def test_no_allocation_usage_without_allocation(
        self, gateway: AIGateway, pool: OrganizationAllocationPool, teacher: Caller
    ) -> None:
        """Test members without an allocation only touch the ledger."""
        model_call = AsyncMock(return_value="ok")

        result = await gateway.handle(teacher, HOMEWORK, "ideas for counting games", model_call)

        assert result.decision.limits.source != "org_allocation"
        assert await pool.get_member_allocation("school-1", teacher.user_id) is None

    @pytest.mark.asyncio
    async def test_negative_count_raises(self, gateway: AIGateway, free_parent: Caller) -> None:
        """Test invalid counts are rejected before anything else."""
        with pytest.raises(ValueError):
            await gateway.handle(free_parent, HOMEWORK, "hi", AsyncMock(), count=-1)

    def test_context_for_caller(self, teacher: Caller) -> None:
        """Test the cache context carries role, language and organization type."""
        context = AIGateway.context_for(teacher, "zu")

        assert context.role == "teacher"
        assert context.language == "zu"
        assert context.organization_type == "preschool"
