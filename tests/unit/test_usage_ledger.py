# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the usage ledger."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from src.core.config.settings import UsageSettings
from src.domains.quota.schemas import QuotaFeature
from src.domains.usage.ledger import MAX_QUEUE_LENGTH, UsageLedger, parse_usage
from src.infrastructure.cache.base import StoreError
from src.infrastructure.cache.memory import InMemoryStore

HOMEWORK = QuotaFeature.HOMEWORK_HELP
CHAT = QuotaFeature.CHAT_COMPLETIONS


class TestParseUsage:
    """Tests for parse_usage."""

    def test_fills_missing_features_with_zero(self) -> None:
        """Test every feature is present in the result."""
        usage = parse_usage({"homework_help": 3})

        assert usage is not None
        assert usage[HOMEWORK] == 3
        assert usage[CHAT] == 0
        assert set(usage) == set(QuotaFeature)

    def test_corrupt_values_read_as_zero(self) -> None:
        """Test unknown features are dropped and bad counts zeroed."""
        usage = parse_usage({"homework_help": "x", "chat_completions": -4, "bogus": 9})

        assert usage is not None
        assert usage[HOMEWORK] == 0
        assert usage[CHAT] == 0

    def test_non_mapping_returns_none(self) -> None:
        """Test non-mapping values are rejected."""
        assert parse_usage("garbage") is None
        assert parse_usage(None) is None


class TestIncrement:
    """Tests for recording usage."""

    @pytest.mark.asyncio
    async def test_increment_persists_under_period_key(
        self, ledger: UsageLedger, store: InMemoryStore
    ) -> None:
        """Test counters are stored per user and month."""
        await ledger.increment("user-1", HOMEWORK)
        await ledger.increment("user-1", HOMEWORK, 2)

        assert await store.get("ai_usage:user-1:202610") == {
            **{f.value: 0 for f in QuotaFeature},
            "homework_help": 3,
        }
        assert (await ledger.get_usage("user-1"))[HOMEWORK] == 3

    @pytest.mark.asyncio
    async def test_features_are_independent(self, ledger: UsageLedger) -> None:
        """Test each feature has its own counter."""
        await ledger.increment("user-1", HOMEWORK)
        usage = await ledger.increment("user-1", CHAT, 5)

        assert usage[HOMEWORK] == 1
        assert usage[CHAT] == 5

    @pytest.mark.asyncio
    async def test_zero_count_is_accepted(self, ledger: UsageLedger) -> None:
        """Test a zero increment records an event but no usage."""
        usage = await ledger.increment("user-1", HOMEWORK, 0)

        assert usage[HOMEWORK] == 0

    @pytest.mark.asyncio
    async def test_negative_count_raises(self, ledger: UsageLedger) -> None:
        """Test negative increments are rejected."""
        with pytest.raises(ValueError):
            await ledger.increment("user-1", HOMEWORK, -1)

    @pytest.mark.asyncio
    async def test_new_month_reads_as_zero(self, ledger: UsageLedger, clock) -> None:
        """Test a new period starts from zero without a reset job."""
        await ledger.increment("user-1", HOMEWORK, 4)

        clock.now = datetime(2026, 11, 1, 0, 0, 1, tzinfo=timezone.utc)

        assert ledger.current_period() == "202611"
        assert (await ledger.get_usage("user-1"))[HOMEWORK] == 0
        assert (await ledger.get_usage("user-1", "202610"))[HOMEWORK] == 4

    @pytest.mark.asyncio
    async def test_corrupt_record_reads_as_zero(
        self, ledger: UsageLedger, store: InMemoryStore
    ) -> None:
        """Test a non-mapping stored value is discarded."""
        await store.set("ai_usage:user-1:202610", ["not", "a", "record"])

        usage = await ledger.get_usage("user-1")

        assert usage[HOMEWORK] == 0

    @pytest.mark.asyncio
    async def test_event_sent_to_server(self, ledger: UsageLedger, server) -> None:
        """Test each increment is logged with its period and organization."""
        await ledger.increment("user-1", HOMEWORK, 2, organization_id="school-1")

        assert len(server.logged) == 1
        event = server.logged[0]
        assert event["user_id"] == "user-1"
        assert event["feature"] == "homework_help"
        assert event["count"] == 2
        assert event["period_key"] == "202610"
        assert event["organization_id"] == "school-1"

    @pytest.mark.asyncio
    async def test_store_read_failure_reads_as_zero(self, server, clock) -> None:
        """Test a failing store is absorbed on reads."""
        store = AsyncMock()
        store.get.side_effect = StoreError("down")
        ledger = UsageLedger(store, server, UsageSettings(), clock=clock)

        usage = await ledger.get_usage("user-1")

        assert usage[HOMEWORK] == 0


class TestRetryQueue:
    """Tests for queued delivery to the server of record."""

    @pytest.mark.asyncio
    async def test_failed_delivery_is_queued(self, ledger: UsageLedger, server) -> None:
        """Test events are queued while the server is failing."""
        server.fail_log = True

        await ledger.increment("user-1", HOMEWORK)
        await ledger.increment("user-1", CHAT)

        pending = await ledger.pending_events("user-1")
        assert [e["feature"] for e in pending] == ["homework_help", "chat_completions"]
        assert (await ledger.get_usage("user-1"))[HOMEWORK] == 1

    @pytest.mark.asyncio
    async def test_success_flushes_queue_in_order(self, ledger: UsageLedger, server) -> None:
        """Test the next successful delivery drains the queue FIFO."""
        server.fail_log = True
        await ledger.increment("user-1", HOMEWORK)
        await ledger.increment("user-1", CHAT)

        server.fail_log = False
        await ledger.increment("user-1", QuotaFeature.IMAGE_GENERATION)

        assert [e["feature"] for e in server.logged] == [
            "image_generation",
            "homework_help",
            "chat_completions",
        ]
        assert await ledger.pending_events("user-1") == []

    @pytest.mark.asyncio
    async def test_flush_pending_returns_delivered_count(self, ledger: UsageLedger, server) -> None:
        """Test an explicit flush reports how many events went out."""
        server.fail_log = True
        for _ in range(3):
            await ledger.increment("user-1", HOMEWORK)

        server.fail_log = False
        delivered = await ledger.flush_pending("user-1")

        assert delivered == 3
        assert len(server.logged) == 3

    @pytest.mark.asyncio
    async def test_flush_keeps_failed_events(self, ledger: UsageLedger, server) -> None:
        """Test events that still fail stay queued in order."""
        server.fail_log = True
        await ledger.increment("user-1", HOMEWORK)
        await ledger.increment("user-1", CHAT)

        delivered = await ledger.flush_pending("user-1")

        assert delivered == 0
        pending = await ledger.pending_events("user-1")
        assert [e["feature"] for e in pending] == ["homework_help", "chat_completions"]

    @pytest.mark.asyncio
    async def test_queue_is_bounded(
        self, store: InMemoryStore, server, clock
    ) -> None:
        """Test the oldest events are dropped beyond the queue bound."""
        ledger = UsageLedger(store, server, UsageSettings(), clock=clock)
        server.fail_log = True
        await store.set(
            "ai_usage_queue:user-1",
            [{"event_id": str(i), "feature": "homework_help"} for i in range(MAX_QUEUE_LENGTH)],
        )

        await ledger.increment("user-1", CHAT)

        pending = await ledger.pending_events("user-1")
        assert len(pending) == MAX_QUEUE_LENGTH
        assert pending[0]["event_id"] == "1"
        assert pending[-1]["feature"] == "chat_completions"

    @pytest.mark.asyncio
    async def test_disabled_server_skips_delivery(self, ledger: UsageLedger, server) -> None:
        """Test nothing is sent or queued without a server of record."""
        server.enabled = False

        await ledger.increment("user-1", HOMEWORK)

        assert server.logged == []
        assert await ledger.pending_events("user-1") == []


class TestCombinedUsage:
    """Tests for server-authoritative usage."""

    @pytest.mark.asyncio
    async def test_prefers_server_usage(self, ledger: UsageLedger, server) -> None:
        """Test server counters replace local ones."""
        await ledger.increment("user-1", HOMEWORK, 2)
        server.usage = {"usage": {"homework_help": 9}}

        usage = await ledger.get_combined_usage("user-1")

        assert usage[HOMEWORK] == 9

    @pytest.mark.asyncio
    async def test_accepts_used_field(self, ledger: UsageLedger, server) -> None:
        """Test the alternative used field is understood."""
        server.usage = {"used": {"chat_completions": 4}}

        usage = await ledger.get_combined_usage("user-1")

        assert usage[CHAT] == 4

    @pytest.mark.asyncio
    async def test_falls_back_to_local(self, ledger: UsageLedger, server) -> None:
        """Test local counters are used when the server has no answer."""
        await ledger.increment("user-1", HOMEWORK, 2)
        server.usage = None

        usage = await ledger.get_combined_usage("user-1")

        assert usage[HOMEWORK] == 2


class TestPruning:
    """Tests for period retention."""

    @pytest.mark.asyncio
    async def test_prunes_periods_outside_window(
        self, ledger: UsageLedger, store: InMemoryStore
    ) -> None:
        """Test only the current and previous period are kept."""
        for period in ("202607", "202608", "202609"):
            await store.set(f"ai_usage:user-1:{period}", {"homework_help": 1})
        await store.set("ai_usage:user-2:202601", {"homework_help": 1})

        deleted = await ledger.prune_stale_periods("user-1")

        assert deleted == 2
        remaining = await store.keys("ai_usage:user-1:")
        assert remaining == ["ai_usage:user-1:202609"]
        assert await store.get("ai_usage:user-2:202601") is not None

    @pytest.mark.asyncio
    async def test_increment_prunes_once_per_period(
        self, ledger: UsageLedger, store: InMemoryStore
    ) -> None:
        """Test pruning runs on the first increment of a period."""
        await store.set("ai_usage:user-1:202601", {"homework_help": 1})

        await ledger.increment("user-1", HOMEWORK)

        assert await store.get("ai_usage:user-1:202601") is None
        assert await store.get("ai_usage_pruned:user-1") == {"period": "202610"}

        await store.set("ai_usage:user-1:202602", {"homework_help": 1})
        await ledger.increment("user-1", HOMEWORK)

        assert await store.get("ai_usage:user-1:202602") is not None
