# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Per-user, per-period AI usage counters.

Counters live in the key-value store under ``{namespace}:{user_id}:{YYYYMM}``.
A new month reads as zeros without any reset job. Every increment is also
sent to the server of record as a ``log`` event; events that cannot be
delivered are appended to a per-user retry queue and flushed on the next
successful delivery. Delivery is at-least-once.

Example:
    ledger = UsageLedger(store, server, settings.usage)
    await ledger.increment("user-1", QuotaFeature.HOMEWORK_HELP)
    usage = await ledger.get_combined_usage("user-1")
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from pydantic import BaseModel, Field

from src.domains.quota.schemas import QuotaFeature, UsageRecord
from src.infrastructure.cache.base import KeyValueStore, StoreError
from src.utils.datetime import period_key, shift_period, utc_now

if TYPE_CHECKING:
    from src.core.config.settings import UsageSettings
    from src.infrastructure.usage_server.client import UsageServerClient

logger = logging.getLogger(__name__)

MAX_QUEUE_LENGTH = 500


class UsageEvent(BaseModel):
    """A single confirmed consumption of an AI feature."""

    event_id: str = Field(default_factory=lambda: uuid4().hex)
    user_id: str
    feature: QuotaFeature
    count: int = Field(ge=0)
    period_key: str
    organization_id: str | None = None
    occurred_at: datetime = Field(default_factory=utc_now)


def empty_usage() -> UsageRecord:
    """Usage record with every feature at zero."""
    return {feature: 0 for feature in QuotaFeature}


def parse_usage(raw: Any) -> UsageRecord | None:
    """Parse a stored or server usage mapping.

    Unknown features are ignored and negative or non-numeric counts read as
    zero. Returns None when raw is not a mapping.
    """
    if not isinstance(raw, dict):
        return None
    usage = empty_usage()
    for name, value in raw.items():
        try:
            feature = QuotaFeature(str(name))
        except ValueError:
            continue
        try:
            usage[feature] = max(0, int(value))
        except (TypeError, ValueError):
            usage[feature] = 0
    return usage


def _dump_usage(usage: UsageRecord) -> dict[str, int]:
    return {feature.value: count for feature, count in usage.items()}


class UsageLedger:
    """Local usage counters reconciled with the server of record."""

    def __init__(
        self,
        store: KeyValueStore,
        server: "UsageServerClient",
        settings: "UsageSettings",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the ledger.

        Args:
            store: Key-value store for counters and the retry queue.
            server: Usage server client.
            settings: Usage settings (namespace, retention).
            clock: Source of the current time, for period keys.
        """
        self._store = store
        self._server = server
        self._namespace = settings.namespace
        self._retain_periods = settings.retain_periods
        self._clock = clock

    def current_period(self) -> str:
        """Period key for the current UTC month."""
        return period_key(self._clock())

    def _usage_key(self, user_id: str, period: str) -> str:
        return f"{self._namespace}:{user_id}:{period}"

    def _queue_key(self, user_id: str) -> str:
        return f"{self._namespace}_queue:{user_id}"

    def _pruned_key(self, user_id: str) -> str:
        return f"{self._namespace}_pruned:{user_id}"

    async def get_usage(self, user_id: str, period: str | None = None) -> UsageRecord:
        """Read the local counters for a period.

        Args:
            user_id: User identifier.
            period: Period key, defaults to the current month.

        Returns:
            Usage record; missing or corrupt data reads as zeros.
        """
        key = self._usage_key(user_id, period or self.current_period())
        try:
            raw = await self._store.get(key)
        except StoreError as e:
            logger.warning("Failed to read usage %s: %s", key, e)
            return empty_usage()

        usage = parse_usage(raw)
        if usage is None:
            if raw is not None:
                logger.warning("Discarding corrupt usage record %s", key)
            return empty_usage()
        return usage

    async def increment(
        self,
        user_id: str,
        feature: QuotaFeature,
        count: int = 1,
        organization_id: str | None = None,
    ) -> UsageRecord:
        """Record confirmed consumption of a feature.

        Call this only after the external action succeeded.

        Args:
            user_id: User identifier.
            feature: Consumed feature.
            count: Units consumed.
            organization_id: Organization the usage is attributed to.

        Returns:
            Updated local usage record for the current period.

        Raises:
            ValueError: If count is negative.
        """
        if count < 0:
            raise ValueError("count must be non-negative")

        period = self.current_period()
        usage = await self.get_usage(user_id, period)
        usage[feature] = usage.get(feature, 0) + count
        key = self._usage_key(user_id, period)
        try:
            await self._store.set(key, _dump_usage(usage))
        except StoreError as e:
            logger.error("Failed to persist usage %s: %s", key, e)

        event = UsageEvent(
            user_id=user_id,
            feature=feature,
            count=count,
            period_key=period,
            organization_id=organization_id,
            occurred_at=self._clock(),
        )
        await self._deliver(event)
        await self._maybe_prune(user_id, period)
        return usage

    async def _deliver(self, event: UsageEvent) -> None:
        if not self._server.enabled:
            return

        result = await self._server.log_event(event.model_dump(mode="json"))
        if result.ok:
            await self.flush_pending(event.user_id)
        else:
            await self._enqueue(event.user_id, [event.model_dump(mode="json")])

    async def _read_queue(self, user_id: str) -> list[dict[str, Any]]:
        try:
            raw = await self._store.get(self._queue_key(user_id))
        except StoreError as e:
            logger.warning("Failed to read usage queue for %s: %s", user_id, e)
            return []
        if not isinstance(raw, list):
            return []
        return [item for item in raw if isinstance(item, dict)]

    async def _write_queue(self, user_id: str, events: list[dict[str, Any]]) -> None:
        key = self._queue_key(user_id)
        try:
            if events:
                await self._store.set(key, events)
            else:
                await self._store.delete(key)
        except StoreError as e:
            logger.error("Failed to write usage queue for %s: %s", user_id, e)

    async def _enqueue(self, user_id: str, events: list[dict[str, Any]]) -> None:
        queue = await self._read_queue(user_id)
        queue.extend(events)
        if len(queue) > MAX_QUEUE_LENGTH:
            dropped = len(queue) - MAX_QUEUE_LENGTH
            logger.warning("Usage queue for %s full, dropping %d oldest events", user_id, dropped)
            queue = queue[dropped:]
        await self._write_queue(user_id, queue)

    async def pending_events(self, user_id: str) -> list[dict[str, Any]]:
        """Events waiting for delivery, oldest first."""
        return await self._read_queue(user_id)

    async def flush_pending(self, user_id: str) -> int:
        """Retry queued events in FIFO order.

        Acknowledged events are removed; failed events are requeued ahead
        of anything queued while the flush ran, preserving their order.

        Args:
            user_id: User whose queue to drain.

        Returns:
            Number of events delivered.
        """
        queue = await self._read_queue(user_id)
        if not queue or not self._server.enabled:
            return 0

        await self._write_queue(user_id, [])
        failed: list[dict[str, Any]] = []
        delivered = 0
        for event in queue:
            result = await self._server.log_event(event)
            if result.ok:
                delivered += 1
            else:
                failed.append(event)

        if failed:
            arrived = await self._read_queue(user_id)
            await self._write_queue(user_id, failed + arrived)

        if delivered:
            logger.info("Flushed %d queued usage events for %s", delivered, user_id)
        return delivered

    async def get_server_usage(self, user_id: str) -> UsageRecord | None:
        """Fetch the server-of-record usage for the current period.

        Returns:
            Usage record, or None when the server is unavailable.
        """
        data = await self._server.get_usage(user_id)
        if data is None:
            return None
        return parse_usage(data.get("usage", data.get("used")))

    async def get_combined_usage(self, user_id: str) -> UsageRecord:
        """Usage preferring the server of record, falling back to local."""
        server_usage = await self.get_server_usage(user_id)
        if server_usage is not None:
            return server_usage
        return await self.get_usage(user_id)

    async def _maybe_prune(self, user_id: str, period: str) -> None:
        marker = self._pruned_key(user_id)
        try:
            pruned = await self._store.get(marker)
            if isinstance(pruned, dict) and pruned.get("period") == period:
                return
            await self.prune_stale_periods(user_id)
            await self._store.set(marker, {"period": period})
        except StoreError as e:
            logger.warning("Usage pruning skipped for %s: %s", user_id, e)

    async def prune_stale_periods(self, user_id: str) -> int:
        """Delete counters older than the retention window.

        The retention window covers the current period and the
        ``retain_periods - 1`` periods before it.

        Returns:
            Number of period keys deleted.
        """
        oldest_kept = shift_period(self.current_period(), -(self._retain_periods - 1))
        prefix = f"{self._namespace}:{user_id}:"
        deleted = 0
        for key in await self._store.keys(prefix):
            period = key[len(prefix):]
            if len(period) == 6 and period.isdigit() and period < oldest_kept:
                if await self._store.delete(key):
                    deleted += 1
        if deleted:
            logger.debug("Pruned %d stale usage periods for %s", deleted, user_id)
        return deleted
