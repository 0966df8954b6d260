# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests
- Integration tests

Domain services are wired against an in-memory store and a fake usage
server so no external service is needed.
"""

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pytest

from src.core.config.settings import (
    AllocationSettings,
    Settings,
    UsageServerSettings,
    UsageSettings,
)
from src.domains.allocation.service import OrganizationAllocationPool
from src.domains.quota.schemas import Caller
from src.domains.quota.service import QuotaEngine
from src.domains.quota.tiers import QuotaTables
from src.domains.usage.ledger import UsageLedger
from src.infrastructure.cache.memory import InMemoryStore
from src.infrastructure.usage_server.client import ServerResult


# =============================================================================
# Fakes
# =============================================================================


class FakeUsageServer:
    """In-process stand-in for UsageServerClient.

    Attributes:
        enabled: Whether the server counts as configured.
        fail_log: When True, every log action fails.
        limits: Response to the limits action, or None for unavailable.
        org_limits: Response to the org_limits action, or None.
        usage: Response to the usage action, or None.
        logged: Events acknowledged by the log action, in order.
        allocations: set_allocation calls received.
    """

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self.fail_log = False
        self.limits: dict[str, Any] | None = None
        self.org_limits: dict[str, Any] | None = None
        self.usage: dict[str, Any] | None = None
        self.logged: list[dict[str, Any]] = []
        self.allocations: list[dict[str, Any]] = []

    async def log_event(self, event: dict[str, Any]) -> ServerResult:
        if self.fail_log:
            return ServerResult(ok=False, error="unavailable")
        self.logged.append(event)
        return ServerResult(ok=True)

    async def set_allocation(
        self, organization_id: str, user_id: str, quotas: dict[str, int]
    ) -> ServerResult:
        self.allocations.append(
            {"organization_id": organization_id, "user_id": user_id, "quotas": quotas}
        )
        return ServerResult(ok=True)

    async def get_limits(self, user_id: str) -> dict[str, Any] | None:
        return self.limits

    async def get_org_limits(self, organization_id: str) -> dict[str, Any] | None:
        return self.org_limits

    async def get_usage(self, user_id: str) -> dict[str, Any] | None:
        return self.usage

    async def close(self) -> None:
        pass


class FixedClock:
    """Settable UTC clock."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Provide development settings with every upstream unconfigured."""
    return Settings(
        environment="development",
        usage_server=UsageServerSettings(url=""),
        usage=UsageSettings(),
        allocation=AllocationSettings(),
    )


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FixedClock:
    """Provide a clock fixed at mid-October 2026."""
    return FixedClock(datetime(2026, 10, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store() -> InMemoryStore:
    """Provide an empty in-memory store."""
    return InMemoryStore()


@pytest.fixture
def server() -> FakeUsageServer:
    """Provide a configured fake usage server with no data."""
    return FakeUsageServer()


@pytest.fixture
def tables() -> QuotaTables:
    """Provide the default quota tables."""
    return QuotaTables()


@pytest.fixture
def ledger(store: InMemoryStore, server: FakeUsageServer, clock: FixedClock) -> UsageLedger:
    """Provide a usage ledger over the in-memory store."""
    return UsageLedger(store, server, UsageSettings(), clock=clock)  # type: ignore[arg-type]


@pytest.fixture
def pool(
    store: InMemoryStore,
    server: FakeUsageServer,
    tables: QuotaTables,
    clock: FixedClock,
) -> OrganizationAllocationPool:
    """Provide an allocation pool over the in-memory store."""
    return OrganizationAllocationPool(
        store, server, tables, AllocationSettings(), clock=clock  # type: ignore[arg-type]
    )


@pytest.fixture
def engine(
    ledger: UsageLedger,
    pool: OrganizationAllocationPool,
    server: FakeUsageServer,
    tables: QuotaTables,
) -> QuotaEngine:
    """Provide a quota engine wired to the shared fakes."""
    return QuotaEngine(ledger, pool, server, tables)  # type: ignore[arg-type]


# =============================================================================
# Caller Fixtures
# =============================================================================


@pytest.fixture
def make_caller() -> Callable[..., Caller]:
    """Provide a factory for callers."""

    def _make(user_id: str = "user-1", **kwargs: Any) -> Caller:
        return Caller(user_id=user_id, **kwargs)

    return _make


@pytest.fixture
def free_parent(make_caller: Callable[..., Caller]) -> Caller:
    """Provide an individual parent on the free tier."""
    return make_caller("parent-1", role="parent", subscription_tier="free")


@pytest.fixture
def principal(make_caller: Callable[..., Caller]) -> Caller:
    """Provide a principal of a pro preschool."""
    return make_caller(
        "principal-1",
        role="principal",
        organization_id="school-1",
        organization_type="preschool",
        organization_tier="pro",
    )


@pytest.fixture
def teacher(make_caller: Callable[..., Caller]) -> Caller:
    """Provide a teacher of the same preschool as the principal."""
    return make_caller(
        "teacher-1",
        role="teacher",
        organization_id="school-1",
        organization_type="preschool",
        organization_tier="pro",
    )


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (in-process app)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
