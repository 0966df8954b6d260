# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Organization allocation pool service.

This module provides the OrganizationAllocationPool that handles:
- Pool totals per organization (server of record, else tier defaults)
- Member allocations with supersede-not-mutate history
- Suspension and reactivation
- Usage tracking against allocations and over-allocation detection

All rows for one organization are stored under a single key and updated
with read-modify-write under a per-organization lock.

Example:
    >>> pool = OrganizationAllocationPool(store, server, tables, settings.allocation)
    >>> allocation = await pool.allocate(org, principal, "teacher-1",
    ...     {"lesson_generation": 40}, "Term planning")
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

from src.domains.allocation.schemas import (
    BulkAllocationItem,
    BulkAllocationResult,
    OrganizationAllocation,
    OrganizationContext,
    OrganizationPool,
    PriorityLevel,
)
from src.domains.quota.schemas import UNLIMITED, Caller, QuotaFeature, QuotaMap
from src.domains.quota.tiers import QuotaTables, parse_quota_map
from src.infrastructure.cache.base import KeyValueStore
from src.utils.datetime import period_bounds, utc_now

if TYPE_CHECKING:
    from src.core.config.settings import AllocationSettings
    from src.infrastructure.usage_server.client import UsageServerClient

logger = logging.getLogger(__name__)


class AllocationError(Exception):
    """Base exception for allocation errors."""

    pass


class AllocationPermissionError(AllocationError):
    """Raised when the actor may not manage the organization's allocations."""

    pass


class AllocationValidationError(AllocationError):
    """Raised when requested quotas name unknown features or negative values."""

    pass


class AllocationLimitError(AllocationError):
    """Raised when a requested quota exceeds max_individual_quota."""

    pass


class AllocationCapacityError(AllocationError):
    """Raised when an allocation would exceed the pool total."""

    pass


class AllocationNotFoundError(AllocationError):
    """Raised when a member has no active allocation."""

    pass


def can_manage_allocations(actor: Caller, organization_id: str) -> bool:
    """Check whether actor administers allocations of an organization.

    The actor must belong to that organization and hold an admin role.
    Subscription tier plays no part.
    """
    return actor.organization_id == organization_id and actor.is_admin


class OrganizationAllocationPool:
    """Organization-level quota pool subdivided among members.

    Attributes:
        _store: Key-value store holding allocation rows.
        _server: Usage server client for pool totals and mirroring.
        _tables: Quota tables for default pool sizes.
    """

    def __init__(
        self,
        store: KeyValueStore,
        server: "UsageServerClient",
        tables: QuotaTables,
        settings: "AllocationSettings",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the pool service.

        Args:
            store: Key-value store.
            server: Usage server client.
            tables: Quota tables.
            settings: Allocation settings.
            clock: Source of the current time.
        """
        self._store = store
        self._server = server
        self._tables = tables
        self._settings = settings
        self._clock = clock
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # =========================================================================
    # Storage
    # =========================================================================

    @staticmethod
    def _key(organization_id: str) -> str:
        return f"org_allocations:{organization_id}"

    async def _load(self, organization_id: str) -> list[OrganizationAllocation]:
        raw = await self._store.get(self._key(organization_id))
        if not isinstance(raw, list):
            return []
        rows = []
        for item in raw:
            try:
                rows.append(OrganizationAllocation.model_validate(item))
            except ValueError as e:
                logger.warning("Skipping corrupt allocation row for %s: %s", organization_id, e)
        return rows

    async def _save(self, organization_id: str, rows: list[OrganizationAllocation]) -> None:
        await self._store.set(
            self._key(organization_id),
            [row.model_dump(mode="json") for row in rows],
        )

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_organization_allocation(
        self,
        organization: OrganizationContext,
    ) -> OrganizationPool:
        """Compute the pool for the current period.

        Totals come from the server ``org_limits`` action when it answers,
        otherwise from the default pool table for the organization tier.

        Args:
            organization: Target organization.

        Returns:
            Pool totals, allocations, usage and per-member bounds.
        """
        totals: QuotaMap | None = None
        source = "default"
        data = await self._server.get_org_limits(organization.organization_id)
        if data is not None:
            server_totals = parse_quota_map(data.get("quotas"))
            if server_totals:
                totals = {**self._tables.pool_for(organization.tier), **server_totals}
                source = "server"
        if totals is None:
            totals = self._tables.pool_for(organization.tier)

        active = [r for r in await self._load(organization.organization_id) if r.is_active]
        allocated = _sum_quotas(r.allocated_quotas for r in active)
        used = _sum_quotas(r.used_quotas for r in active)

        available: QuotaMap = {}
        for feature, total in totals.items():
            available[feature] = (
                UNLIMITED if total == UNLIMITED else max(0, total - allocated[feature])
            )

        start, end = period_bounds(self._clock())
        return OrganizationPool(
            organization_id=organization.organization_id,
            tier=organization.tier,
            organization_type=organization.organization_type,
            total_quotas=totals,
            allocated_quotas=allocated,
            used_quotas=used,
            available_quotas=available,
            max_individual_quota=self._max_individual(totals),
            default_member_quotas={
                role: self._tables.member_for(role) for role in self._tables.member
            },
            allow_member_self_allocation=self._settings.allow_member_self_allocation,
            period_start=start,
            period_end=end,
            source=source,
        )

    def _max_individual(self, totals: QuotaMap) -> QuotaMap:
        fraction = self._settings.max_individual_fraction
        return {
            feature: UNLIMITED if total == UNLIMITED else int(total * fraction)
            for feature, total in totals.items()
        }

    async def get_member_allocations(self, organization_id: str) -> list[OrganizationAllocation]:
        """Active allocations of an organization, suspended ones included."""
        return [row for row in await self._load(organization_id) if row.is_active]

    async def get_member_allocation(
        self,
        organization_id: str,
        member_id: str,
    ) -> OrganizationAllocation | None:
        """Active allocation of one member, or None."""
        for row in await self._load(organization_id):
            if row.is_active and row.member_id == member_id:
                return row
        return None

    async def get_allocation_history(
        self,
        organization_id: str,
        member_id: str | None = None,
    ) -> list[OrganizationAllocation]:
        """All allocation rows including superseded ones, oldest first."""
        rows = await self._load(organization_id)
        if member_id is not None:
            rows = [row for row in rows if row.member_id == member_id]
        return sorted(rows, key=lambda row: row.allocated_at)

    async def find_over_allocations(self, organization_id: str) -> list[OrganizationAllocation]:
        """Active allocations whose usage exceeds the allocated amount."""
        return [
            row
            for row in await self.get_member_allocations(organization_id)
            if row.over_allocated_features()
        ]

    # =========================================================================
    # Mutations
    # =========================================================================

    def _require_manager(self, actor: Caller, organization_id: str) -> None:
        if not can_manage_allocations(actor, organization_id):
            logger.info(
                "Allocation management denied: user=%s role=%s organization=%s",
                actor.user_id,
                actor.role,
                organization_id,
            )
            raise AllocationPermissionError(
                f"User {actor.user_id} cannot manage allocations for {organization_id}"
            )

    @staticmethod
    def _validate_quotas(quotas: Mapping[str, Any]) -> QuotaMap:
        if not quotas:
            raise AllocationValidationError("At least one quota must be given")
        validated: QuotaMap = {}
        for name, value in quotas.items():
            try:
                feature = QuotaFeature(str(name))
            except ValueError as e:
                raise AllocationValidationError(f"Unknown quota feature: {name}") from e
            if isinstance(value, bool) or not isinstance(value, int):
                raise AllocationValidationError(f"Quota for {name} must be an integer")
            if value < 0:
                raise AllocationValidationError(f"Quota for {name} must be non-negative")
            validated[feature] = value
        return validated

    async def allocate(
        self,
        organization: OrganizationContext,
        actor: Caller,
        member_id: str,
        quotas: Mapping[str, Any],
        reason: str | None = None,
        *,
        member_role: str | None = None,
        priority_level: PriorityLevel = PriorityLevel.NORMAL,
        auto_renew: bool = True,
    ) -> OrganizationAllocation:
        """Assign quotas from the pool to a member.

        Every check runs before anything is written. A previous active
        allocation of the member is superseded and its usage carried over.

        Args:
            organization: Target organization.
            actor: Admin performing the allocation.
            member_id: Member receiving the allocation.
            quotas: Feature name to amount.
            reason: Audit note.
            member_role: Role of the member, for reporting.
            priority_level: Allocation priority.
            auto_renew: Whether the allocation renews each period.

        Returns:
            The new active allocation.

        Raises:
            AllocationPermissionError: If actor is not an admin of the organization.
            AllocationValidationError: On unknown features or bad values.
            AllocationLimitError: If a value exceeds max_individual_quota.
            AllocationCapacityError: If the pool total would be exceeded.
        """
        organization_id = organization.organization_id
        self._require_manager(actor, organization_id)
        if not member_id:
            raise AllocationValidationError("member_id is required")
        requested = self._validate_quotas(quotas)

        async with self._locks[organization_id]:
            pool = await self.get_organization_allocation(organization)

            for feature, amount in requested.items():
                bound = pool.max_individual_quota.get(feature, 0)
                if bound != UNLIMITED and amount > bound:
                    raise AllocationLimitError(
                        f"{feature.value} allocation {amount} exceeds the per-member "
                        f"maximum of {bound}"
                    )

            rows = await self._load(organization_id)
            previous = next(
                (r for r in rows if r.is_active and r.member_id == member_id),
                None,
            )
            for feature, amount in requested.items():
                total = pool.total_quotas.get(feature, 0)
                if total == UNLIMITED:
                    continue
                released = previous.allocated_quotas.get(feature, 0) if previous else 0
                projected = pool.allocated_quotas.get(feature, 0) - released + amount
                if projected > total:
                    raise AllocationCapacityError(
                        f"{feature.value} allocation would use {projected} of a "
                        f"pool of {total}"
                    )

            allocation = OrganizationAllocation(
                organization_id=organization_id,
                member_id=member_id,
                member_role=member_role or (previous.member_role if previous else None),
                allocated_quotas=requested,
                used_quotas=dict(previous.used_quotas) if previous else {},
                priority_level=priority_level,
                auto_renew=auto_renew,
                allocated_by=actor.user_id,
                allocated_at=self._clock(),
                allocation_reason=reason,
            )
            if previous is not None:
                previous.is_active = False
                previous.superseded_by = allocation.id
            rows.append(allocation)
            await self._save(organization_id, rows)

        logger.info(
            "Allocated quotas: organization=%s member=%s by=%s superseded=%s",
            organization_id,
            member_id,
            actor.user_id,
            previous.id if previous else None,
        )
        await self._server.set_allocation(
            organization_id,
            member_id,
            {feature.value: amount for feature, amount in requested.items()},
        )
        return allocation

    async def bulk_allocate(
        self,
        organization: OrganizationContext,
        actor: Caller,
        items: list[BulkAllocationItem],
    ) -> list[BulkAllocationResult]:
        """Allocate to several members; each entry succeeds or fails alone."""
        results = []
        for item in items:
            try:
                allocation = await self.allocate(
                    organization,
                    actor,
                    item.member_id,
                    item.quotas,
                    item.reason,
                    member_role=item.member_role,
                    priority_level=item.priority_level,
                    auto_renew=item.auto_renew,
                )
                results.append(
                    BulkAllocationResult(member_id=item.member_id, success=True, allocation=allocation)
                )
            except AllocationError as e:
                results.append(
                    BulkAllocationResult(member_id=item.member_id, success=False, error=str(e))
                )
        return results

    async def _set_suspended(
        self,
        organization_id: str,
        actor: Caller,
        member_id: str,
        suspended: bool,
        reason: str | None,
    ) -> OrganizationAllocation:
        self._require_manager(actor, organization_id)
        async with self._locks[organization_id]:
            rows = await self._load(organization_id)
            target = next(
                (r for r in rows if r.is_active and r.member_id == member_id),
                None,
            )
            if target is None:
                raise AllocationNotFoundError(
                    f"No active allocation for member {member_id} in {organization_id}"
                )
            target.is_suspended = suspended
            target.suspended_at = self._clock() if suspended else None
            target.suspension_reason = reason if suspended else None
            await self._save(organization_id, rows)
        return target

    async def suspend(
        self,
        organization_id: str,
        actor: Caller,
        member_id: str,
        reason: str | None = None,
    ) -> OrganizationAllocation:
        """Suspend a member allocation; quotas are left untouched.

        Raises:
            AllocationPermissionError: If actor is not an admin of the organization.
            AllocationNotFoundError: If the member has no active allocation.
        """
        allocation = await self._set_suspended(organization_id, actor, member_id, True, reason)
        logger.info("Suspended allocation of %s in %s", member_id, organization_id)
        return allocation

    async def reactivate(
        self,
        organization_id: str,
        actor: Caller,
        member_id: str,
    ) -> OrganizationAllocation:
        """Lift a suspension.

        Raises:
            AllocationPermissionError: If actor is not an admin of the organization.
            AllocationNotFoundError: If the member has no active allocation.
        """
        allocation = await self._set_suspended(organization_id, actor, member_id, False, None)
        logger.info("Reactivated allocation of %s in %s", member_id, organization_id)
        return allocation

    async def record_usage(
        self,
        organization_id: str,
        member_id: str,
        feature: QuotaFeature,
        count: int = 1,
    ) -> OrganizationAllocation | None:
        """Add confirmed consumption to a member's active allocation.

        Usage beyond the allocation is recorded and logged, never refused.

        Returns:
            Updated allocation, or None if the member has none.
        """
        if count < 0:
            raise ValueError("count must be non-negative")
        async with self._locks[organization_id]:
            rows = await self._load(organization_id)
            target = next(
                (r for r in rows if r.is_active and r.member_id == member_id),
                None,
            )
            if target is None:
                return None
            target.used_quotas[feature] = target.used_quotas.get(feature, 0) + count
            await self._save(organization_id, rows)

        if feature in target.over_allocated_features():
            logger.warning(
                "Allocation overshoot: organization=%s member=%s feature=%s used=%d allocated=%d",
                organization_id,
                member_id,
                feature.value,
                target.used_quotas[feature],
                target.allocated_quotas[feature],
            )
        return target


def _sum_quotas(maps: Any) -> QuotaMap:
    totals: QuotaMap = {feature: 0 for feature in QuotaFeature}
    for quotas in maps:
        for feature, amount in quotas.items():
            totals[feature] += max(0, amount)
    return totals
