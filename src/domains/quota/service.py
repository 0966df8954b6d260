# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Quota engine: entitlement resolution and admission decisions.

Limits for each feature are resolved with this precedence:
1. the caller's active organization allocation
2. quotas declared by the usage server (``limits`` action)
3. static defaults for the resolved tier

Admission (can_use) is read-only. Usage is debited separately, through the
usage ledger, once the external action has succeeded.

Example:
    >>> engine = QuotaEngine(ledger, pool, server, tables)
    >>> result = await engine.can_use(caller, QuotaFeature.HOMEWORK_HELP)
    >>> if result.allowed:
    ...     answer = await call_model()
    ...     await ledger.increment(caller.user_id, QuotaFeature.HOMEWORK_HELP)
"""

import logging
from typing import TYPE_CHECKING, Any

from src.domains.quota.schemas import (
    UNLIMITED,
    Caller,
    CanUseResult,
    EffectiveLimits,
    ModelOption,
    QuotaFeature,
    QuotaStatus,
    Tier,
)
from src.domains.quota.tiers import (
    QuotaTables,
    can_use_allocation,
    models_for_tier,
    parse_quota_map,
)
from src.infrastructure.cache.base import StoreError

if TYPE_CHECKING:
    from src.domains.allocation.service import OrganizationAllocationPool
    from src.domains.usage.ledger import UsageLedger
    from src.infrastructure.usage_server.client import UsageServerClient

logger = logging.getLogger(__name__)


class QuotaEngine:
    """Resolves limits and answers admit/deny questions.

    The engine reads allocations through the pool service and usage through
    the ledger; it never writes either.
    """

    def __init__(
        self,
        ledger: "UsageLedger",
        pool: "OrganizationAllocationPool",
        server: "UsageServerClient",
        tables: QuotaTables | None = None,
    ) -> None:
        self._ledger = ledger
        self._pool = pool
        self._server = server
        self._tables = tables or QuotaTables()

    def resolve_tier(self, caller: Caller) -> Tier:
        """Resolve the caller's tier.

        Account metadata wins, then the organization's tier for members,
        then free.
        """
        tier = Tier.parse(caller.subscription_tier)
        if tier is not None:
            return tier
        if caller.is_organization_member:
            tier = Tier.parse(caller.organization_tier)
            if tier is not None:
                return tier
        return Tier.FREE

    async def get_effective_limits(self, caller: Caller) -> EffectiveLimits:
        """Resolve the caller's quotas for the current period.

        A failing usage server is not an error: defaults apply and the
        failure is logged by the client. An unreachable store likewise
        skips the allocation step, leaving server or default limits.

        Args:
            caller: Requesting user.

        Returns:
            Effective limits with the source of the highest-precedence
            override that applied.
        """
        tier = self.resolve_tier(caller)
        organization_type = caller.resolved_organization_type()
        quotas = self._tables.monthly_for(tier)
        source = "default"
        overage_requires_prepay = True
        models: list[ModelOption] = models_for_tier(tier)

        data = await self._server.get_limits(caller.user_id)
        if data is not None:
            server_quotas = parse_quota_map(data.get("quotas"))
            if server_quotas:
                quotas.update(server_quotas)
                source = "server"
            if isinstance(data.get("overageRequiresPrepay"), bool):
                overage_requires_prepay = data["overageRequiresPrepay"]
            models = _parse_models(data.get("models")) or models

        allocation_suspended = False
        if caller.is_organization_member:
            try:
                allocation = await self._pool.get_member_allocation(
                    caller.organization_id, caller.user_id
                )
            except StoreError as e:
                logger.warning(
                    "Allocation lookup failed for %s in %s, using %s limits: %s",
                    caller.user_id,
                    caller.organization_id,
                    source,
                    e,
                )
                allocation = None
            if allocation is not None:
                quotas.update(allocation.allocated_quotas)
                source = "org_allocation"
                allocation_suspended = allocation.is_suspended

        return EffectiveLimits(
            tier=tier,
            quotas=quotas,
            source=source,
            overage_requires_prepay=overage_requires_prepay,
            can_org_allocate=can_use_allocation(tier, organization_type, caller.role),
            organization_type=organization_type,
            allocation_suspended=allocation_suspended,
            models=models,
        )

    @staticmethod
    def _status(used: int, limit: int, suspended: bool) -> QuotaStatus:
        if limit == UNLIMITED and not suspended:
            return QuotaStatus(used=used, limit=UNLIMITED, remaining=UNLIMITED)
        limit = max(0, limit) if limit != UNLIMITED else UNLIMITED
        remaining = 0 if suspended else max(0, limit - used)
        return QuotaStatus(used=used, limit=limit, remaining=remaining)

    async def get_quota_status(
        self,
        caller: Caller,
        feature: QuotaFeature,
        limits: EffectiveLimits | None = None,
    ) -> QuotaStatus:
        """Usage position of one feature.

        Args:
            caller: Requesting user.
            feature: Feature to report.
            limits: Already-resolved limits, to avoid a second lookup.

        Returns:
            Used, limit and remaining. Unlimited features report remaining
            as -1; a suspended allocation reports remaining 0.
        """
        if limits is None:
            limits = await self.get_effective_limits(caller)
        usage = await self._ledger.get_combined_usage(caller.user_id)
        return self._status(
            usage.get(feature, 0),
            limits.quotas.get(feature, 0),
            limits.allocation_suspended,
        )

    async def can_use(
        self,
        caller: Caller,
        feature: QuotaFeature,
        count: int = 1,
    ) -> CanUseResult:
        """Decide whether the caller may consume count units of feature.

        Never modifies usage.

        Args:
            caller: Requesting user.
            feature: Requested feature.
            count: Units the request will consume.

        Returns:
            Decision with the denial reason and prepay hint when denied.

        Raises:
            ValueError: If count is negative.
        """
        if count < 0:
            raise ValueError("count must be non-negative")

        limits = await self.get_effective_limits(caller)
        status = await self.get_quota_status(caller, feature, limits)

        reason = None
        if limits.allocation_suspended:
            reason = "suspended"
        elif status.unlimited:
            reason = None
        elif status.limit == 0 and count > 0:
            reason = "not_enabled"
        elif status.remaining - count < 0:
            reason = "over_quota"

        if reason is not None:
            logger.debug(
                "Quota denied: user=%s feature=%s count=%d reason=%s",
                caller.user_id,
                feature.value,
                count,
                reason,
            )
            return CanUseResult(
                allowed=False,
                reason=reason,
                requires_prepay=limits.overage_requires_prepay if reason == "over_quota" else None,
                status=status,
                limits=limits,
            )
        return CanUseResult(allowed=True, status=status, limits=limits)


def _parse_models(raw: Any) -> list[ModelOption]:
    if not isinstance(raw, list):
        return []
    models = []
    for item in raw:
        try:
            models.append(ModelOption.model_validate(item))
        except ValueError:
            logger.debug("Ignoring malformed model entry %r", item)
    return models
