# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

This module provides dependency functions for FastAPI endpoints.
Dependencies are used to:
- Build the gateway service container at start-up
- Resolve the calling user from trusted proxy headers
- Hand service instances to endpoints

Services are built once per process in the application lifespan and kept
on ``app.state.services``; nothing is held in module globals.

Example:
    @router.get("/limits")
    async def get_limits(
        caller: Caller = Depends(get_caller),
        quota: QuotaEngine = Depends(get_quota_engine),
    ):
        ...
"""

import logging
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, Request, status

from src.core.config import Settings
from src.domains.allocation.service import OrganizationAllocationPool
from src.domains.gateway.service import AIGateway
from src.domains.quota.schemas import Caller
from src.domains.quota.service import QuotaEngine
from src.domains.quota.tiers import QuotaTables
from src.domains.response_cache.patterns import load_patterns
from src.domains.response_cache.service import ResponseCache
from src.domains.usage.ledger import UsageLedger
from src.domains.voice.selector import VoiceProviderSelector, build_voice_selector
from src.infrastructure.cache import KeyValueStore, create_store
from src.infrastructure.speech_token.client import SpeechTokenClient
from src.infrastructure.usage_server.client import UsageServerClient

logger = logging.getLogger(__name__)


@dataclass
class GatewayServices:
    """Process-wide service container."""

    settings: Settings
    store: KeyValueStore
    server: UsageServerClient
    token_client: SpeechTokenClient
    tables: QuotaTables
    ledger: UsageLedger
    pool: OrganizationAllocationPool
    quota: QuotaEngine
    cache: ResponseCache
    voice: VoiceProviderSelector
    gateway: AIGateway

    async def close(self) -> None:
        """Release network clients and the store."""
        await self.server.close()
        await self.token_client.close()
        await self.store.close()


async def build_services(
    settings: Settings,
    store: KeyValueStore | None = None,
    server: UsageServerClient | None = None,
    token_client: SpeechTokenClient | None = None,
) -> GatewayServices:
    """Wire every gateway service from settings.

    Args:
        settings: Application settings.
        store: Key-value store override, mainly for tests.
        server: Usage server client override.
        token_client: Speech token client override.

    Returns:
        The service container.

    Raises:
        StoreError: If Redis is enabled but unreachable.
        YAMLLoadError: If a configured override file cannot be loaded.
    """
    store = store or await create_store(settings)
    server = server or UsageServerClient(settings.usage_server)
    token_client = token_client or SpeechTokenClient(settings.voice)

    tables = QuotaTables.from_file(settings.usage.quotas_file)
    ledger = UsageLedger(store, server, settings.usage)
    pool = OrganizationAllocationPool(store, server, tables, settings.allocation)
    quota = QuotaEngine(ledger, pool, server, tables)
    cache = ResponseCache(
        load_patterns(
            settings.response_cache.patterns_file,
            settings.response_cache.default_ttl_seconds,
        ),
        enabled=settings.response_cache.enabled,
        default_ttl_seconds=settings.response_cache.default_ttl_seconds,
    )
    voice = build_voice_selector(settings.voice, token_client)

    return GatewayServices(
        settings=settings,
        store=store,
        server=server,
        token_client=token_client,
        tables=tables,
        ledger=ledger,
        pool=pool,
        quota=quota,
        cache=cache,
        voice=voice,
        gateway=AIGateway(quota, ledger, cache, pool),
    )


# =========================================================================
# Service Dependencies
# =========================================================================


def get_services(request: Request) -> GatewayServices:
    """Get the service container.

    Raises:
        HTTPException: If the application has not finished starting.
    """
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Gateway services not initialized",
        )
    return services


def get_quota_engine(services: GatewayServices = Depends(get_services)) -> QuotaEngine:
    """Get the quota engine."""
    return services.quota


def get_usage_ledger(services: GatewayServices = Depends(get_services)) -> UsageLedger:
    """Get the usage ledger."""
    return services.ledger


def get_allocation_pool(
    services: GatewayServices = Depends(get_services),
) -> OrganizationAllocationPool:
    """Get the organization allocation pool."""
    return services.pool


def get_response_cache(services: GatewayServices = Depends(get_services)) -> ResponseCache:
    """Get the response cache."""
    return services.cache


# =========================================================================
# Caller Dependencies
# =========================================================================


def get_caller(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
    x_subscription_tier: str | None = Header(default=None),
    x_organization_id: str | None = Header(default=None),
    x_organization_type: str | None = Header(default=None),
    x_organization_tier: str | None = Header(default=None),
) -> Caller:
    """Build the caller from headers set by the authenticating proxy.

    Raises:
        HTTPException: If X-User-Id is missing.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return Caller(
        user_id=x_user_id,
        role=x_user_role or None,
        subscription_tier=x_subscription_tier or None,
        organization_id=x_organization_id or None,
        organization_type=x_organization_type or None,
        organization_tier=x_organization_tier or None,
    )
