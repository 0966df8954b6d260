# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Health check endpoints.

This module provides health and readiness endpoints for the API.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src import __version__
from src.api.dependencies import GatewayServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter()

# Track server start time for uptime calculation
_server_start_time = time.time()


class ComponentHealth(BaseModel):
    """Individual component health status."""
    status: str = Field(description="Component status")
    latency_ms: float | None = Field(None, description="Response latency in ms")
    message: str | None = Field(None, description="Additional status message")


class ComponentsHealth(BaseModel):
    """All components health status."""
    store: ComponentHealth | None = None
    usage_server: ComponentHealth | None = None
    speech_tokens: ComponentHealth | None = None


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(description="Overall health status")
    timestamp: datetime = Field(description="Current server timestamp")
    version: str = Field(description="API version")
    environment: str = Field(description="Deployment environment")
    uptime_seconds: int = Field(description="Server uptime in seconds")
    components: ComponentsHealth = Field(default_factory=ComponentsHealth)


class ReadinessResponse(BaseModel):
    """Readiness check response model."""
    ready: bool = Field(description="Whether the service is ready")
    checks: dict[str, Any] = Field(description="Individual check results")


async def check_store(services: GatewayServices) -> ComponentHealth:
    """Check the key-value store."""
    start = time.time()
    if not await services.store.ping():
        logger.error("Key-value store health check failed")
        return ComponentHealth(status="unhealthy", message="Store did not answer ping")
    latency = (time.time() - start) * 1000
    return ComponentHealth(status="healthy", latency_ms=round(latency, 2))


def check_configured(configured: bool, name: str) -> ComponentHealth:
    """Report whether an optional upstream is configured."""
    if configured:
        return ComponentHealth(status="configured")
    return ComponentHealth(status="disabled", message=f"{name} not configured")


@router.get("/health", response_model=HealthResponse)
async def health_check(services: GatewayServices = Depends(get_services)) -> HealthResponse:
    """Check if the API is healthy with component details.

    Upstreams without configuration are reported as disabled; the gateway
    falls back to local defaults for them, so they do not degrade health.

    Returns:
        HealthResponse with detailed status.
    """
    now = datetime.now(timezone.utc)
    store_health = await check_store(services)

    return HealthResponse(
        status="healthy" if store_health.status == "healthy" else "unhealthy",
        timestamp=now,
        version=__version__,
        environment=services.settings.environment,
        uptime_seconds=int(time.time() - _server_start_time),
        components=ComponentsHealth(
            store=store_health,
            usage_server=check_configured(services.server.enabled, "Usage server"),
            speech_tokens=check_configured(services.token_client.configured, "Speech token backend"),
        ),
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(services: GatewayServices = Depends(get_services)) -> ReadinessResponse:
    """Check if the API is ready to accept traffic.

    Returns:
        ReadinessResponse with individual check results.
    """
    store_health = await check_store(services)
    checks = {"store": {"status": store_health.status, "latency_ms": store_health.latency_ms}}
    return ReadinessResponse(ready=store_health.status == "healthy", checks=checks)
