# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""HTTP client for the usage server of record.

The server exposes one RPC endpoint accepting JSON bodies of the form
``{"action": ..., ...}``. Supported actions:
- log: record a usage event
- limits: server-declared quotas for a user
- org_limits: organization pool totals
- set_allocation: mirror a member allocation
- usage: server-side usage counters for the current period

Write actions return a ServerResult so callers can ignore failures
deliberately. Read actions return None when the server is unreachable,
misconfigured or answers with an error.

Example:
    client = UsageServerClient(settings.usage_server)
    result = await client.log_event(event)
    if not result.ok:
        queue.append(event)
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from src.core.config.settings import UsageServerSettings

logger = logging.getLogger(__name__)


class UsageServerError(Exception):
    """Raised when the usage server cannot be reached or rejects a call.

    Attributes:
        message: Human-readable error description.
        action: RPC action that failed.
        status_code: HTTP status, when a response was received.
    """

    def __init__(
        self,
        message: str,
        action: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.action = action
        self.status_code = status_code


@dataclass
class ServerResult:
    """Outcome of a fire-and-forget server call."""

    ok: bool
    data: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


class UsageServerClient:
    """Async client for the usage server RPC surface.

    Attributes:
        enabled: False when no server URL is configured; every call then
            fails fast without network I/O.
    """

    def __init__(
        self,
        settings: "UsageServerSettings",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Usage server settings.
            client: Pre-built HTTP client, mainly for tests.
        """
        self._settings = settings
        self._client = client
        self._owns_client = client is None

    @property
    def enabled(self) -> bool:
        """Check whether a server URL is configured."""
        return self._settings.enabled

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._settings.timeout,
                headers={"Content-Type": "application/json", **self._settings.auth_headers},
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def call(self, action: str, **payload: Any) -> dict[str, Any]:
        """Invoke one RPC action.

        Args:
            action: Action name.
            **payload: Additional body fields; None values are omitted.

        Returns:
            Decoded JSON response body.

        Raises:
            UsageServerError: On transport failure, non-2xx status, an
                ``error`` field in the body, or a non-object body.
        """
        if not self.enabled:
            raise UsageServerError("Usage server is not configured", action)

        body = {"action": action, **{k: v for k, v in payload.items() if v is not None}}
        try:
            response = await self._get_client().post(self._settings.url, json=body)
        except httpx.HTTPError as e:
            raise UsageServerError(f"Usage server unreachable: {e}", action) from e

        if response.status_code >= 400:
            raise UsageServerError(
                f"Usage server returned {response.status_code}",
                action,
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UsageServerError("Usage server returned invalid JSON", action) from e

        if not isinstance(data, dict):
            raise UsageServerError("Usage server returned a non-object body", action)
        if data.get("error"):
            raise UsageServerError(str(data["error"]), action, status_code=response.status_code)
        return data

    async def _fire(self, action: str, **payload: Any) -> ServerResult:
        try:
            return ServerResult(ok=True, data=await self.call(action, **payload))
        except UsageServerError as e:
            logger.warning("Usage server %s failed: %s", action, e.message)
            return ServerResult(ok=False, error=e.message)

    async def _read(self, action: str, **payload: Any) -> dict[str, Any] | None:
        if not self.enabled:
            return None
        try:
            return await self.call(action, **payload)
        except UsageServerError as e:
            logger.warning("Usage server %s failed: %s", action, e.message)
            return None

    async def log_event(self, event: dict[str, Any]) -> ServerResult:
        """Record a usage event (``log``)."""
        return await self._fire("log", event=event)

    async def set_allocation(
        self,
        organization_id: str,
        user_id: str,
        quotas: dict[str, int],
    ) -> ServerResult:
        """Mirror a member allocation (``set_allocation``)."""
        return await self._fire(
            "set_allocation",
            preschool_id=organization_id,
            user_id=user_id,
            quotas=quotas,
        )

    async def get_limits(self, user_id: str) -> dict[str, Any] | None:
        """Fetch server-declared limits (``limits``).

        The response may carry ``quotas``, ``overageRequiresPrepay``,
        ``models``, ``source`` and ``allocation``.
        """
        return await self._read("limits", user_id=user_id)

    async def get_org_limits(self, organization_id: str) -> dict[str, Any] | None:
        """Fetch organization pool totals (``org_limits``)."""
        return await self._read("org_limits", preschool_id=organization_id)

    async def get_usage(self, user_id: str) -> dict[str, Any] | None:
        """Fetch server-side usage for the current period (``usage``)."""
        return await self._read("usage", user_id=user_id)
