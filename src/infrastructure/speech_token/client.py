# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Client for the trusted speech token backend.

Cloud speech recognition needs a short-lived token and a region, issued by a
backend that holds the real subscription key. A response missing either
field means the cloud provider is unavailable; it is not an error.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from src.core.config.settings import VoiceSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpeechCredentials:
    """Short-lived speech service credentials."""

    token: str
    region: str


class SpeechTokenClient:
    """Fetches speech credentials from the token backend."""

    def __init__(
        self,
        settings: "VoiceSettings",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._client = client
        self._owns_client = client is None

    @property
    def configured(self) -> bool:
        """Check whether a token endpoint is configured."""
        return bool(self._settings.token_url)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self._settings.token_api_key is not None:
                headers["Authorization"] = (
                    f"Bearer {self._settings.token_api_key.get_secret_value()}"
                )
            self._client = httpx.AsyncClient(
                timeout=self._settings.token_timeout,
                headers=headers,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch(self) -> SpeechCredentials | None:
        """Request a token and region.

        Returns:
            Credentials, or None when the backend is unconfigured,
            unreachable, or omits the token or region.
        """
        if not self.configured:
            return None

        try:
            response = await self._get_client().post(self._settings.token_url, json={})
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Speech token request failed: %s", e)
            return None

        if not isinstance(data, dict):
            return None
        token = data.get("token")
        region = data.get("region")
        if not token or not region:
            logger.info("Speech token backend returned no token or region")
            return None
        return SpeechCredentials(token=str(token), region=str(region))
