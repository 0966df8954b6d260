# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Ordered provider selection with a no-op terminal fallback.

Providers are tried in a fixed order (on-device, cloud). A provider is
chosen when it is not disabled by configuration and its availability probe
returns True. A probe that raises counts as unavailable. When nothing is
available the no-op provider is returned, so callers always get a provider
whose sessions never raise.

Example:
    selector = build_voice_selector(settings.voice, token_client)
    session = await selector.open_session("zu")
    if not await session.start(VoiceStartOptions(on_final=handle_text)):
        fall_back_to_text_input()
"""

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from src.domains.voice.azure import AzureSpeechProvider
from src.domains.voice.base import VoiceProvider, VoiceSession
from src.domains.voice.expo import ExpoSpeechProvider
from src.domains.voice.noop import NoopVoiceProvider

if TYPE_CHECKING:
    from src.core.config.settings import VoiceSettings
    from src.infrastructure.speech_token.client import SpeechTokenClient

logger = logging.getLogger(__name__)


class VoiceProviderSelector:
    """Chooses the first usable transcription provider."""

    def __init__(
        self,
        providers: list[VoiceProvider],
        *,
        disabled: Iterable[str] = (),
        fallback: VoiceProvider | None = None,
    ) -> None:
        """Initialize the selector.

        Args:
            providers: Providers in priority order.
            disabled: Provider ids to skip.
            fallback: Provider returned when none is available.
        """
        self._providers = list(providers)
        self._disabled = {item.lower() for item in disabled}
        self._fallback = fallback or NoopVoiceProvider()

    @property
    def providers(self) -> list[VoiceProvider]:
        """Providers in priority order."""
        return list(self._providers)

    async def select_provider(self, preferred_language: str | None = None) -> VoiceProvider:
        """Pick the first enabled, available provider.

        Args:
            preferred_language: Language the caller intends to use.

        Returns:
            The selected provider, or the no-op fallback.
        """
        for provider in self._providers:
            if provider.id.value in self._disabled:
                logger.debug("Voice provider %s disabled by configuration", provider.id.value)
                continue
            try:
                available = await provider.is_available()
            except Exception as e:
                logger.warning("Voice provider %s probe failed: %s", provider.id.value, e)
                available = False
            if available:
                logger.info(
                    "Selected voice provider %s (language=%s)",
                    provider.id.value,
                    preferred_language,
                )
                return provider

        logger.warning("No voice provider available, using %s", self._fallback.id.value)
        return self._fallback

    async def open_session(self, preferred_language: str | None = None) -> VoiceSession:
        """Select a provider and create a fresh session bound to the language."""
        provider = await self.select_provider(preferred_language)
        return provider.create_session(language=preferred_language)


def build_voice_selector(
    settings: "VoiceSettings",
    token_client: "SpeechTokenClient",
) -> VoiceProviderSelector:
    """Build the standard selection chain from settings."""
    return VoiceProviderSelector(
        [
            ExpoSpeechProvider(
                default_language=settings.default_language,
                start_timeout=settings.start_timeout_seconds,
            ),
            AzureSpeechProvider(
                token_client,
                default_language=settings.default_language,
                start_timeout=settings.start_timeout_seconds,
            ),
        ],
        disabled=settings.disabled_provider_ids,
        fallback=NoopVoiceProvider(default_language=settings.default_language),
    )
