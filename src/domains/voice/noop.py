# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Terminal fallback provider: never available, sessions do nothing."""

import logging

from src.domains.voice.base import (
    VoiceProvider,
    VoiceProviderId,
    VoiceSession,
    VoiceStartOptions,
)

logger = logging.getLogger(__name__)


class NoopVoiceSession(VoiceSession):
    """Session whose start always reports False."""

    def __init__(
        self,
        provider_id: VoiceProviderId = VoiceProviderId.NOOP,
        language: str = "en",
        start_timeout: float = 15.0,
    ) -> None:
        super().__init__(provider_id, language=language, start_timeout=start_timeout)

    async def _open(self, options: VoiceStartOptions) -> bool:
        logger.debug("No voice provider available (%s)", self.provider_id.value)
        return False

    async def _close(self) -> None:
        pass

    async def _pause(self) -> None:
        pass

    async def _resume(self) -> None:
        pass


class NoopVoiceProvider(VoiceProvider):
    """Fallback used when no real provider is available."""

    def __init__(self, default_language: str = "en") -> None:
        self._default_language = default_language

    @property
    def id(self) -> VoiceProviderId:
        return VoiceProviderId.NOOP

    async def is_available(self) -> bool:
        return False

    def create_session(self, language: str | None = None) -> VoiceSession:
        return NoopVoiceSession(language=language or self._default_language)
