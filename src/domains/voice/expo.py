# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""On-device next-generation speech provider.

The vendor has not shipped the streaming API yet, so the provider reports
itself unavailable. It stays first in the selection chain and is always
probed, so enabling it later only means changing is_available().
"""

import logging

from src.domains.voice.base import VoiceProvider, VoiceProviderId, VoiceSession
from src.domains.voice.noop import NoopVoiceSession

logger = logging.getLogger(__name__)


class ExpoSpeechProvider(VoiceProvider):
    """Placeholder for on-device recognition."""

    def __init__(self, default_language: str = "en", start_timeout: float = 15.0) -> None:
        self._default_language = default_language
        self._start_timeout = start_timeout
        self.probe_count = 0

    @property
    def id(self) -> VoiceProviderId:
        return VoiceProviderId.EXPO

    async def is_available(self) -> bool:
        self.probe_count += 1
        logger.debug("On-device speech recognition not yet available")
        return False

    def create_session(self, language: str | None = None) -> VoiceSession:
        return NoopVoiceSession(
            provider_id=VoiceProviderId.EXPO,
            language=language or self._default_language,
            start_timeout=self._start_timeout,
        )
