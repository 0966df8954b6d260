# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Live transcription domain.

Provider discovery with ordered fallback and a uniform session lifecycle
(start, stop, mute, reconfigure) over heterogeneous speech backends.
"""

from src.domains.voice.azure import (
    AzureSpeechProvider,
    AzureSpeechSession,
    azure_locale,
    load_speech_sdk,
)
from src.domains.voice.base import (
    SessionState,
    VoiceProvider,
    VoiceProviderId,
    VoiceSession,
    VoiceStartOptions,
)
from src.domains.voice.expo import ExpoSpeechProvider
from src.domains.voice.noop import NoopVoiceProvider, NoopVoiceSession
from src.domains.voice.selector import VoiceProviderSelector, build_voice_selector

__all__ = [
    "AzureSpeechProvider",
    "AzureSpeechSession",
    "ExpoSpeechProvider",
    "NoopVoiceProvider",
    "NoopVoiceSession",
    "SessionState",
    "VoiceProvider",
    "VoiceProviderId",
    "VoiceProviderSelector",
    "VoiceSession",
    "VoiceStartOptions",
    "azure_locale",
    "build_voice_selector",
    "load_speech_sdk",
]
