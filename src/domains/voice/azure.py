# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Azure Speech continuous recognition provider.

Credentials are a short-lived token and region issued by the trusted token
backend. The Azure Speech SDK (``azure-cognitiveservices-speech``, the
``voice`` extra) is imported lazily on first start, so deployments without
it simply see start() return False.

SDK calls block, so they run in a worker thread. Recognition events arrive
on SDK threads and are handed back to the event loop before callbacks run.
"""

import asyncio
import importlib
import logging
from collections.abc import Awaitable, Callable
from types import ModuleType
from typing import Any

from src.domains.voice.base import (
    VoiceProvider,
    VoiceProviderId,
    VoiceSession,
    VoiceStartOptions,
)
from src.infrastructure.speech_token.client import SpeechCredentials, SpeechTokenClient

logger = logging.getLogger(__name__)

SDK_MODULE = "azure.cognitiveservices.speech"

PermissionRequester = Callable[[], Awaitable[bool]]
SdkLoader = Callable[[], ModuleType | None]


def azure_locale(language: str | None) -> str:
    """Map an app language code to an Azure recognition locale.

    Args:
        language: Code such as en, af, zu, xh, nso or st.

    Returns:
        Azure locale; South African English when unknown.
    """
    base = (language or "").lower()
    if base.startswith("af"):
        return "af-ZA"
    if base.startswith("zu"):
        return "zu-ZA"
    if base.startswith("xh"):
        return "xh-ZA"
    if base.startswith("nso") or base.startswith("st"):
        return "nso-ZA"
    return "en-ZA"


def load_speech_sdk() -> ModuleType | None:
    """Import the Azure Speech SDK, or None when it is not installed."""
    try:
        return importlib.import_module(SDK_MODULE)
    except ImportError as e:
        logger.warning("Azure Speech SDK not available: %s", e)
        return None


async def grant_permission() -> bool:
    """Default microphone permission check for server-side audio."""
    return True


class AzureSpeechSession(VoiceSession):
    """Continuous recognition over the Azure Speech SDK."""

    def __init__(
        self,
        token_client: SpeechTokenClient,
        *,
        language: str = "en",
        start_timeout: float = 15.0,
        permission_requester: PermissionRequester = grant_permission,
        sdk_loader: SdkLoader = load_speech_sdk,
    ) -> None:
        super().__init__(VoiceProviderId.AZURE, language=language, start_timeout=start_timeout)
        self._token_client = token_client
        self._permission_requester = permission_requester
        self._sdk_loader = sdk_loader
        self._sdk: ModuleType | None = None
        self._credentials: SpeechCredentials | None = None
        self._recognizer: Any = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def locale(self) -> str:
        """Azure locale of the current language."""
        return azure_locale(self.language)

    async def _open(self, options: VoiceStartOptions) -> bool:
        if not await self._permission_requester():
            logger.info("Microphone permission denied")
            return False

        credentials = await self._token_client.fetch()
        if credentials is None:
            return False

        sdk = self._sdk_loader()
        if sdk is None:
            return False

        self._sdk = sdk
        self._credentials = credentials
        self._loop = asyncio.get_running_loop()
        self._recognizer = self._build_recognizer()
        await self._run(self._recognizer.start_continuous_recognition_async)
        return True

    def _build_recognizer(self) -> Any:
        sdk = self._sdk
        credentials = self._credentials
        speech_config = sdk.SpeechConfig(auth_token=credentials.token, region=credentials.region)
        speech_config.speech_recognition_language = self.locale
        audio_config = sdk.audio.AudioConfig(use_default_microphone=True)
        recognizer = sdk.SpeechRecognizer(speech_config=speech_config, audio_config=audio_config)

        recognizer.recognizing.connect(self._on_recognizing)
        recognizer.recognized.connect(self._on_recognized)
        recognizer.canceled.connect(self._on_canceled)
        return recognizer

    @staticmethod
    async def _run(operation: Callable[[], Any]) -> None:
        await asyncio.to_thread(lambda: operation().get())

    def _dispatch(self, callback: Callable[[str], None], text: str) -> None:
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(callback, text)

    def _on_recognizing(self, event: Any) -> None:
        text = str(getattr(event.result, "text", "") or "")
        if text:
            self._dispatch(self._emit_partial, text)

    def _on_recognized(self, event: Any) -> None:
        result = event.result
        text = str(getattr(result, "text", "") or "")
        if text and result.reason == self._sdk.ResultReason.RecognizedSpeech:
            self._dispatch(self._emit_final, text)

    def _on_canceled(self, event: Any) -> None:
        logger.warning(
            "Azure recognition canceled: %s",
            getattr(event, "error_details", None) or getattr(event, "reason", None),
        )

    async def _close(self) -> None:
        recognizer = self._recognizer
        self._recognizer = None
        if recognizer is not None:
            await self._run(recognizer.stop_continuous_recognition_async)

    async def _pause(self) -> None:
        if self._recognizer is not None:
            await self._run(self._recognizer.stop_continuous_recognition_async)

    async def _resume(self) -> None:
        if self._recognizer is not None:
            await self._run(self._recognizer.start_continuous_recognition_async)

    async def _reconfigure(self, language: str) -> None:
        if self._sdk is None or self._credentials is None:
            return
        self._recognizer = self._build_recognizer()
        logger.debug("Azure recognizer rebuilt for %s", self.locale)


class AzureSpeechProvider(VoiceProvider):
    """Cloud provider, available when the token backend issues credentials."""

    def __init__(
        self,
        token_client: SpeechTokenClient,
        *,
        default_language: str = "en",
        start_timeout: float = 15.0,
        permission_requester: PermissionRequester = grant_permission,
        sdk_loader: SdkLoader = load_speech_sdk,
    ) -> None:
        self._token_client = token_client
        self._default_language = default_language
        self._start_timeout = start_timeout
        self._permission_requester = permission_requester
        self._sdk_loader = sdk_loader

    @property
    def id(self) -> VoiceProviderId:
        return VoiceProviderId.AZURE

    async def is_available(self) -> bool:
        """Available when both a token and a region can be obtained."""
        return await self._token_client.fetch() is not None

    def create_session(self, language: str | None = None) -> VoiceSession:
        return AzureSpeechSession(
            self._token_client,
            language=language or self._default_language,
            start_timeout=self._start_timeout,
            permission_requester=self._permission_requester,
            sdk_loader=self._sdk_loader,
        )
