# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Abstract base classes for live transcription providers.

This module defines the VoiceProvider and VoiceSession ABCs. Providers are
probed for availability and create sessions; sessions wrap one continuous
recognition stream with a uniform lifecycle:

    uninitialized -> starting -> active <-> paused -> stopped

Stopped is terminal. Control calls (start, stop, set_muted, update_config)
are serialized per session. Vendor failures never escape a session: start()
reports them as False and the other calls log and carry on.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

TranscriptCallback = Callable[[str], None]


class VoiceProviderId(str, Enum):
    """Identity of a transcription backend."""

    EXPO = "expo"
    AZURE = "azure"
    NOOP = "noop"


class SessionState(str, Enum):
    """Lifecycle state of a voice session."""

    UNINITIALIZED = "uninitialized"
    STARTING = "starting"
    ACTIVE = "active"
    PAUSED = "paused"
    STOPPED = "stopped"


@dataclass
class VoiceStartOptions:
    """Options for starting a session.

    Attributes:
        language: App language code (en, af, zu, xh, nso); the session
            default when None.
        on_partial: Called with interim transcripts.
        on_final: Called with finalized transcripts.
    """

    language: str | None = None
    on_partial: TranscriptCallback | None = None
    on_final: TranscriptCallback | None = None


class VoiceSession(ABC):
    """One transcription attempt.

    Subclasses implement the vendor hooks (_open, _close, _pause, _resume,
    _reconfigure); this class owns state transitions, serialization and
    error absorption.

    Attributes:
        provider_id: Backend that created the session.
    """

    def __init__(
        self,
        provider_id: VoiceProviderId,
        language: str = "en",
        start_timeout: float = 15.0,
    ) -> None:
        """Initialize the session.

        Args:
            provider_id: Backend identity.
            language: Default language when start options give none.
            start_timeout: Seconds allowed for start-up.
        """
        self.provider_id = provider_id
        self._language = language
        self._start_timeout = start_timeout
        self._state = SessionState.UNINITIALIZED
        self._muted = False
        self._options = VoiceStartOptions()
        self._lock = asyncio.Lock()
        self._opening: asyncio.Future[bool] | None = None
        self._stop_requested = False

    @property
    def state(self) -> SessionState:
        """Current lifecycle state."""
        return self._state

    @property
    def language(self) -> str:
        """Language the recognizer is (or will be) bound to."""
        return self._language

    @property
    def muted(self) -> bool:
        """Whether recognition is muted."""
        return self._muted

    def is_active(self) -> bool:
        """Check whether recognition is running."""
        return self._state == SessionState.ACTIVE

    # =========================================================================
    # Vendor hooks
    # =========================================================================

    @abstractmethod
    async def _open(self, options: VoiceStartOptions) -> bool:
        """Acquire permission and credentials and start recognition.

        Returns:
            True once recognition is running.
        """
        pass

    @abstractmethod
    async def _close(self) -> None:
        """Stop recognition and release the recognizer."""
        pass

    @abstractmethod
    async def _pause(self) -> None:
        """Stop the recognition loop, keeping configuration."""
        pass

    @abstractmethod
    async def _resume(self) -> None:
        """Restart the recognition loop."""
        pass

    async def _reconfigure(self, language: str) -> None:
        """Rebind the paused recognizer to a new language."""

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self, options: VoiceStartOptions | None = None) -> bool:
        """Start recognition.

        Args:
            options: Language and transcript callbacks.

        Returns:
            True if recognition is running (or paused by a prior mute).
            False on permission denial, missing credentials, SDK failure,
            timeout, or when the session was stopped.
        """
        async with self._lock:
            if self._state == SessionState.STOPPED or self._stop_requested:
                logger.debug("Refusing to start stopped %s session", self.provider_id.value)
                return False
            if self._state in (SessionState.ACTIVE, SessionState.PAUSED):
                return True

            self._options = options or VoiceStartOptions()
            if self._options.language:
                self._language = self._options.language
            self._state = SessionState.STARTING

            opened = False
            self._opening = asyncio.ensure_future(self._open(self._options))
            try:
                opened = await asyncio.wait_for(self._opening, self._start_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "%s voice session start timed out after %.1fs",
                    self.provider_id.value,
                    self._start_timeout,
                )
            except asyncio.CancelledError:
                if not self._stop_requested:
                    raise
            except Exception as e:
                logger.warning("%s voice session failed to start: %s", self.provider_id.value, e)
            finally:
                self._opening = None

            if not opened or self._stop_requested:
                await self._safe_close()
                self._state = (
                    SessionState.STOPPED if self._stop_requested else SessionState.UNINITIALIZED
                )
                return False

            self._state = SessionState.ACTIVE
            if self._muted:
                await self._safe_call(self._pause, "pause")
                self._state = SessionState.PAUSED
            logger.info(
                "%s voice session started (language=%s)",
                self.provider_id.value,
                self._language,
            )
            return True

    async def stop(self) -> None:
        """Stop the session for good.

        Safe to call repeatedly and before or during start().
        """
        self._stop_requested = True
        if self._opening is not None and not self._opening.done():
            self._opening.cancel()

        async with self._lock:
            if self._state == SessionState.STOPPED:
                return
            if self._state in (SessionState.ACTIVE, SessionState.PAUSED):
                await self._safe_close()
            self._state = SessionState.STOPPED
            logger.debug("%s voice session stopped", self.provider_id.value)

    async def set_muted(self, muted: bool) -> None:
        """Pause or resume recognition without tearing down the session."""
        async with self._lock:
            self._muted = muted
            if muted and self._state == SessionState.ACTIVE:
                if await self._safe_call(self._pause, "pause"):
                    self._state = SessionState.PAUSED
            elif not muted and self._state == SessionState.PAUSED:
                if await self._safe_call(self._resume, "resume"):
                    self._state = SessionState.ACTIVE

    async def update_config(self, language: str | None = None) -> None:
        """Change the recognition language.

        A running recognizer is paused, rebuilt with the new language and
        resumed. A paused one is rebuilt and stays paused.
        """
        if not language:
            return
        async with self._lock:
            if self._state == SessionState.STOPPED:
                return
            self._language = language
            if self._state == SessionState.ACTIVE:
                if not await self._safe_call(self._pause, "pause"):
                    return
                self._state = SessionState.PAUSED
                await self._safe_call(lambda: self._reconfigure(language), "reconfigure")
                if await self._safe_call(self._resume, "resume"):
                    self._state = SessionState.ACTIVE
            elif self._state == SessionState.PAUSED:
                await self._safe_call(lambda: self._reconfigure(language), "reconfigure")

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _safe_call(self, hook: Callable, name: str) -> bool:
        try:
            await hook()
            return True
        except Exception as e:
            logger.warning("%s voice session %s failed: %s", self.provider_id.value, name, e)
            return False

    async def _safe_close(self) -> None:
        await self._safe_call(self._close, "close")

    def _emit_partial(self, text: str) -> None:
        if text and self._options.on_partial is not None:
            self._invoke(self._options.on_partial, text)

    def _emit_final(self, text: str) -> None:
        if text and self._options.on_final is not None:
            self._invoke(self._options.on_final, text)

    def _invoke(self, callback: TranscriptCallback, text: str) -> None:
        try:
            callback(text)
        except Exception:
            logger.exception("Transcript callback raised")


class VoiceProvider(ABC):
    """A transcription backend that can be probed and create sessions."""

    @property
    @abstractmethod
    def id(self) -> VoiceProviderId:
        """Backend identity."""
        pass

    @abstractmethod
    async def is_available(self) -> bool:
        """Probe whether the backend can be used right now."""
        pass

    @abstractmethod
    def create_session(self, language: str | None = None) -> VoiceSession:
        """Create a fresh, unstarted session.

        Args:
            language: Default recognition language.
        """
        pass
