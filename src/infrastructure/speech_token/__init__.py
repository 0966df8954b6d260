# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Speech token backend client."""

from src.infrastructure.speech_token.client import SpeechCredentials, SpeechTokenClient

__all__ = ["SpeechCredentials", "SpeechTokenClient"]
