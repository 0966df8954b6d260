"""AI Interaction Gateway.

Decides for every AI-assisted request whether the caller is entitled to it,
whether an instant cached answer can be returned without a paid model call,
and which live transcription provider to use.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
