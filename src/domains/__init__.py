# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer for the AI Interaction Gateway.

Each domain module provides services that encapsulate business logic and
are wired together explicitly at application start-up.

Domains:
    quota: Tier resolution, quota tables and admission decisions.
    usage: Per-user monthly usage counters and server reconciliation.
    allocation: Organization quota pools subdivided among members.
    response_cache: Instant canned responses for known inputs.
    voice: Live transcription provider selection and sessions.
    gateway: Orchestration of one AI request across the above.
"""
