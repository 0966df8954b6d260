# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Infrastructure layer for external service integrations.

This package contains clients for:
- Key-value storage (Redis, in-process)
- Usage server of record (HTTP RPC)
- Speech token backend (HTTP)
"""
