# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""AI request gateway domain."""

from src.domains.gateway.service import AIGateway, GatewayOutcome, GatewayResult, ModelCall

__all__ = ["AIGateway", "GatewayOutcome", "GatewayResult", "ModelCall"]
