# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Quota domain.

Tier resolution, quota tables and the admit/deny engine.
"""

from src.domains.quota.schemas import (
    UNLIMITED,
    Caller,
    CanUseResult,
    EffectiveLimits,
    ModelOption,
    OrganizationType,
    QuotaFeature,
    QuotaMap,
    QuotaStatus,
    Tier,
    UsageRecord,
)
from src.domains.quota.service import QuotaEngine
from src.domains.quota.tiers import QuotaTables, can_use_allocation

__all__ = [
    "UNLIMITED",
    "Caller",
    "CanUseResult",
    "EffectiveLimits",
    "ModelOption",
    "OrganizationType",
    "QuotaEngine",
    "QuotaFeature",
    "QuotaMap",
    "QuotaStatus",
    "QuotaTables",
    "Tier",
    "UsageRecord",
    "can_use_allocation",
]
