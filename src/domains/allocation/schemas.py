# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Schemas for organization quota allocation.

This module defines Pydantic models for:
- OrganizationContext: the organization an operation targets
- OrganizationAllocation: one member's slice of the pool (one row per version)
- OrganizationPool: pool totals and what is already handed out
- BulkAllocationItem/BulkAllocationResult: batch allocation
"""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, computed_field

from src.domains.quota.schemas import (
    Caller,
    OrganizationType,
    QuotaFeature,
    QuotaMap,
    Tier,
)
from src.utils.datetime import utc_now


class PriorityLevel(str, Enum):
    """Priority of a member allocation."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class OrganizationContext(BaseModel):
    """Organization targeted by a pool operation."""

    organization_id: str = Field(min_length=1, description="Organization identifier")
    tier: Tier = Field(default=Tier.FREE, description="Organization subscription tier")
    organization_type: OrganizationType = Field(
        default=OrganizationType.PRESCHOOL,
        description="Kind of organization",
    )

    @classmethod
    def from_caller(cls, caller: Caller) -> "OrganizationContext":
        """Derive the organization context from a member's metadata.

        Raises:
            ValueError: If the caller belongs to no organization.
        """
        if not caller.organization_id:
            raise ValueError("Caller does not belong to an organization")
        tier = (
            Tier.parse(caller.organization_tier)
            or Tier.parse(caller.subscription_tier)
            or Tier.FREE
        )
        return cls(
            organization_id=caller.organization_id,
            tier=tier,
            organization_type=caller.resolved_organization_type(),
        )


class OrganizationAllocation(BaseModel):
    """A member's allocation from the organization pool.

    Rows are never edited to change quotas: a new allocation supersedes the
    previous one, which stays in history with is_active False.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    organization_id: str
    member_id: str
    member_role: str | None = None
    allocated_quotas: QuotaMap = Field(default_factory=dict)
    used_quotas: QuotaMap = Field(default_factory=dict)
    priority_level: PriorityLevel = PriorityLevel.NORMAL
    is_active: bool = True
    is_suspended: bool = False
    auto_renew: bool = True
    allocated_by: str
    allocated_at: datetime = Field(default_factory=utc_now)
    allocation_reason: str | None = None
    superseded_by: str | None = None
    suspended_at: datetime | None = None
    suspension_reason: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def remaining_quotas(self) -> QuotaMap:
        """Allocated minus used per feature, floored at zero."""
        return {
            feature: max(0, limit - self.used_quotas.get(feature, 0))
            for feature, limit in self.allocated_quotas.items()
        }

    def over_allocated_features(self) -> list[QuotaFeature]:
        """Features whose usage exceeds the allocation."""
        return [
            feature
            for feature, limit in self.allocated_quotas.items()
            if self.used_quotas.get(feature, 0) > limit
        ]


class OrganizationPool(BaseModel):
    """Quota pool of an organization for the current period."""

    organization_id: str
    tier: Tier
    organization_type: OrganizationType
    total_quotas: QuotaMap
    allocated_quotas: QuotaMap
    used_quotas: QuotaMap
    available_quotas: QuotaMap
    max_individual_quota: QuotaMap
    default_member_quotas: dict[str, QuotaMap] = Field(default_factory=dict)
    allow_member_self_allocation: bool = False
    period_start: datetime
    period_end: datetime
    source: str = Field(default="default", description="server or default")


class BulkAllocationItem(BaseModel):
    """One member entry of a bulk allocation request."""

    member_id: str = Field(min_length=1)
    quotas: dict[str, int]
    reason: str | None = None
    member_role: str | None = None
    priority_level: PriorityLevel = PriorityLevel.NORMAL
    auto_renew: bool = True


class BulkAllocationResult(BaseModel):
    """Outcome of one bulk allocation entry."""

    member_id: str
    success: bool
    allocation: OrganizationAllocation | None = None
    error: str | None = None
