# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Quota schemas: tiers, features, callers and entitlement results.

Tier is the single ordered subscription axis. The platform historically used
two tier vocabularies (a generic free/starter/premium/enterprise set and a
parent/teacher-specific set); both are accepted by Tier.parse and mapped onto
one total order.
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

UNLIMITED = -1


class Tier(str, Enum):
    """Subscription tier, totally ordered by declaration rank."""

    FREE = "free"
    STARTER = "starter"
    PARENT_STARTER = "parent_starter"
    PARENT_PLUS = "parent_plus"
    PRIVATE_TEACHER = "private_teacher"
    PRO = "pro"
    ENTERPRISE = "enterprise"

    @property
    def rank(self) -> int:
        """Position of the tier in the total order (free is 0)."""
        return _TIER_RANKS[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Tier):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Tier):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Tier):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Tier):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def parse(cls, value: str | None) -> "Tier | None":
        """Parse account metadata into a Tier.

        Accepts hyphenated spellings and the legacy "premium"/"basic" names.

        Args:
            value: Raw tier string from account or organization metadata.

        Returns:
            The matching Tier, or None when the value is empty or unknown.
        """
        if not value:
            return None
        normalized = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        normalized = _TIER_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            return None


_TIER_RANKS: dict[Tier, int] = {tier: index for index, tier in enumerate(Tier)}

_TIER_ALIASES: dict[str, str] = {
    "premium": "pro",
    "basic": "starter",
    "teacher_pro": "private_teacher",
    "parent": "parent_starter",
}


class QuotaFeature(str, Enum):
    """AI features metered with independent monthly counters."""

    LESSON_GENERATION = "lesson_generation"
    GRADING_ASSISTANCE = "grading_assistance"
    HOMEWORK_HELP = "homework_help"
    CHAT_COMPLETIONS = "chat_completions"
    IMAGE_GENERATION = "image_generation"
    TEXT_TO_SPEECH = "text_to_speech"
    SPEECH_TO_TEXT = "speech_to_text"


QuotaMap = dict[QuotaFeature, int]
UsageRecord = dict[QuotaFeature, int]


class OrganizationType(str, Enum):
    """Kind of organization a caller belongs to."""

    PRESCHOOL = "preschool"
    K12 = "k12"
    INDIVIDUAL = "individual"

    @classmethod
    def parse(cls, value: str | None) -> "OrganizationType | None":
        """Parse organization metadata, accepting legacy spellings."""
        if not value:
            return None
        normalized = str(value).strip().lower()
        if normalized in ("k12", "school"):
            return cls.K12
        if normalized in ("preschool", "pre_school"):
            return cls.PRESCHOOL
        if normalized == "individual":
            return cls.INDIVIDUAL
        return None


ADMIN_ROLES = frozenset({"principal", "principal_admin", "super_admin"})


class Caller(BaseModel):
    """Identity and entitlement metadata of the user making an AI request.

    Attributes:
        user_id: Stable user identifier.
        role: Platform role (parent, teacher, principal, ...).
        subscription_tier: Raw tier from account metadata, if any.
        organization_id: Organization (school) the user belongs to.
        organization_type: Organization kind from metadata, if any.
        organization_tier: Subscription tier of the organization.
    """

    user_id: str = Field(..., min_length=1)
    role: str | None = None
    subscription_tier: str | None = None
    organization_id: str | None = None
    organization_type: str | None = None
    organization_tier: str | None = None

    @property
    def is_organization_member(self) -> bool:
        """Check whether the caller belongs to an organization."""
        return bool(self.organization_id)

    @property
    def is_admin(self) -> bool:
        """Check whether the caller holds an allocation-admin role."""
        return (self.role or "").lower() in ADMIN_ROLES

    def resolved_organization_type(self) -> OrganizationType:
        """Resolve the organization kind.

        Explicit metadata wins; otherwise membership of any organization
        implies a preschool, and no membership means an individual account.
        """
        explicit = OrganizationType.parse(self.organization_type)
        if explicit is not None:
            return explicit
        if self.organization_id:
            return OrganizationType.PRESCHOOL
        return OrganizationType.INDIVIDUAL


class ModelOption(BaseModel):
    """A language model the caller may pick, with a relative cost hint."""

    id: str
    name: str
    provider: Literal["claude", "openai", "custom"] = "claude"
    relative_cost: float = 1.0
    min_tier: Tier = Tier.FREE


class EffectiveLimits(BaseModel):
    """Resolved entitlement of a caller for the current period."""

    tier: Tier
    quotas: QuotaMap
    source: Literal["default", "server", "org_allocation"] = "default"
    overage_requires_prepay: bool = True
    can_org_allocate: bool = False
    organization_type: OrganizationType = OrganizationType.INDIVIDUAL
    allocation_suspended: bool = False
    models: list[ModelOption] = Field(default_factory=list)


class QuotaStatus(BaseModel):
    """Usage position of one feature.

    A limit of UNLIMITED (-1) reports remaining as UNLIMITED too, whatever
    the usage.
    """

    used: int = Field(ge=0)
    limit: int
    remaining: int

    @property
    def unlimited(self) -> bool:
        """Check whether the feature is uncapped."""
        return self.limit == UNLIMITED


DenialReason = Literal["over_quota", "suspended", "not_enabled"]


class CanUseResult(BaseModel):
    """Admission decision for a requested feature and count."""

    allowed: bool
    reason: DenialReason | None = None
    requires_prepay: bool | None = None
    status: QuotaStatus
    limits: EffectiveLimits
