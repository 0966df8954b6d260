# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Static quota tables and tier policy.

Three tables drive entitlement when no server-declared value exists:
- DEFAULT_MONTHLY_QUOTAS: personal monthly limits per tier
- ORGANIZATION_POOL_QUOTAS: shared organization pool size per tier
- DEFAULT_MEMBER_QUOTAS: suggested per-member allocation by role

Deployments can override any cell with a YAML file shaped like the tables,
e.g. ``monthly: {free: {homework_help: 20}}``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from src.core.config.yaml_loader import deep_merge, load_optional_yaml
from src.domains.quota.schemas import (
    ADMIN_ROLES,
    UNLIMITED,
    ModelOption,
    OrganizationType,
    QuotaFeature,
    QuotaMap,
    Tier,
)

logger = logging.getLogger(__name__)

F = QuotaFeature

OVERRIDE_SECTIONS = ("monthly", "pool", "member")

DEFAULT_MONTHLY_QUOTAS: dict[Tier, QuotaMap] = {
    Tier.FREE: {
        F.LESSON_GENERATION: 5, F.GRADING_ASSISTANCE: 5, F.HOMEWORK_HELP: 15,
        F.CHAT_COMPLETIONS: 100, F.IMAGE_GENERATION: 10,
        F.TEXT_TO_SPEECH: 50, F.SPEECH_TO_TEXT: 50,
    },
    Tier.STARTER: {
        F.LESSON_GENERATION: 10, F.GRADING_ASSISTANCE: 10, F.HOMEWORK_HELP: 30,
        F.CHAT_COMPLETIONS: 500, F.IMAGE_GENERATION: 50,
        F.TEXT_TO_SPEECH: 200, F.SPEECH_TO_TEXT: 200,
    },
    Tier.PARENT_STARTER: {
        F.LESSON_GENERATION: 0, F.GRADING_ASSISTANCE: 0, F.HOMEWORK_HELP: 30,
        F.CHAT_COMPLETIONS: 300, F.IMAGE_GENERATION: 20,
        F.TEXT_TO_SPEECH: 100, F.SPEECH_TO_TEXT: 100,
    },
    Tier.PARENT_PLUS: {
        F.LESSON_GENERATION: 0, F.GRADING_ASSISTANCE: 0, F.HOMEWORK_HELP: 100,
        F.CHAT_COMPLETIONS: 1000, F.IMAGE_GENERATION: 50,
        F.TEXT_TO_SPEECH: 300, F.SPEECH_TO_TEXT: 300,
    },
    Tier.PRIVATE_TEACHER: {
        F.LESSON_GENERATION: 20, F.GRADING_ASSISTANCE: 20, F.HOMEWORK_HELP: 100,
        F.CHAT_COMPLETIONS: 1000, F.IMAGE_GENERATION: 100,
        F.TEXT_TO_SPEECH: 300, F.SPEECH_TO_TEXT: 300,
    },
    Tier.PRO: {
        F.LESSON_GENERATION: 50, F.GRADING_ASSISTANCE: 100, F.HOMEWORK_HELP: 300,
        F.CHAT_COMPLETIONS: 2000, F.IMAGE_GENERATION: 200,
        F.TEXT_TO_SPEECH: 500, F.SPEECH_TO_TEXT: 500,
    },
    Tier.ENTERPRISE: {
        F.LESSON_GENERATION: 5000, F.GRADING_ASSISTANCE: 10000, F.HOMEWORK_HELP: 30000,
        F.CHAT_COMPLETIONS: UNLIMITED, F.IMAGE_GENERATION: 1000,
        F.TEXT_TO_SPEECH: 2000, F.SPEECH_TO_TEXT: 2000,
    },
}

ORGANIZATION_POOL_QUOTAS: dict[Tier, QuotaMap] = {
    Tier.FREE: {
        F.LESSON_GENERATION: 50, F.GRADING_ASSISTANCE: 50, F.HOMEWORK_HELP: 100,
        F.CHAT_COMPLETIONS: 100, F.IMAGE_GENERATION: 10,
        F.TEXT_TO_SPEECH: 50, F.SPEECH_TO_TEXT: 50,
    },
    Tier.STARTER: {
        F.LESSON_GENERATION: 200, F.GRADING_ASSISTANCE: 200, F.HOMEWORK_HELP: 300,
        F.CHAT_COMPLETIONS: 500, F.IMAGE_GENERATION: 50,
        F.TEXT_TO_SPEECH: 200, F.SPEECH_TO_TEXT: 200,
    },
    Tier.PRO: {
        F.LESSON_GENERATION: 1000, F.GRADING_ASSISTANCE: 800, F.HOMEWORK_HELP: 500,
        F.CHAT_COMPLETIONS: 2000, F.IMAGE_GENERATION: 200,
        F.TEXT_TO_SPEECH: 500, F.SPEECH_TO_TEXT: 500,
    },
    Tier.ENTERPRISE: {
        F.LESSON_GENERATION: 5000, F.GRADING_ASSISTANCE: 4000, F.HOMEWORK_HELP: 3000,
        F.CHAT_COMPLETIONS: 10000, F.IMAGE_GENERATION: 1000,
        F.TEXT_TO_SPEECH: 2000, F.SPEECH_TO_TEXT: 2000,
    },
}

DEFAULT_MEMBER_QUOTAS: dict[str, QuotaMap] = {
    "teacher": {
        F.LESSON_GENERATION: 50, F.GRADING_ASSISTANCE: 30, F.HOMEWORK_HELP: 20,
        F.CHAT_COMPLETIONS: 200, F.IMAGE_GENERATION: 20,
        F.TEXT_TO_SPEECH: 100, F.SPEECH_TO_TEXT: 100,
    },
    "principal": {
        F.LESSON_GENERATION: 100, F.GRADING_ASSISTANCE: 60, F.HOMEWORK_HELP: 40,
        F.CHAT_COMPLETIONS: 500, F.IMAGE_GENERATION: 50,
        F.TEXT_TO_SPEECH: 200, F.SPEECH_TO_TEXT: 200,
    },
    "principal_admin": {
        F.LESSON_GENERATION: 150, F.GRADING_ASSISTANCE: 90, F.HOMEWORK_HELP: 60,
        F.CHAT_COMPLETIONS: 800, F.IMAGE_GENERATION: 80,
        F.TEXT_TO_SPEECH: 300, F.SPEECH_TO_TEXT: 300,
    },
}

DEFAULT_MODELS: list[ModelOption] = [
    ModelOption(id="claude-3-haiku", name="Dash Fast", relative_cost=1, min_tier=Tier.FREE),
    ModelOption(id="claude-3-sonnet", name="Dash Smart", relative_cost=5, min_tier=Tier.STARTER),
    ModelOption(id="claude-3-opus", name="Dash Expert", relative_cost=20, min_tier=Tier.PRO),
]


def parse_quota_map(raw: Any) -> QuotaMap:
    """Convert a JSON/YAML mapping into a QuotaMap.

    Unknown feature names and non-integer values are dropped. Negative
    values other than UNLIMITED are floored at zero.

    Args:
        raw: Mapping of feature name to limit.

    Returns:
        QuotaMap holding only the recognised features.
    """
    if not isinstance(raw, dict):
        return {}

    quotas: QuotaMap = {}
    for name, value in raw.items():
        try:
            feature = QuotaFeature(str(name))
            limit = int(value)
        except (ValueError, TypeError):
            logger.debug("Ignoring quota entry %r=%r", name, value)
            continue
        quotas[feature] = limit if limit == UNLIMITED else max(0, limit)
    return quotas


def can_use_allocation(
    tier: Tier,
    organization_type: OrganizationType,
    role: str | None = None,
) -> bool:
    """Check whether organization-managed allocation is available.

    Admin roles always keep allocation rights. Otherwise preschools need
    the pro tier or above, K-12 schools need enterprise, and individual
    accounts never qualify.

    Args:
        tier: Resolved tier of the caller or organization.
        organization_type: Kind of organization.
        role: Caller role, if known.

    Returns:
        True if allocations may be used.
    """
    if (role or "").lower() in ADMIN_ROLES:
        return True
    if organization_type == OrganizationType.PRESCHOOL:
        return tier >= Tier.PRO
    if organization_type == OrganizationType.K12:
        return tier >= Tier.ENTERPRISE
    return False


def can_select_models(tier: Tier) -> bool:
    """Model selection is offered from the pro tier upwards."""
    return tier >= Tier.PRO


def models_for_tier(tier: Tier) -> list[ModelOption]:
    """List the default models whose minimum tier the caller meets."""
    return [model for model in DEFAULT_MODELS if tier >= model.min_tier]


@dataclass
class QuotaTables:
    """Quota tables after applying deployment overrides."""

    monthly: dict[Tier, QuotaMap] = field(
        default_factory=lambda: {t: dict(q) for t, q in DEFAULT_MONTHLY_QUOTAS.items()}
    )
    pool: dict[Tier, QuotaMap] = field(
        default_factory=lambda: {t: dict(q) for t, q in ORGANIZATION_POOL_QUOTAS.items()}
    )
    member: dict[str, QuotaMap] = field(
        default_factory=lambda: {r: dict(q) for r, q in DEFAULT_MEMBER_QUOTAS.items()}
    )

    def monthly_for(self, tier: Tier) -> QuotaMap:
        """Personal monthly limits for a tier; missing features read as 0."""
        table = self.monthly.get(tier, {})
        return {feature: table.get(feature, 0) for feature in QuotaFeature}

    def pool_for(self, tier: Tier) -> QuotaMap:
        """Organization pool size for a tier.

        Tiers without a pool row (parent and private-teacher plans) use the
        nearest lower tier that has one.
        """
        for candidate in sorted(self.pool, reverse=True):
            if candidate <= tier:
                table = self.pool[candidate]
                return {feature: table.get(feature, 0) for feature in QuotaFeature}
        return {feature: 0 for feature in QuotaFeature}

    def member_for(self, role: str | None) -> QuotaMap:
        """Suggested allocation for a member role, defaulting to teacher."""
        table = self.member.get((role or "").lower()) or self.member.get("teacher", {})
        return {feature: table.get(feature, 0) for feature in QuotaFeature}

    @classmethod
    def from_file(cls, path: str | None) -> "QuotaTables":
        """Build tables from the defaults plus an optional YAML override file.

        Args:
            path: Override file path from settings, or None.

        Returns:
            Merged quota tables.

        Raises:
            YAMLLoadError: If a configured file cannot be loaded.
        """
        tables = cls()
        overrides = load_optional_yaml(path, sections=OVERRIDE_SECTIONS)
        if not overrides:
            return tables

        logger.info("Applying quota table overrides from %s", path)
        tables.monthly = _merge_tier_table(tables.monthly, overrides.get("monthly", {}))
        tables.pool = _merge_tier_table(tables.pool, overrides.get("pool", {}))
        for role, raw in (overrides.get("member") or {}).items():
            base = {f.value: v for f, v in tables.member.get(role, {}).items()}
            tables.member[str(role).lower()] = parse_quota_map(deep_merge(base, raw or {}))
        return tables


def _merge_tier_table(table: dict[Tier, QuotaMap], raw: Any) -> dict[Tier, QuotaMap]:
    merged = {tier: dict(quotas) for tier, quotas in table.items()}
    if not isinstance(raw, dict):
        return merged
    for tier_name, quotas in raw.items():
        tier = Tier.parse(str(tier_name))
        if tier is None:
            logger.warning("Unknown tier %r in quota overrides", tier_name)
            continue
        merged.setdefault(tier, {}).update(parse_quota_map(quotas))
    return merged
