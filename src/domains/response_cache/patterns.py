# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Built-in instant-response patterns and YAML pattern loading.

Patterns are checked in declaration order and the first accepted one wins,
so specific patterns must precede broad ones. Extra patterns from the
``response_cache.patterns_file`` setting are appended after the built-ins:

    patterns:
      - pattern: "^where are my invoices"
        responses: ["Opening Billing..."]
        ttl_seconds: 1800
        roles: [principal]
        required_context: [organization_type]
        uses_platform_knowledge: true
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from src.core.config.yaml_loader import YAMLLoadError, load_optional_yaml

logger = logging.getLogger(__name__)

HOUR = 60 * 60
HALF_HOUR = 30 * 60
DAY = 24 * HOUR

STAFF_ROLES = ("teacher", "principal")

OVERRIDE_SECTIONS = ("patterns",)

_NAVIGATE = r"^(where|how do i find|take me to|show me|open|navigate to).*?"


@dataclass
class CachedResponsePattern:
    """A matcher with its candidate responses and eligibility rules.

    Attributes:
        matcher: Compiled pattern, searched against the normalized input.
        responses: Candidate texts; one is picked at random per hit.
        ttl_seconds: Lifetime of the memoized answer.
        roles: Allow-list of roles, or None for everyone.
        required_context: Context fields that must be present and non-empty.
        uses_platform_knowledge: Whether the text describes platform screens.
    """

    matcher: re.Pattern[str]
    responses: list[str]
    ttl_seconds: float = HOUR
    roles: frozenset[str] | None = None
    required_context: tuple[str, ...] = ()
    uses_platform_knowledge: bool = True

    def __post_init__(self) -> None:
        if not self.responses:
            raise ValueError("A cached response pattern needs at least one response")
        if self.ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

    @classmethod
    def build(
        cls,
        pattern: str | re.Pattern[str],
        responses: list[str],
        *,
        ttl_seconds: float = HOUR,
        roles: list[str] | tuple[str, ...] | frozenset[str] | None = None,
        required_context: list[str] | tuple[str, ...] | None = None,
        uses_platform_knowledge: bool = True,
    ) -> "CachedResponsePattern":
        """Compile a pattern case-insensitively.

        Raises:
            ValueError: On an invalid regular expression, no responses, or a
                non-positive TTL.
        """
        if isinstance(pattern, str):
            try:
                matcher = re.compile(pattern, re.IGNORECASE)
            except re.error as e:
                raise ValueError(f"Invalid response pattern {pattern!r}: {e}") from e
        else:
            matcher = pattern
        return cls(
            matcher=matcher,
            responses=list(responses),
            ttl_seconds=ttl_seconds,
            roles=frozenset(r.lower() for r in roles) if roles else None,
            required_context=tuple(required_context or ()),
            uses_platform_knowledge=uses_platform_knowledge,
        )


@dataclass
class _Spec:
    pattern: str
    responses: list[str]
    ttl_seconds: float
    uses_platform_knowledge: bool = True
    roles: tuple[str, ...] | None = None
    required_context: tuple[str, ...] = field(default_factory=tuple)


_DEFAULTS: list[_Spec] = [
    _Spec(
        r"^(hi|hello|hey|greetings?|good\s+(morning|afternoon|evening))$",
        [
            "Hello! I can help you find your way around. Try asking about Lessons, Students, Worksheets, or Reports.",
            "Hi! Need help with Attendance, Assignments, Parent Messages, or AI Lessons?",
            "Hey! I can take you to Student Management, Lesson Planning, or the Worksheet Generator.",
        ],
        HOUR,
    ),
    _Spec(
        _NAVIGATE + r"(lesson|lessons)",
        [
            "I can take you to the Lessons Hub. Opening now...",
            "Navigating to the Lessons Hub where you can browse by subject.",
        ],
        HALF_HOUR,
        roles=STAFF_ROLES,
    ),
    _Spec(
        _NAVIGATE + r"(student|students|learner)",
        ["Opening Student Management...", "Taking you to Student Management."],
        HALF_HOUR,
        roles=STAFF_ROLES,
    ),
    _Spec(
        _NAVIGATE + r"(worksheet|worksheets)",
        ["Opening the Worksheet Generator...", "Taking you to the Worksheet Generator."],
        HALF_HOUR,
        roles=STAFF_ROLES,
    ),
    _Spec(
        _NAVIGATE + r"(report|reports|analytics)",
        ["Opening Teacher Reports...", "Taking you to Reports & Analytics."],
        HALF_HOUR,
        roles=STAFF_ROLES,
    ),
    _Spec(
        _NAVIGATE + r"(attendance)",
        ["I'll help you mark attendance. Opening Attendance..."],
        HALF_HOUR,
        roles=STAFF_ROLES,
    ),
    _Spec(
        _NAVIGATE + r"(parent|parents|message|messages)",
        ["Opening Parent Messages..."],
        HALF_HOUR,
        roles=STAFF_ROLES,
    ),
    _Spec(
        r"^what can (you|dash) do\?*$",
        [
            "I can take you to any screen, help with Lesson Planning, generate Worksheets, "
            "track Student Progress, manage Attendance, and message Parents. What would you like to do?",
        ],
        DAY,
    ),
    _Spec(
        r"^(help|what\s+do\s+i\s+do|i\s+need\s+help|assist)",
        [
            "I'm here to help! Ask me to open any screen, create lessons, generate worksheets, "
            "or check student progress. What do you need?",
        ],
        HOUR,
    ),
    _Spec(
        r"^(thanks?|thank\s+you|thx|appreciate\s+it)$",
        [
            "You're welcome! Anything else you need help with?",
            "Happy to help! What's next?",
            "Anytime! Let me know if you need anything else.",
        ],
        HOUR,
        uses_platform_knowledge=False,
    ),
    _Spec(
        r"^(yes|yep|yeah|sure|ok|okay|correct|right|exactly)$",
        ["Great! Proceeding now...", "Perfect! One moment...", "Understood. Continuing..."],
        HALF_HOUR,
        uses_platform_knowledge=False,
    ),
    _Spec(
        r"^(no|nope|not\s+really|nah|wrong|incorrect)$",
        [
            "No problem! What would you like to do instead?",
            "Alright! How can I help you?",
            "Understood. Let me know what you need.",
        ],
        HALF_HOUR,
        uses_platform_knowledge=False,
    ),
    _Spec(
        r"^(how\s+are\s+you|how'?s\s+it\s+going|what'?s\s+up)$",
        [
            "All systems running smoothly! What can I help you with?",
            "Ready and waiting! What do you need?",
            "I'm here and ready to help! What's on your mind?",
        ],
        HOUR,
        uses_platform_knowledge=False,
    ),
    _Spec(
        r"(pdf|generate.*pdf|create.*pdf|export.*pdf)",
        [
            "You can generate PDFs with the Worksheet Generator or the AI Lesson Generator. "
            "Which would you like?",
        ],
        HOUR,
    ),
    _Spec(
        r"(ai.*lesson|lesson.*generator|create.*lesson|generate.*lesson|lesson.*plan)",
        ["I can take you to the AI Lesson Generator. Opening now..."],
        HALF_HOUR,
        roles=STAFF_ROLES,
    ),
]


def default_patterns() -> list[CachedResponsePattern]:
    """Fresh copies of the built-in patterns, in match order."""
    return [
        CachedResponsePattern.build(
            spec.pattern,
            spec.responses,
            ttl_seconds=spec.ttl_seconds,
            roles=spec.roles,
            required_context=spec.required_context,
            uses_platform_knowledge=spec.uses_platform_knowledge,
        )
        for spec in _DEFAULTS
    ]


def parse_patterns(
    data: dict[str, Any],
    default_ttl_seconds: float = HOUR,
    source: str = "<patterns>",
) -> list[CachedResponsePattern]:
    """Build patterns from a parsed YAML document.

    Args:
        data: Mapping with a ``patterns`` list.
        default_ttl_seconds: TTL for entries that omit ``ttl_seconds``.
        source: File name used in error messages.

    Returns:
        Patterns in file order.

    Raises:
        YAMLLoadError: If an entry is malformed.
    """
    entries = data.get("patterns") or []
    if not isinstance(entries, list):
        raise YAMLLoadError(Path(source), "'patterns' must be a list")

    patterns = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict) or "pattern" not in entry:
            raise YAMLLoadError(Path(source), f"Pattern entry {index} needs a 'pattern' key")
        try:
            patterns.append(
                CachedResponsePattern.build(
                    str(entry["pattern"]),
                    [str(r) for r in entry.get("responses") or []],
                    ttl_seconds=float(entry.get("ttl_seconds", default_ttl_seconds)),
                    roles=entry.get("roles"),
                    required_context=entry.get("required_context"),
                    uses_platform_knowledge=bool(entry.get("uses_platform_knowledge", True)),
                )
            )
        except (TypeError, ValueError) as e:
            raise YAMLLoadError(Path(source), f"Invalid pattern entry {index}: {e}") from e
    return patterns


def load_patterns(path: str | None, default_ttl_seconds: float = HOUR) -> list[CachedResponsePattern]:
    """Built-in patterns followed by those from an optional YAML file."""
    patterns = default_patterns()
    extra = load_optional_yaml(path, sections=OVERRIDE_SECTIONS)
    if extra:
        loaded = parse_patterns(extra, default_ttl_seconds, source=str(path))
        logger.info("Loaded %d response patterns from %s", len(loaded), path)
        patterns.extend(loaded)
    return patterns
