# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""YAML override file loading.

The gateway ships its quota tables and instant-response patterns in code.
Deployments may override or extend them with YAML files named in settings
(USAGE_QUOTAS_FILE, RESPONSE_CACHE_PATTERNS_FILE). Each file kind declares
the top-level sections it accepts, so a misspelled ``mothly:`` fails at
startup instead of silently leaving the defaults in place.

Example:
    >>> from src.core.config.yaml_loader import load_optional_yaml
    >>> overrides = load_optional_yaml(
    ...     settings.usage.quotas_file, sections=("monthly", "pool", "member")
    ... )
"""

from collections.abc import Collection
from pathlib import Path
from typing import Any

import yaml


class YAMLLoadError(Exception):
    """Raised when an override file cannot be loaded or has the wrong shape.

    Attributes:
        path: File that failed to load.
        reason: Why it failed.
    """

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load YAML file '{path}': {reason}")


def load_yaml(path: Path, sections: Collection[str] | None = None) -> dict[str, Any]:
    """Parse an override file into a mapping.

    Args:
        path: File to read.
        sections: Allowed top-level keys, or None to accept any.

    Returns:
        The parsed mapping; an empty or comment-only file yields {}.

    Raises:
        YAMLLoadError: If the file is missing or unreadable, is not valid
            YAML, is not a mapping, or has a section outside sections.
    """
    if not path.is_file():
        reason = "Path is not a file" if path.exists() else "File does not exist"
        raise YAMLLoadError(path, reason)

    try:
        parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise YAMLLoadError(path, f"Cannot read file: {e}") from e
    except yaml.YAMLError as e:
        raise YAMLLoadError(path, f"Invalid YAML syntax: {e}") from e

    document = {} if parsed is None else parsed
    if not isinstance(document, dict):
        raise YAMLLoadError(path, f"YAML root must be a mapping, got {type(parsed).__name__}")

    if sections is not None:
        unknown = sorted(str(key) for key in document if key not in sections)
        if unknown:
            raise YAMLLoadError(
                path,
                f"Unknown section(s) {', '.join(unknown)}; expected {', '.join(sorted(sections))}",
            )
    return document


def load_optional_yaml(
    path: str | Path | None, sections: Collection[str] | None = None
) -> dict[str, Any]:
    """Load an override file named by a setting.

    An unset setting means no overrides. A set but broken path is a
    deployment error and raises.

    Raises:
        YAMLLoadError: If the configured file cannot be loaded.
    """
    if not path:
        return {}
    return load_yaml(Path(path), sections)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge override into a copy of base, recursing into nested mappings.

    Lists and scalars in override replace the base value. Neither input is
    modified.

    Example:
        >>> deep_merge({"free": {"homework_help": 15, "lesson_generation": 5}},
        ...            {"free": {"homework_help": 20}})
        {'free': {'homework_help': 20, 'lesson_generation': 5}}
    """
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged
