# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for the AI Interaction Gateway.

This package provides centralized configuration management:
- Settings: Pydantic-based settings loaded from environment variables
- YAML loader: Utilities for loading quota and pattern override files

Example:
    >>> from src.core.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'

    >>> from src.core.config import load_optional_yaml
    >>> overrides = load_optional_yaml(settings.usage.quotas_file, sections=("monthly",))
"""

from src.core.config.settings import (
    AllocationSettings,
    APISettings,
    CORSSettings,
    RedisSettings,
    ResponseCacheSettings,
    Settings,
    UsageServerSettings,
    UsageSettings,
    VoiceSettings,
    clear_settings_cache,
    get_settings,
)
from src.core.config.yaml_loader import (
    YAMLLoadError,
    deep_merge,
    load_optional_yaml,
    load_yaml,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "clear_settings_cache",
    # Subsettings
    "RedisSettings",
    "UsageServerSettings",
    "UsageSettings",
    "AllocationSettings",
    "ResponseCacheSettings",
    "VoiceSettings",
    "CORSSettings",
    "APISettings",
    # YAML utilities
    "load_yaml",
    "load_optional_yaml",
    "deep_merge",
    "YAMLLoadError",
]
