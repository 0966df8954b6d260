# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for the AI
Interaction Gateway. Settings are loaded from environment variables with
sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from src.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """Redis configuration for usage counters and retry queues.

    Per-user isolation is achieved via key prefix: {key_prefix}:{user_id}:*

    Attributes:
        enabled: Use Redis as the key-value store. When disabled, an
            in-process store is used (development and tests).
        host: Redis server host.
        port: Redis server port.
        password: Redis password.
        database: Redis database number.
        key_prefix: Prefix applied to every key written by the gateway.
        max_connections: Maximum connection pool size.
    """

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        extra="ignore",
    )

    enabled: bool = False
    host: str = "localhost"
    port: int = 6379
    password: SecretStr = SecretStr("")
    database: int = 0
    key_prefix: str = "ai_gateway"
    max_connections: int = 50

    @property
    def url(self) -> str:
        """Build the Redis connection URL."""
        pwd = self.password.get_secret_value()
        auth = f":{pwd}@" if pwd else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.database}"


class UsageServerSettings(BaseSettings):
    """Server-of-record RPC endpoint configuration.

    The server of record accepts JSON requests of the form
    {action, event?, preschool_id?, user_id?, quotas?}.

    Attributes:
        url: Full URL of the usage RPC endpoint. Empty disables remote calls.
        api_key: Optional bearer token sent with every request.
        timeout: Request timeout in seconds.
    """

    model_config = SettingsConfigDict(
        env_prefix="USAGE_SERVER_",
        extra="ignore",
    )

    url: str = ""
    api_key: SecretStr | None = None
    timeout: float = 10.0

    @property
    def enabled(self) -> bool:
        """Check whether a server of record is configured."""
        return bool(self.url)

    @property
    def auth_headers(self) -> dict[str, str]:
        """Build authentication headers for RPC requests."""
        headers = {"Content-Type": "application/json"}
        if self.api_key is not None and self.api_key.get_secret_value():
            headers["Authorization"] = f"Bearer {self.api_key.get_secret_value()}"
        return headers


class UsageSettings(BaseSettings):
    """Usage ledger configuration.

    Attributes:
        namespace: Feature namespace segment of usage keys.
        retain_periods: Number of monthly periods (current included) kept
            before older counters are pruned.
        quotas_file: Optional YAML file overriding the default quota tables.
    """

    model_config = SettingsConfigDict(
        env_prefix="USAGE_",
        extra="ignore",
    )

    namespace: str = "ai_usage"
    retain_periods: int = Field(default=2, ge=1)
    quotas_file: str | None = None


class AllocationSettings(BaseSettings):
    """Organization allocation pool configuration.

    Attributes:
        max_individual_fraction: Fraction of the pool total any single
            allocation may assign to one member, per feature.
        allow_member_self_allocation: Whether members may request their
            own allocations.
        period_days: Length of an allocation period in days.
    """

    model_config = SettingsConfigDict(
        env_prefix="ALLOCATION_",
        extra="ignore",
    )

    max_individual_fraction: float = Field(default=0.5, gt=0.0, le=1.0)
    allow_member_self_allocation: bool = False
    period_days: int = 30


class ResponseCacheSettings(BaseSettings):
    """Instant response cache configuration.

    Attributes:
        enabled: Whether the gateway consults the cache at all.
        patterns_file: Optional YAML file with extra patterns appended after
            the built-in ones.
        default_ttl_seconds: TTL applied to learned patterns without one.
    """

    model_config = SettingsConfigDict(
        env_prefix="RESPONSE_CACHE_",
        extra="ignore",
    )

    enabled: bool = True
    patterns_file: str | None = None
    default_ttl_seconds: int = 3600


class VoiceSettings(BaseSettings):
    """Live transcription provider configuration.

    Attributes:
        token_url: Trusted backend endpoint returning {token, region} for
            the cloud speech provider. Empty disables the cloud provider.
        token_api_key: Optional bearer token for the token endpoint.
        token_timeout: Token request timeout in seconds.
        start_timeout_seconds: Upper bound on session start-up.
        default_language: Language used when the caller gives none.
        disabled_providers: Comma-separated provider ids skipped during
            selection (e.g. "expo,azure").
    """

    model_config = SettingsConfigDict(
        env_prefix="VOICE_",
        extra="ignore",
    )

    token_url: str = ""
    token_api_key: SecretStr | None = None
    token_timeout: float = 10.0
    start_timeout_seconds: float = 15.0
    default_language: str = "en"
    disabled_providers: str = ""

    @property
    def disabled_provider_ids(self) -> set[str]:
        """Parse the comma-separated disabled provider ids."""
        return {
            item.strip().lower()
            for item in self.disabled_providers.split(",")
            if item.strip()
        }


class CORSSettings(BaseSettings):
    """CORS configuration for API.

    Attributes:
        origins: Comma-separated list of allowed origins.
        allow_credentials: Whether to allow credentials.
        allow_methods: Allowed HTTP methods.
        allow_headers: Allowed HTTP headers.
    """

    model_config = SettingsConfigDict(
        env_prefix="CORS_",
        extra="ignore",
    )

    origins: str = "http://localhost:3000,http://localhost:8081"
    allow_credentials: bool = True
    allow_methods: list[str] = ["*"]
    allow_headers: list[str] = ["*"]

    @property
    def origins_list(self) -> list[str]:
        """Parse origins string into a list."""
        return [origin.strip() for origin in self.origins.split(",") if origin.strip()]


class APISettings(BaseSettings):
    """API server configuration.

    Attributes:
        host: Host to bind to.
        port: Port to listen on.
        workers: Number of worker processes.
        reload: Whether to enable auto-reload.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 34000
    workers: int = 2
    reload: bool = False


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        redis: Key-value store settings.
        usage_server: Server-of-record settings.
        usage: Usage ledger settings.
        allocation: Organization allocation settings.
        response_cache: Instant response cache settings.
        voice: Voice provider settings.
        cors: CORS settings.
        api: API server settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    # Subsettings - loaded with their own env prefixes
    redis: RedisSettings = Field(default_factory=RedisSettings)
    usage_server: UsageServerSettings = Field(default_factory=UsageServerSettings)
    usage: UsageSettings = Field(default_factory=UsageSettings)
    allocation: AllocationSettings = Field(default_factory=AllocationSettings)
    response_cache: ResponseCacheSettings = Field(default_factory=ResponseCacheSettings)
    voice: VoiceSettings = Field(default_factory=VoiceSettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)
    api: APISettings = Field(default_factory=APISettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production without a durable store.
        """
        if self.environment == "production" and not self.redis.enabled:
            raise ValueError(
                "Usage counters must be durable in production. "
                "Set REDIS_ENABLED=true and configure the Redis connection."
            )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
