# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Redis-backed key-value store.

This module provides an async Redis store used for usage counters, the usage
retry queue and organization allocations. All keys are prefixed with the
configured key prefix so several deployments can share one Redis database.

Example:
    from src.infrastructure.cache import RedisStore

    store = RedisStore(settings)
    await store.connect()
    await store.set("ai_usage:user-1:202610", {"homework_help": 3})
    await store.close()
"""

import re
from typing import TYPE_CHECKING, Any, Optional

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError as BaseRedisError

from src.infrastructure.cache.base import KeyValueStore, StoreError

if TYPE_CHECKING:
    from src.core.config.settings import Settings

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def escape_glob(text: str) -> str:
    """Escape Redis MATCH wildcards so text matches literally."""
    return _GLOB_SPECIAL.sub(r"\\\1", text)


class RedisStore(KeyValueStore):
    """Async Redis store with key prefixing and JSON values.

    Attributes:
        key_prefix: Prefix prepended to every key.

    Example:
        store = RedisStore(settings)
        await store.connect()

        await store.set("queue:user-1", [event])
        events = await store.get("queue:user-1")

        await store.close()
    """

    def __init__(self, settings: "Settings", redis: Optional[Redis] = None) -> None:
        """Initialize the Redis store.

        Args:
            settings: Application settings containing Redis configuration.
            redis: Pre-built client, mainly for tests.
        """
        self._settings = settings
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = redis
        self.key_prefix = settings.redis.key_prefix

    async def connect(self) -> None:
        """Create the Redis connection pool.

        Raises:
            StoreError: If connection fails.
        """
        if self._redis is not None:
            return
        try:
            self._pool = ConnectionPool.from_url(
                self._settings.redis.url,
                max_connections=self._settings.redis.max_connections,
                decode_responses=True,
            )
            self._redis = Redis(connection_pool=self._pool)

            await self._redis.ping()
        except BaseRedisError as e:
            raise StoreError("Failed to connect to Redis", e) from e

    async def close(self) -> None:
        """Close the Redis connection pool."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None

    def _ensure_connected(self) -> Redis:
        """Ensure the store is connected.

        Returns:
            The Redis client instance.

        Raises:
            StoreError: If not connected.
        """
        if self._redis is None:
            raise StoreError("Redis store not connected. Call connect() first.")
        return self._redis

    def _full_key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}"

    def _strip_prefix(self, full_key: str) -> str:
        return full_key[len(self.key_prefix) + 1:]

    async def get(self, key: str) -> Any:
        """Get a value by key.

        Args:
            key: The key, without the store prefix.

        Returns:
            The deserialized value or None if not found.

        Raises:
            StoreError: If the operation fails.
        """
        redis = self._ensure_connected()
        try:
            value = await redis.get(self._full_key(key))
            return self.deserialize(value)
        except BaseRedisError as e:
            raise StoreError(f"Failed to get key: {key}", e) from e

    async def set(
        self,
        key: str,
        value: Any,
        expire_seconds: Optional[int] = None,
    ) -> None:
        """Set a key-value pair.

        Args:
            key: The key, without the store prefix.
            value: The value (JSON serialized if not a string).
            expire_seconds: Optional expiration time in seconds.

        Raises:
            StoreError: If the operation fails.
        """
        redis = self._ensure_connected()
        try:
            await redis.set(self._full_key(key), self.serialize(value), ex=expire_seconds)
        except BaseRedisError as e:
            raise StoreError(f"Failed to set key: {key}", e) from e

    async def delete(self, key: str) -> bool:
        """Delete a key.

        Args:
            key: The key to delete.

        Returns:
            True if the key was deleted, False if it didn't exist.

        Raises:
            StoreError: If the operation fails.
        """
        redis = self._ensure_connected()
        try:
            result = await redis.delete(self._full_key(key))
            return result > 0
        except BaseRedisError as e:
            raise StoreError(f"Failed to delete key: {key}", e) from e

    async def keys(self, prefix: str) -> list[str]:
        """List keys starting with prefix using SCAN.

        Args:
            prefix: Key prefix, without the store prefix.

        Returns:
            Matching keys with the store prefix removed.

        Raises:
            StoreError: If the operation fails.
        """
        redis = self._ensure_connected()
        try:
            found = []
            pattern = f"{escape_glob(self._full_key(prefix))}*"
            async for full_key in redis.scan_iter(match=pattern):
                found.append(self._strip_prefix(full_key))
            return found
        except BaseRedisError as e:
            raise StoreError(f"Failed to list keys: {prefix}", e) from e

    async def ping(self) -> bool:
        """Check if Redis is reachable.

        Returns:
            True if Redis responds to ping, False otherwise.
        """
        try:
            redis = self._ensure_connected()
            await redis.ping()
            return True
        except (StoreError, BaseRedisError):
            return False
