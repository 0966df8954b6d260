# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Key-value storage for gateway state.

Usage counters, the usage retry queue and organization allocations are
persisted through the KeyValueStore interface. Redis is used when enabled,
otherwise an in-process store.

Example:
    from src.infrastructure.cache import create_store

    store = await create_store(settings)
    await store.set("ai_usage:user-1:202610", {"homework_help": 3})
    await store.close()
"""

from typing import TYPE_CHECKING

from src.infrastructure.cache.base import KeyValueStore, StoreError
from src.infrastructure.cache.memory import InMemoryStore
from src.infrastructure.cache.redis_client import RedisStore

if TYPE_CHECKING:
    from src.core.config.settings import Settings


async def create_store(settings: "Settings") -> KeyValueStore:
    """Build and connect the store selected by settings.

    Args:
        settings: Application settings.

    Returns:
        A connected KeyValueStore.

    Raises:
        StoreError: If Redis is enabled but unreachable.
    """
    if settings.redis.enabled:
        store = RedisStore(settings)
        await store.connect()
        return store
    return InMemoryStore()


__all__ = [
    "KeyValueStore",
    "StoreError",
    "InMemoryStore",
    "RedisStore",
    "create_store",
]
