# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-process key-value store for development and tests."""

import time
from typing import Any, Callable, Optional

from src.infrastructure.cache.base import KeyValueStore


class InMemoryStore(KeyValueStore):
    """Dictionary-backed store with the same JSON semantics as RedisStore.

    Values are round-tripped through JSON so callers never share mutable
    objects with the store.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._data: dict[str, tuple[str, Optional[float]]] = {}
        self._clock = clock

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        raw, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return raw

    async def get(self, key: str) -> Any:
        return self.deserialize(self._live(key))

    async def set(self, key: str, value: Any, expire_seconds: Optional[int] = None) -> None:
        expires_at = self._clock() + expire_seconds if expire_seconds else None
        self._data[key] = (self.serialize(value), expires_at)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def keys(self, prefix: str) -> list[str]:
        return [key for key in list(self._data) if key.startswith(prefix) and self._live(key) is not None]
