# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Key-value store interface shared by the usage ledger and allocation pool.

Persisted gateway state (usage counters, retry queues, allocations) only
needs get/set/delete plus prefix listing for pruning. Implementations:
- RedisStore: durable, shared between API workers
- InMemoryStore: single-process, used in development and tests
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Optional


class StoreError(Exception):
    """Exception raised for key-value store failures.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying backend error.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        """Initialize the store error.

        Args:
            message: Human-readable error description.
            original_error: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class KeyValueStore(ABC):
    """Async key-value store with JSON values.

    Keys are plain strings; callers scope them with a stable per-user or
    per-organization prefix. Values are JSON-serializable objects.
    """

    @abstractmethod
    async def get(self, key: str) -> Any:
        """Get a value by key, or None if missing."""

    @abstractmethod
    async def set(self, key: str, value: Any, expire_seconds: Optional[int] = None) -> None:
        """Set a key-value pair, optionally expiring."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key. Returns True if it existed."""

    @abstractmethod
    async def keys(self, prefix: str) -> list[str]:
        """List keys starting with prefix."""

    async def close(self) -> None:
        """Release backend resources."""

    async def ping(self) -> bool:
        """Check that the backend is reachable."""
        return True

    @staticmethod
    def serialize(value: Any) -> str:
        """Serialize a value to a JSON string.

        Args:
            value: The value to serialize.

        Returns:
            JSON string representation.
        """
        if isinstance(value, str):
            return value
        return json.dumps(value, ensure_ascii=False, default=str)

    @staticmethod
    def deserialize(value: Optional[str]) -> Any:
        """Deserialize a JSON string to a Python object.

        Args:
            value: The JSON string to deserialize.

        Returns:
            Python object, the raw string if it is not JSON, or None.
        """
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
