"""
Storage Module - Black Box Interface

Purpose: Abstract all data persistence
Interface: connect(), disconnect(), OrderedQueueStore
Hidden: Redis specifics, connection handling, sorted-set commands

Can be replaced with any ordered-set backend without affecting other modules.
"""

import os
from typing import Optional

import redis.asyncio as redis

from .store import (
    WAIT_KEY_SCAN_PATTERN,
    OrderedQueueStore,
    RedisOrderedQueueStore,
    proceed_key,
    queue_name_from_key,
    wait_key,
)


class StorageModule:
    """Black box storage abstraction."""

    def __init__(
        self,
        connection_url: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 2.0,
    ):
        """Initialize storage with connection URL."""
        self.url = connection_url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
        self.password = password
        self.timeout = timeout
        self._client = None

    @classmethod
    def from_config(cls, config) -> "StorageModule":
        """Build from a ConfigModule's redis_* keys."""
        url = f"redis://{config.get('redis_host')}:{config.get('redis_port')}/{config.get('redis_db')}"
        return cls(url, password=config.get("redis_password"), timeout=config.get("store_timeout"))

    async def connect(self) -> redis.Redis:
        """Get storage connection."""
        if not self._client:
            # Password passed separately to avoid URL encoding issues
            self._client = redis.from_url(
                self.url,
                password=self.password,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=self.timeout,
                socket_timeout=self.timeout,
            )
        return self._client

    async def queue_store(self) -> RedisOrderedQueueStore:
        """Sorted-set store over the shared connection."""
        return RedisOrderedQueueStore(await self.connect(), timeout=self.timeout)

    async def disconnect(self):
        """Close storage connection."""
        if self._client:
            await self._client.aclose()
            self._client = None


__all__ = [
    "StorageModule",
    "OrderedQueueStore",
    "RedisOrderedQueueStore",
    "WAIT_KEY_SCAN_PATTERN",
    "wait_key",
    "proceed_key",
    "queue_name_from_key",
]
