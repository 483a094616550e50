"""
Storage Module - Black Box Interface

Purpose: Own the Redis connection
Interface: connect(), disconnect(), ping()
Hidden: Redis specifics, connection pooling, decoding

Can be replaced with any storage backend without affecting other modules.
"""

import logging
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class StorageModule:
    """Black box storage abstraction."""

    def __init__(self, connection_url: str, password: Optional[str] = None):
        """Initialize storage with connection URL."""
        self.url = connection_url
        self.password = password
        self._client = None

    async def connect(self) -> redis.Redis:
        """Get storage connection."""
        if not self._client:
            self._client = redis.from_url(
                self.url,
                password=self.password,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info(f"Redis client created for {self.url}")
        return self._client

    async def ping(self) -> bool:
        """Check the connection is alive."""
        if not self._client:
            return False
        return bool(await self._client.ping())

    async def disconnect(self):
        """Close storage connection."""
        if self._client:
            await self._client.aclose()
            self._client = None


__all__ = ["StorageModule"]
