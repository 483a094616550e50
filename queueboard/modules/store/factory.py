"""
Queue store factory following Black Box Design principles.

This factory:
- Picks the store backend from configuration
- Wires the Redis client into it
- Returns only the QueueStore interface
"""

import logging
from typing import Any, Optional

from .interfaces import QueueStore
from .memory_store import MemoryQueueStore
from .redis_store import RedisQueueStore

logger = logging.getLogger(__name__)


class StoreFactory:
    """Composition root for the queue store."""

    @staticmethod
    def build(backend: str, redis_client: Optional[Any] = None) -> QueueStore:
        """
        Build the queue store.

        Args:
            backend: "redis" or "memory"
            redis_client: Async Redis client, required for the redis backend

        Returns:
            QueueStore implementation
        """
        if backend == "memory":
            logger.info("Using in-process memory queue store")
            return MemoryQueueStore()

        if backend == "redis":
            if redis_client is None:
                raise ValueError("Redis backend requires a Redis client")
            logger.info("Using Redis queue store")
            return RedisQueueStore(redis_client)

        raise ValueError(f"Unknown queue backend: {backend}")
