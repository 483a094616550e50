"""
Store Module - Black Box Interface

Purpose: Ordered, partitioned persistence of queue entries plus their change feed
Interface: QueueStore protocol, PositionAllocator, StoreFactory.build()
Hidden: Redis key layout, Lua allocate-and-append scripts, pub/sub channels

Can be replaced with any backend that offers ordered reads, atomic tail
appends and a per-partition change channel.
"""

from .allocator import PositionAllocator
from .errors import NotFoundError, QueueError, StoreReadError, StoreWriteError
from .factory import StoreFactory
from .interfaces import QueueStore
from .memory_store import MemoryQueueStore
from .redis_store import RedisQueueStore

__all__ = [
    "MemoryQueueStore",
    "NotFoundError",
    "PositionAllocator",
    "QueueError",
    "QueueStore",
    "RedisQueueStore",
    "StoreFactory",
    "StoreReadError",
    "StoreWriteError",
]
