"""
Shared pytest fixtures for queueboard tests.

This module provides common fixtures including:
- Redis mocks for the Redis queue store
- An in-process memory store with a QueueModule on top
- A frozen clock for move timestamps
"""

import asyncio
import os
from datetime import UTC, datetime
from typing import Dict
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

# The API module reads configuration at import time
os.environ.setdefault("QUEUE_BACKEND", "memory")
os.environ.setdefault("POLL_INTERVAL_MS", "50")

from queueboard.modules.api import QueueEntry, QueueType
from queueboard.modules.notifier import ChangeNotifier
from queueboard.modules.queue import QueueModule
from queueboard.modules.reconciler import Reconciler
from queueboard.modules.store import MemoryQueueStore


# =============================================================================
# Redis Mocking Infrastructure
# =============================================================================

@pytest.fixture
def mock_redis():
    """Create a mock Redis client for the Redis queue store."""
    redis = AsyncMock()

    # Hash / sorted set reads
    redis.hgetall = AsyncMock(return_value={})
    redis.zrange = AsyncMock(return_value=[])
    redis.zrevrange = AsyncMock(return_value=[])

    # Scripts and pub/sub
    redis.eval = AsyncMock()
    redis.publish = AsyncMock(return_value=1)

    pubsub = AsyncMock()
    pubsub.subscribe = AsyncMock()
    pubsub.unsubscribe = AsyncMock()
    pubsub.aclose = AsyncMock()
    redis.pubsub = MagicMock(return_value=pubsub)

    return redis


def redis_hash(
    item_id: str,
    value1: str,
    value2: str,
    position: int,
    queue_type: QueueType = QueueType.MAIN,
    moved_at: str = None,
) -> Dict[str, str]:
    """Hash fields as a decode_responses=True client returns them."""
    data = {
        "id": item_id,
        "value1": value1,
        "value2": value2,
        "created_at": "2026-10-19T12:00:00+00:00",
        "position": str(position),
        "queue_type": queue_type.value,
    }
    if moved_at:
        data["moved_at"] = moved_at
    return data


# =============================================================================
# Queue Fixtures
# =============================================================================

class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 10, 19, 12, 0, 0, tzinfo=UTC))


@pytest_asyncio.fixture
async def memory_store():
    return MemoryQueueStore()


@pytest_asyncio.fixture
async def queue_module(memory_store):
    return QueueModule(memory_store)


@pytest_asyncio.fixture
async def reconciler(queue_module):
    return Reconciler(queue_module)


@pytest_asyncio.fixture
async def notifier(memory_store, reconciler):
    return ChangeNotifier(memory_store, reconciler.refresh, reconnect_delay=0)


def values(entries):
    """(value1, value2, position) triples for compact assertions."""
    return [(e.value1, e.value2, e.position) for e in entries]


def assert_ascending(entries):
    positions = [e.position for e in entries]
    assert positions == sorted(positions)
    assert len(set(positions)) == len(positions)


async def wait_until(predicate, timeout: float = 1.0, interval: float = 0.01):
    """Poll predicate() until it is truthy or fail after timeout seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met within timeout")
        await asyncio.sleep(interval)


# =============================================================================
# Test Markers Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: Integration tests requiring infrastructure"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take a long time to run"
    )
