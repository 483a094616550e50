"""
Queue scenarios against the Redis store with its Lua scripts executed.

Uses fakeredis with Lua support, so allocate-and-append, move and delete
run exactly as they would on a Redis server.
"""

import asyncio
from datetime import UTC, datetime

import fakeredis
import pytest
import pytest_asyncio

from conftest import assert_ascending, values
from queueboard.modules.api import QueueType
from queueboard.modules.queue import QueueModule
from queueboard.modules.store import NotFoundError, RedisQueueStore


@pytest_asyncio.fixture
async def redis_client():
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def redis_store(redis_client):
    return RedisQueueStore(redis_client)


@pytest_asyncio.fixture
async def redis_queue(redis_store, clock):
    return QueueModule(redis_store, clock=clock)


@pytest.mark.asyncio
async def test_push_push_pop(redis_queue):
    """Test the basic FIFO scenario through the append and delete scripts"""
    queue = await redis_queue.push("A", "B")
    assert values(queue) == [("A", "B", 0)]

    queue = await redis_queue.push("C", "D")
    assert values(queue) == [("A", "B", 0), ("C", "D", 1)]

    queue = await redis_queue.pop()
    assert values(queue) == [("C", "D", 1)]

    assert await redis_queue.pop() == []
    assert await redis_queue.pop() == []


@pytest.mark.asyncio
async def test_move_lands_at_waiting_room_tail(redis_queue, clock):
    """Test the move script re-homes the entry and stamps moved_at"""
    await redis_queue.push_to_waiting_room("W", "1")
    queue = await redis_queue.push("X", "Y")
    await redis_queue.push("Z", "Q")

    queues = await redis_queue.move_to_waiting_room(queue[0].id)

    assert values(queues[QueueType.MAIN]) == [("Z", "Q", 1)]
    waiting = queues[QueueType.WAITING_ROOM]
    assert values(waiting) == [("W", "1", 0), ("X", "Y", 1)]
    assert waiting[-1].queue_type == QueueType.WAITING_ROOM
    assert waiting[-1].moved_at == clock.now


@pytest.mark.asyncio
async def test_move_back_to_main_clears_moved_at(redis_store):
    entry = await redis_store.append(
        QueueType.WAITING_ROOM, "A", "B", moved_at=datetime(2026, 10, 19, 12, 0, tzinfo=UTC)
    )
    await redis_store.append(QueueType.MAIN, "C", "D")

    result = await redis_store.move(entry.id, QueueType.MAIN, None)

    assert result == (QueueType.WAITING_ROOM, 1)
    stored = await redis_store.get(entry.id)
    assert stored.queue_type == QueueType.MAIN
    assert stored.moved_at is None
    assert await redis_store.list_entries(QueueType.WAITING_ROOM) == []


@pytest.mark.asyncio
async def test_remove_leaves_gaps(redis_queue):
    """Test the delete script never renumbers survivors"""
    ids = []
    for value in "ABCD":
        queue = await redis_queue.push(value, "x")
        ids.append(queue[-1].id)

    queue_type, queue = await redis_queue.remove_item(ids[2])

    assert queue_type == QueueType.MAIN
    assert [e.position for e in queue] == [0, 1, 3]
    assert await redis_queue.next_position() == 4

    with pytest.raises(NotFoundError):
        await redis_queue.remove_item(ids[2])


@pytest.mark.asyncio
async def test_concurrent_pushes_get_distinct_positions(redis_queue):
    """Test concurrent appends on an empty partition never share a position"""
    await asyncio.gather(*(redis_queue.push_to_waiting_room(str(i), "x") for i in range(5)))

    waiting = await redis_queue.get_queue(QueueType.WAITING_ROOM)

    assert sorted(e.position for e in waiting) == [0, 1, 2, 3, 4]
    assert_ascending(waiting)


@pytest.mark.asyncio
async def test_concurrent_moves_get_distinct_positions(redis_queue):
    ids = []
    for i in range(4):
        queue = await redis_queue.push(str(i), "x")
        ids.append(queue[-1].id)

    await asyncio.gather(*(redis_queue.move_to_waiting_room(item_id) for item_id in ids))

    queues = await redis_queue.get_all_queues()
    assert queues[QueueType.MAIN] == []
    assert sorted(e.position for e in queues[QueueType.WAITING_ROOM]) == [0, 1, 2, 3]


@pytest.mark.asyncio
async def test_scoped_delete_ignores_other_partition(redis_store):
    """Test the delete script refuses an entry that left the expected partition"""
    entry = await redis_store.append(QueueType.MAIN, "A", "B")
    await redis_store.move(entry.id, QueueType.WAITING_ROOM, datetime.now(UTC))

    assert await redis_store.delete(entry.id, QueueType.MAIN) is None
    assert [e.id for e in await redis_store.list_entries(QueueType.WAITING_ROOM)] == [entry.id]

    assert await redis_store.delete(entry.id, QueueType.WAITING_ROOM) == QueueType.WAITING_ROOM
    assert await redis_store.get(entry.id) is None


@pytest.mark.asyncio
async def test_script_keys(redis_client, redis_store):
    """Test the hash and sorted set layout written by the scripts"""
    entry = await redis_store.append(QueueType.MAIN, "A", "B")

    assert await redis_client.zscore("queue:partition:main", entry.id) == 0
    stored = await redis_client.hgetall(f"queue:item:{entry.id}")
    assert stored["queue_type"] == "main"
    assert "moved_at" not in stored

    await redis_store.delete(entry.id)

    assert await redis_client.exists(f"queue:item:{entry.id}") == 0
    assert await redis_client.zcard("queue:partition:main") == 0
