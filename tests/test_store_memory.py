import asyncio
from datetime import UTC, datetime

import pytest
from redis.exceptions import RedisError

from queueboard.modules.api import ChangeType, QueueType
from queueboard.modules.store import (
    MemoryQueueStore,
    PositionAllocator,
    RedisQueueStore,
    StoreFactory,
    StoreReadError,
)


async def next_event(events, timeout: float = 1.0):
    return await asyncio.wait_for(events.__anext__(), timeout)


@pytest.mark.asyncio
async def test_append_allocates_tail(memory_store):
    """Test positions are max + 1 per partition"""
    first = await memory_store.append(QueueType.MAIN, "A", "B")
    second = await memory_store.append(QueueType.MAIN, "C", "D")
    other = await memory_store.append(QueueType.WAITING_ROOM, "E", "F")

    assert (first.position, second.position, other.position) == (0, 1, 0)
    assert await memory_store.max_position(QueueType.MAIN) == 1
    assert await memory_store.front_id(QueueType.MAIN) == first.id


@pytest.mark.asyncio
async def test_returned_entries_are_copies(memory_store):
    """Test callers cannot mutate stored state through returned entries"""
    entry = await memory_store.append(QueueType.MAIN, "A", "B")
    entry.position = 99

    [listed] = await memory_store.list_entries(QueueType.MAIN)
    listed.value1 = "changed"

    stored = await memory_store.get(entry.id)
    assert stored.position == 0
    assert stored.value1 == "A"


@pytest.mark.asyncio
async def test_move_to_main_clears_moved_at(memory_store):
    """Test moving back to main with no timestamp clears moved_at"""
    moved_at = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)
    entry = await memory_store.append(QueueType.WAITING_ROOM, "A", "B", moved_at=moved_at)

    result = await memory_store.move(entry.id, QueueType.MAIN, None)

    assert result == (QueueType.WAITING_ROOM, 0)
    stored = await memory_store.get(entry.id)
    assert stored.queue_type == QueueType.MAIN
    assert stored.moved_at is None


@pytest.mark.asyncio
async def test_delete_and_move_missing(memory_store):
    assert await memory_store.delete("missing") is None
    assert await memory_store.move("missing", QueueType.WAITING_ROOM, None) is None


@pytest.mark.asyncio
async def test_delete_scoped_to_partition(memory_store):
    """Test a partition-scoped delete leaves entries of the other partition alone"""
    entry = await memory_store.append(QueueType.WAITING_ROOM, "A", "B", moved_at=datetime.now(UTC))

    assert await memory_store.delete(entry.id, QueueType.MAIN) is None
    assert await memory_store.get(entry.id) is not None

    assert await memory_store.delete(entry.id, QueueType.WAITING_ROOM) == QueueType.WAITING_ROOM
    assert await memory_store.get(entry.id) is None


@pytest.mark.asyncio
async def test_listen_is_scoped_to_partition(memory_store):
    """Test a listener only sees its own partition's changes"""
    async with memory_store.listen(QueueType.MAIN) as events:
        await memory_store.append(QueueType.WAITING_ROOM, "W", "R")
        entry = await memory_store.append(QueueType.MAIN, "A", "B")

        event = await next_event(events)

    assert event.event == ChangeType.INSERT
    assert event.queue_type == QueueType.MAIN
    assert event.item_id == entry.id


@pytest.mark.asyncio
async def test_move_signals_both_partitions(memory_store):
    """Test a move is seen by listeners on the source and the target"""
    entry = await memory_store.append(QueueType.MAIN, "A", "B")

    async with memory_store.listen(QueueType.MAIN) as main_events:
        async with memory_store.listen(QueueType.WAITING_ROOM) as waiting_events:
            await memory_store.move(entry.id, QueueType.WAITING_ROOM, datetime.now(UTC))

            main_event = await next_event(main_events)
            waiting_event = await next_event(waiting_events)

    assert main_event.event == ChangeType.UPDATE
    assert waiting_event.event == ChangeType.UPDATE
    assert main_event.item_id == waiting_event.item_id == entry.id


@pytest.mark.asyncio
async def test_listener_removed_on_exit(memory_store):
    async with memory_store.listen(QueueType.MAIN):
        assert len(memory_store._listeners[QueueType.MAIN]) == 1

    assert len(memory_store._listeners[QueueType.MAIN]) == 0


# PositionAllocator


def test_allocator_after():
    """Test the tail rule: 0 when empty, max + 1 otherwise"""
    assert PositionAllocator.after(None) == 0
    assert PositionAllocator.after(0) == 1
    assert PositionAllocator.after(41) == 42


@pytest.mark.asyncio
async def test_next_position_reserves_nothing(memory_store):
    """Test querying the next position twice gives the same answer"""
    allocator = PositionAllocator(memory_store)
    await memory_store.append(QueueType.MAIN, "A", "B")

    assert await allocator.next_position(QueueType.MAIN) == 1
    assert await allocator.next_position(QueueType.MAIN) == 1
    assert await allocator.next_position(QueueType.WAITING_ROOM) == 0


@pytest.mark.asyncio
async def test_next_position_after_gap(memory_store):
    """Test gaps do not affect the tail rule"""
    allocator = PositionAllocator(memory_store)
    entries = [await memory_store.append(QueueType.MAIN, str(i), "x") for i in range(3)]
    await memory_store.delete(entries[1].id)

    assert await allocator.next_position(QueueType.MAIN) == 3


@pytest.mark.asyncio
async def test_next_position_read_failure(mock_redis):
    """Test a failed tail read propagates"""
    mock_redis.zrevrange.side_effect = RedisError("down")
    allocator = PositionAllocator(RedisQueueStore(mock_redis))

    with pytest.raises(StoreReadError):
        await allocator.next_position(QueueType.MAIN)


# StoreFactory


def test_factory_memory_backend():
    assert isinstance(StoreFactory.build("memory"), MemoryQueueStore)


def test_factory_redis_backend(mock_redis):
    store = StoreFactory.build("redis", mock_redis)

    assert isinstance(store, RedisQueueStore)
    assert store.redis is mock_redis


def test_factory_redis_backend_requires_client():
    with pytest.raises(ValueError):
        StoreFactory.build("redis")


def test_factory_unknown_backend():
    with pytest.raises(ValueError, match="Unknown queue backend"):
        StoreFactory.build("postgres")
