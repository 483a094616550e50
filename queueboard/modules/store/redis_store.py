import logging
import uuid
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import AsyncIterator, List, Optional, Tuple

from pydantic import ValidationError
from redis.exceptions import RedisError

from ..api.models import ChangeEvent, ChangeType, QueueEntry, QueueType
from .errors import StoreReadError, StoreWriteError

logger = logging.getLogger(__name__)

# KEYS[1]=partition zset, KEYS[2]=item hash
# ARGV[1]=id, ARGV[2]=value1, ARGV[3]=value2, ARGV[4]=created_at,
# ARGV[5]=queue_type, ARGV[6]=moved_at ("" when unset)
APPEND_SCRIPT = """
local top = redis.call("ZREVRANGE", KEYS[1], 0, 0, "WITHSCORES")
local position = 0
if top[2] then
  position = tonumber(top[2]) + 1
end
redis.call("HSET", KEYS[2],
  "id", ARGV[1], "value1", ARGV[2], "value2", ARGV[3],
  "created_at", ARGV[4], "position", position, "queue_type", ARGV[5])
if ARGV[6] ~= "" then
  redis.call("HSET", KEYS[2], "moved_at", ARGV[6])
end
redis.call("ZADD", KEYS[1], position, ARGV[1])
return position
"""

# KEYS[1]=item hash, KEYS[2]=target zset, KEYS[3..]=every partition zset
# ARGV[1]=id, ARGV[2]=target queue_type, ARGV[3]=moved_at ("" clears it)
MOVE_SCRIPT = """
local previous = redis.call("HGET", KEYS[1], "queue_type")
if not previous then
  return false
end
for i = 3, #KEYS do
  redis.call("ZREM", KEYS[i], ARGV[1])
end
local top = redis.call("ZREVRANGE", KEYS[2], 0, 0, "WITHSCORES")
local position = 0
if top[2] then
  position = tonumber(top[2]) + 1
end
redis.call("ZADD", KEYS[2], position, ARGV[1])
redis.call("HSET", KEYS[1], "queue_type", ARGV[2], "position", position)
if ARGV[3] ~= "" then
  redis.call("HSET", KEYS[1], "moved_at", ARGV[3])
else
  redis.call("HDEL", KEYS[1], "moved_at")
end
return {previous, position}
"""

# KEYS[1]=item hash, KEYS[2..]=every partition zset
# ARGV[1]=id, ARGV[2]=expected queue_type ("" matches any partition)
DELETE_SCRIPT = """
local previous = redis.call("HGET", KEYS[1], "queue_type")
if not previous then
  return false
end
if ARGV[2] ~= "" and previous ~= ARGV[2] then
  return false
end
redis.call("DEL", KEYS[1])
for i = 2, #KEYS do
  redis.call("ZREM", KEYS[i], ARGV[1])
end
return previous
"""


class RedisQueueStore:
    def __init__(self, redis_client, key_prefix: str = "queue"):
        """
        Initialize the Redis-backed ordered store.

        Args:
            redis_client: Async Redis client (decode_responses=True)
            key_prefix: Namespace for every key and channel

        Layout:
            {prefix}:item:{id}               hash with the entry fields
            {prefix}:partition:{queue_type}  sorted set, score = position
            {prefix}:changes:{queue_type}    pub/sub change channel
        """
        self.redis = redis_client
        self.key_prefix = key_prefix

    def _item_key(self, item_id: str) -> str:
        return f"{self.key_prefix}:item:{item_id}"

    def _partition_key(self, queue_type: QueueType) -> str:
        return f"{self.key_prefix}:partition:{queue_type.value}"

    def _channel(self, queue_type: QueueType) -> str:
        return f"{self.key_prefix}:changes:{queue_type.value}"

    def _all_partition_keys(self) -> List[str]:
        return [self._partition_key(queue_type) for queue_type in QueueType]

    async def list_entries(self, queue_type: QueueType) -> List[QueueEntry]:
        """
        Read a partition in position order.

        Ids that vanish or change partition between the index read and the
        hash read were removed or moved concurrently and are skipped.
        """
        try:
            item_ids = await self.redis.zrange(self._partition_key(queue_type), 0, -1)

            entries = []
            for item_id in item_ids:
                data = await self.redis.hgetall(self._item_key(item_id))
                if not data:
                    continue
                entry = QueueEntry.from_redis_hash(data)
                if entry.queue_type != queue_type:
                    logger.debug(f"Skipping {item_id}: moved to {entry.queue_type.value} during read")
                    continue
                entries.append(entry)
        except RedisError as e:
            raise StoreReadError(f"Failed to read {queue_type.value} queue: {e}") from e

        entries.sort(key=lambda entry: entry.position)
        return entries

    async def get(self, item_id: str) -> Optional[QueueEntry]:
        try:
            data = await self.redis.hgetall(self._item_key(item_id))
        except RedisError as e:
            raise StoreReadError(f"Failed to read queue entry {item_id}: {e}") from e

        if not data:
            return None
        return QueueEntry.from_redis_hash(data)

    async def front_id(self, queue_type: QueueType) -> Optional[str]:
        try:
            item_ids = await self.redis.zrange(self._partition_key(queue_type), 0, 0)
        except RedisError as e:
            raise StoreReadError(f"Failed to read front of {queue_type.value} queue: {e}") from e

        return item_ids[0] if item_ids else None

    async def max_position(self, queue_type: QueueType) -> Optional[int]:
        try:
            top = await self.redis.zrevrange(
                self._partition_key(queue_type), 0, 0, withscores=True
            )
        except RedisError as e:
            raise StoreReadError(f"Failed to read tail of {queue_type.value} queue: {e}") from e

        if not top:
            return None
        return int(top[0][1])

    async def append(
        self,
        queue_type: QueueType,
        value1: str,
        value2: str,
        moved_at: Optional[datetime] = None,
    ) -> QueueEntry:
        """
        Insert a new entry at the tail of a partition.

        Position allocation and insert run in one Lua script, so
        concurrent appends to the same partition never share a position.
        """
        item_id = str(uuid.uuid4())
        created_at = datetime.now(UTC)

        try:
            position = await self.redis.eval(
                APPEND_SCRIPT,
                2,
                self._partition_key(queue_type),
                self._item_key(item_id),
                item_id,
                value1,
                value2,
                created_at.isoformat(),
                queue_type.value,
                moved_at.isoformat() if moved_at else "",
            )
        except RedisError as e:
            raise StoreWriteError(f"Failed to add to {queue_type.value} queue: {e}") from e

        await self._publish(ChangeEvent(event=ChangeType.INSERT, queue_type=queue_type, item_id=item_id))

        return QueueEntry(
            id=item_id,
            value1=value1,
            value2=value2,
            created_at=created_at,
            position=int(position),
            queue_type=queue_type,
            moved_at=moved_at,
        )

    async def delete(
        self, item_id: str, queue_type: Optional[QueueType] = None
    ) -> Optional[QueueType]:
        partition_keys = self._all_partition_keys()
        try:
            previous = await self.redis.eval(
                DELETE_SCRIPT,
                1 + len(partition_keys),
                self._item_key(item_id),
                *partition_keys,
                item_id,
                queue_type.value if queue_type else "",
            )
        except RedisError as e:
            raise StoreWriteError(f"Failed to remove queue entry {item_id}: {e}") from e

        if not previous:
            return None

        queue_type = QueueType(previous)
        await self._publish(ChangeEvent(event=ChangeType.DELETE, queue_type=queue_type, item_id=item_id))
        return queue_type

    async def move(
        self,
        item_id: str,
        target: QueueType,
        moved_at: Optional[datetime],
    ) -> Optional[Tuple[QueueType, int]]:
        partition_keys = self._all_partition_keys()
        try:
            result = await self.redis.eval(
                MOVE_SCRIPT,
                2 + len(partition_keys),
                self._item_key(item_id),
                self._partition_key(target),
                *partition_keys,
                item_id,
                target.value,
                moved_at.isoformat() if moved_at else "",
            )
        except RedisError as e:
            raise StoreWriteError(f"Failed to move queue entry {item_id}: {e}") from e

        if not result:
            return None

        previous = QueueType(result[0])
        position = int(result[1])

        await self._publish(ChangeEvent(event=ChangeType.UPDATE, queue_type=target, item_id=item_id))
        if previous != target:
            await self._publish(ChangeEvent(event=ChangeType.UPDATE, queue_type=previous, item_id=item_id))

        return previous, position

    @asynccontextmanager
    async def listen(self, queue_type: QueueType):
        """
        Subscribe to the change channel of one partition.

        Yields an async iterator of ChangeEvent. The pub/sub connection is
        released when the context exits.
        """
        pubsub = self.redis.pubsub()
        channel = self._channel(queue_type)

        try:
            await pubsub.subscribe(channel)
        except RedisError as e:
            await pubsub.aclose()
            raise StoreReadError(f"Failed to subscribe to {channel}: {e}") from e

        logger.info(f"Subscribed to channel: {channel}")
        try:
            yield self._iter_events(pubsub)
        finally:
            try:
                await pubsub.unsubscribe(channel)
            finally:
                await pubsub.aclose()
            logger.info(f"Unsubscribed from channel: {channel}")

    async def _iter_events(self, pubsub) -> AsyncIterator[ChangeEvent]:
        async for message in pubsub.listen():
            if message["type"] != "message":
                continue
            try:
                yield ChangeEvent.model_validate_json(message["data"])
            except ValidationError as e:
                logger.warning(f"Ignoring malformed change event: {e}")

    async def _publish(self, event: ChangeEvent) -> None:
        """Best-effort change publication; the write already happened."""
        channel = self._channel(event.queue_type)
        try:
            await self.redis.publish(channel, event.model_dump_json())
        except RedisError as e:
            logger.warning(f"Failed to publish {event.event.value} on {channel}: {e}")
