import asyncio
import logging
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import AsyncIterator, Dict, List, Optional, Set, Tuple

from ..api.models import ChangeEvent, ChangeType, QueueEntry, QueueType
from .allocator import PositionAllocator

logger = logging.getLogger(__name__)


class MemoryQueueStore:
    """
    In-process queue store with an in-process change feed.

    Shares state only within one event loop. Used for local runs
    (QUEUE_BACKEND=memory) and tests. An asyncio.Lock makes
    allocate-and-append atomic, matching the Redis scripts.
    """

    def __init__(self):
        self._entries: Dict[str, QueueEntry] = {}
        self._lock = asyncio.Lock()
        self._listeners: Dict[QueueType, Set[asyncio.Queue]] = defaultdict(set)

    def _partition(self, queue_type: QueueType) -> List[QueueEntry]:
        return sorted(
            (entry for entry in self._entries.values() if entry.queue_type == queue_type),
            key=lambda entry: entry.position,
        )

    def _max_position(self, queue_type: QueueType) -> Optional[int]:
        positions = [e.position for e in self._entries.values() if e.queue_type == queue_type]
        return max(positions) if positions else None

    async def list_entries(self, queue_type: QueueType) -> List[QueueEntry]:
        return [entry.model_copy() for entry in self._partition(queue_type)]

    async def get(self, item_id: str) -> Optional[QueueEntry]:
        entry = self._entries.get(item_id)
        return entry.model_copy() if entry else None

    async def front_id(self, queue_type: QueueType) -> Optional[str]:
        partition = self._partition(queue_type)
        return partition[0].id if partition else None

    async def max_position(self, queue_type: QueueType) -> Optional[int]:
        return self._max_position(queue_type)

    async def append(
        self,
        queue_type: QueueType,
        value1: str,
        value2: str,
        moved_at: Optional[datetime] = None,
    ) -> QueueEntry:
        async with self._lock:
            entry = QueueEntry(
                id=str(uuid.uuid4()),
                value1=value1,
                value2=value2,
                created_at=datetime.now(UTC),
                position=PositionAllocator.after(self._max_position(queue_type)),
                queue_type=queue_type,
                moved_at=moved_at,
            )
            self._entries[entry.id] = entry

        self._publish(ChangeEvent(event=ChangeType.INSERT, queue_type=queue_type, item_id=entry.id))
        return entry.model_copy()

    async def delete(
        self, item_id: str, queue_type: Optional[QueueType] = None
    ) -> Optional[QueueType]:
        async with self._lock:
            entry = self._entries.get(item_id)
            if entry is None or (queue_type is not None and entry.queue_type != queue_type):
                return None
            del self._entries[item_id]

        self._publish(ChangeEvent(event=ChangeType.DELETE, queue_type=entry.queue_type, item_id=item_id))
        return entry.queue_type

    async def move(
        self,
        item_id: str,
        target: QueueType,
        moved_at: Optional[datetime],
    ) -> Optional[Tuple[QueueType, int]]:
        async with self._lock:
            entry = self._entries.pop(item_id, None)
            if entry is None:
                return None

            position = PositionAllocator.after(self._max_position(target))
            self._entries[item_id] = entry.model_copy(
                update={"queue_type": target, "position": position, "moved_at": moved_at}
            )

        self._publish(ChangeEvent(event=ChangeType.UPDATE, queue_type=target, item_id=item_id))
        if entry.queue_type != target:
            self._publish(
                ChangeEvent(event=ChangeType.UPDATE, queue_type=entry.queue_type, item_id=item_id)
            )
        return entry.queue_type, position

    @asynccontextmanager
    async def listen(self, queue_type: QueueType):
        inbox: asyncio.Queue = asyncio.Queue()
        self._listeners[queue_type].add(inbox)
        try:
            yield self._drain(inbox)
        finally:
            self._listeners[queue_type].discard(inbox)

    async def _drain(self, inbox: asyncio.Queue) -> AsyncIterator[ChangeEvent]:
        while True:
            yield await inbox.get()

    def _publish(self, event: ChangeEvent) -> None:
        for inbox in list(self._listeners[event.queue_type]):
            inbox.put_nowait(event)
