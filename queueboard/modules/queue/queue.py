import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Callable, Dict, List, Optional, Tuple

from ..api.models import QueueEntry, QueueType
from ..store import NotFoundError, PositionAllocator, QueueStore, StoreReadError

logger = logging.getLogger(__name__)


@dataclass
class QueueSnapshot:
    """A partition read. error is set when the read failed and entries degraded to []."""

    queue_type: QueueType
    entries: List[QueueEntry] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class QueueModule:
    def __init__(self, store: QueueStore, clock: Callable[[], datetime] = None):
        """
        Initialize queue module.

        Args:
            store: Ordered queue store backend
            clock: Returns the current UTC time (stamped as moved_at on moves)
        """
        self.store = store
        self.allocator = PositionAllocator(store)
        self.clock = clock or (lambda: datetime.now(UTC))

    async def get_snapshot(self, queue_type: QueueType = QueueType.MAIN) -> QueueSnapshot:
        """
        Read a partition in position order.

        Read failures degrade to an empty list; the error text is kept on
        the snapshot so callers can surface it as transient.
        """
        try:
            entries = await self.store.list_entries(queue_type)
        except StoreReadError as e:
            logger.error(f"Error fetching {queue_type.value} queue: {e}")
            return QueueSnapshot(queue_type=queue_type, error=str(e))

        return QueueSnapshot(queue_type=queue_type, entries=entries)

    async def get_queue(self, queue_type: QueueType = QueueType.MAIN) -> List[QueueEntry]:
        """Entries of a partition ([] when the read fails)."""
        snapshot = await self.get_snapshot(queue_type)
        return snapshot.entries

    async def get_all_queues(self) -> Dict[QueueType, List[QueueEntry]]:
        """Both partitions."""
        return {
            QueueType.MAIN: await self.get_queue(QueueType.MAIN),
            QueueType.WAITING_ROOM: await self.get_queue(QueueType.WAITING_ROOM),
        }

    async def get_entry(self, item_id: str) -> QueueEntry:
        """
        Single entry by id.

        Raises:
            NotFoundError: If no entry has this id
            StoreReadError: If the lookup fails
        """
        entry = await self.store.get(item_id)
        if entry is None:
            raise NotFoundError(item_id)
        return entry

    async def front(self, queue_type: QueueType = QueueType.MAIN) -> Optional[QueueEntry]:
        """
        Entry the next pop would remove, or None when the partition is empty.

        Raises:
            StoreReadError: If the lookup fails
        """
        item_id = await self.store.front_id(queue_type)
        if item_id is None:
            return None
        return await self.store.get(item_id)

    async def next_position(self, queue_type: QueueType = QueueType.MAIN) -> int:
        """Tail position the next push would receive if nothing else is appended first."""
        return await self.allocator.next_position(queue_type)

    async def push(
        self, value1: str, value2: str, queue_type: QueueType = QueueType.MAIN
    ) -> List[QueueEntry]:
        """
        Add an entry at the tail of a partition.

        Args:
            value1: First value of the pair
            value2: Second value of the pair
            queue_type: Target partition

        Returns:
            Refreshed list of the partition

        Raises:
            StoreWriteError: If the insert fails (nothing was written)

        Logic:
        1. Allocate tail position and insert atomically in the store
        2. Entries pushed straight into the waiting room get moved_at = now
        3. Re-read the partition
        """
        moved_at = self.clock() if queue_type == QueueType.WAITING_ROOM else None

        entry = await self.store.append(queue_type, value1, value2, moved_at=moved_at)
        logger.info(f"Pushed {entry.id} to {queue_type.value} queue at position {entry.position}")

        return await self.get_queue(queue_type)

    async def push_to_waiting_room(self, value1: str, value2: str) -> List[QueueEntry]:
        return await self.push(value1, value2, QueueType.WAITING_ROOM)

    async def pop(self, queue_type: QueueType = QueueType.MAIN) -> List[QueueEntry]:
        """
        Remove the front entry of a partition.

        Idempotent on an empty partition: the current (empty) list is
        returned without error. If the front entry was removed by another
        session between lookup and delete, or moved to the other partition,
        nothing is removed.

        Raises:
            StoreReadError: If the front lookup fails
            StoreWriteError: If the delete fails
        """
        item_id = await self.store.front_id(queue_type)
        if item_id is None:
            return await self.get_queue(queue_type)

        removed_from = await self.store.delete(item_id, queue_type)
        if removed_from is None:
            logger.info(f"Front of {queue_type.value} queue ({item_id}) was already removed or moved")
        else:
            logger.info(f"Popped {item_id} from {queue_type.value} queue")

        return await self.get_queue(queue_type)

    async def pop_from_waiting_room(self) -> List[QueueEntry]:
        return await self.pop(QueueType.WAITING_ROOM)

    async def remove_item(self, item_id: str) -> Tuple[QueueType, List[QueueEntry]]:
        """
        Remove one entry from whichever partition holds it.

        Remaining entries keep their positions; gaps are expected.

        Returns:
            (partition the entry belonged to, refreshed list of that partition)

        Raises:
            NotFoundError: If no entry has this id
            StoreWriteError: If the delete fails
        """
        queue_type = await self.store.delete(item_id)
        if queue_type is None:
            raise NotFoundError(item_id)

        logger.info(f"Removed {item_id} from {queue_type.value} queue")
        return queue_type, await self.get_queue(queue_type)

    async def move_to_waiting_room(self, item_id: str) -> Dict[QueueType, List[QueueEntry]]:
        """
        Move an entry to the tail of the waiting room and stamp moved_at.

        Returns:
            Refreshed lists of both partitions

        Raises:
            NotFoundError: If no entry has this id
            StoreReadError: If the entry lookup fails
            StoreWriteError: If the update fails

        Logic:
        1. Read the entry by id
        2. Allocate the waiting room tail and update queue_type, position
           and moved_at in one atomic store step
        3. Re-read both partitions
        """
        await self.get_entry(item_id)

        moved_at = self.clock()
        result = await self.store.move(item_id, QueueType.WAITING_ROOM, moved_at)
        if result is None:
            # Removed by another session after the lookup
            raise NotFoundError(item_id)

        previous, position = result
        logger.info(
            f"Moved {item_id} from {previous.value} to waitingRoom at position {position}"
        )

        return await self.get_all_queues()
