"""Queue store interfaces following Black Box Design principles."""
from datetime import datetime
from typing import AsyncContextManager, AsyncIterator, List, Optional, Protocol, Tuple

from ..api.models import ChangeEvent, QueueEntry, QueueType


class QueueStore(Protocol):
    """
    Protocol for ordered queue stores - allows swappable backends.

    Every mutation publishes a ChangeEvent on the affected partition(s).
    Reads raise StoreReadError, writes raise StoreWriteError.
    """

    async def list_entries(self, queue_type: QueueType) -> List[QueueEntry]:
        """Entries of one partition, ascending by position."""
        ...

    async def get(self, item_id: str) -> Optional[QueueEntry]:
        """Single entry by id, or None."""
        ...

    async def front_id(self, queue_type: QueueType) -> Optional[str]:
        """Id of the minimum-position entry, or None when the partition is empty."""
        ...

    async def max_position(self, queue_type: QueueType) -> Optional[int]:
        """Maximum position in the partition, or None when it is empty."""
        ...

    async def append(
        self,
        queue_type: QueueType,
        value1: str,
        value2: str,
        moved_at: Optional[datetime] = None,
    ) -> QueueEntry:
        """
        Allocate the tail position and insert a new entry in one atomic step.

        Returns:
            The stored entry
        """
        ...

    async def delete(
        self, item_id: str, queue_type: Optional[QueueType] = None
    ) -> Optional[QueueType]:
        """
        Delete one entry by id, resolving its partition in the same step.

        When queue_type is given the entry is only deleted if it still
        belongs to that partition.

        Returns:
            Partition the entry was removed from, or None if it did not
            exist (or sits in another partition)
        """
        ...

    async def move(
        self,
        item_id: str,
        target: QueueType,
        moved_at: Optional[datetime],
    ) -> Optional[Tuple[QueueType, int]]:
        """
        Re-append an entry at the tail of the target partition in one atomic step.

        moved_at is stored when given and cleared when None.

        Returns:
            (previous partition, new position), or None if the entry did not exist
        """
        ...

    def listen(self, queue_type: QueueType) -> AsyncContextManager[AsyncIterator[ChangeEvent]]:
        """Open the change channel of one partition."""
        ...
