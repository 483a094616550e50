"""Tail position allocation for queue partitions."""

from typing import Optional

from ..api.models import QueueType
from .interfaces import QueueStore


class PositionAllocator:
    """
    Computes the next tail position of a partition: max + 1, or 0 when empty.

    next_position() is a plain read and reserves nothing. Inserts and moves
    never call it; the stores apply the same rule inside their atomic
    allocate-and-append primitive, so concurrent appends cannot collide.
    """

    def __init__(self, store: QueueStore):
        self.store = store

    @staticmethod
    def after(max_position: Optional[int]) -> int:
        """Position following max_position."""
        if max_position is None:
            return 0
        return max_position + 1

    async def next_position(self, queue_type: QueueType) -> int:
        """
        Next tail position for the partition.

        Raises:
            StoreReadError: If the store read fails
        """
        return self.after(await self.store.max_position(queue_type))
