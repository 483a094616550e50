"""Store error taxonomy shared by every queue store backend."""


class QueueError(Exception):
    """Base class for queue store failures."""


class StoreReadError(QueueError):
    """A read against the store failed."""


class StoreWriteError(QueueError):
    """An insert, update or delete against the store failed."""


class NotFoundError(QueueError):
    """The entry targeted by a lookup, move or removal does not exist."""

    def __init__(self, item_id: str):
        super().__init__(f"Queue entry not found: {item_id}")
        self.item_id = item_id
