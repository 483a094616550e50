"""
queueboard shared data models.

These models define the structure of all data passed between
components in the queueboard system: the persisted entry shape,
change-feed events, and the HTTP request/response bodies.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

# Enums


class QueueType(str, Enum):
    """Queue partition discriminator."""

    MAIN = "main"
    WAITING_ROOM = "waitingRoom"


class ChangeType(str, Enum):
    """Kind of mutation carried by a change event."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


# Persisted Models


class QueueEntry(BaseModel):
    """One entry of a queue partition."""

    id: str
    value1: str
    value2: str
    created_at: datetime
    position: int
    queue_type: QueueType
    moved_at: Optional[datetime] = None

    @property
    def label(self) -> str:
        """Human readable pairing, e.g. '[A] v/s [B]'."""
        return f"[{self.value1}] v/s [{self.value2}]"

    @classmethod
    def from_redis_hash(cls, data: Dict[str, str]) -> "QueueEntry":
        """Build an entry from Redis hash fields."""
        return cls(
            id=data["id"],
            value1=data["value1"],
            value2=data["value2"],
            created_at=datetime.fromisoformat(data["created_at"]),
            position=int(data["position"]),
            queue_type=QueueType(data["queue_type"]),
            moved_at=datetime.fromisoformat(data["moved_at"]) if data.get("moved_at") else None,
        )


class ChangeEvent(BaseModel):
    """Signal that a queue partition changed. Carries no entry payload."""

    event: ChangeType
    queue_type: QueueType
    item_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


# Request Models (API Input)


class PushRequest(BaseModel):
    """Request to push a new entry onto a partition."""

    value1: str = Field(..., description="First value of the pair", min_length=1, max_length=200)
    value2: str = Field(..., description="Second value of the pair", min_length=1, max_length=200)

    @field_validator("value1", "value2")
    @classmethod
    def strip_value(cls, v):
        """Reject values that are only whitespace."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("Value must not be blank")
        return stripped


# Response Models (API Output)


class EntryView(BaseModel):
    """Entry as presented to clients, with the derived display overlay."""

    entry: QueueEntry
    is_first: bool
    is_last: bool
    remaining_ms: Optional[int] = None
    expired: Optional[bool] = None
    timer: Optional[str] = None


class QueueResponse(BaseModel):
    """Snapshot of one partition."""

    queue_type: QueueType
    items: List[EntryView]
    count: int
    error: Optional[str] = None


class QueuesResponse(BaseModel):
    """Both partitions, e.g. after a move."""

    main: List[QueueEntry]
    waitingRoom: List[QueueEntry]


class RemoveResponse(BaseModel):
    """Result of remove-by-id: the partition the entry belonged to and its refreshed list."""

    queue_type: QueueType
    items: List[QueueEntry]


class PositionResponse(BaseModel):
    """Next tail position for a partition."""

    queue_type: QueueType
    next_position: int


class ExpiryTick(BaseModel):
    """One countdown tick for a waiting-room entry."""

    item_id: str
    remaining_ms: int
    expired: bool
    timer: str
