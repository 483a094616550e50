"""
API Module - Black Box Interface

Purpose: Shared data models and HTTP contracts
Interface: QueueEntry, QueueType, ChangeEvent, request/response models
Hidden: Serialization details for the store and the wire

The API layer only orchestrates - it contains no business logic.
All logic is delegated to appropriate modules.
"""

from .models import (
    ChangeEvent,
    ChangeType,
    EntryView,
    ExpiryTick,
    PositionResponse,
    PushRequest,
    QueueEntry,
    QueueResponse,
    QueuesResponse,
    QueueType,
    RemoveResponse,
)

__all__ = [
    "ChangeEvent",
    "ChangeType",
    "EntryView",
    "ExpiryTick",
    "PositionResponse",
    "PushRequest",
    "QueueEntry",
    "QueueResponse",
    "QueuesResponse",
    "QueueType",
    "RemoveResponse",
]
