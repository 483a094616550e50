"""
Queue Module - Black Box Interface

Purpose: Ordered FIFO operations over the main and waiting room partitions
Interface: push(), pop(), remove_item(), move_to_waiting_room(), get_queue()
Hidden: Position allocation, store access, read degradation

Each mutation returns the refreshed list(s) it affected.
"""

from .queue import QueueModule, QueueSnapshot

__all__ = ["QueueModule", "QueueSnapshot"]
