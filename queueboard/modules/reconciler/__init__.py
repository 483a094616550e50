"""
Reconciler Module - Black Box Interface

Purpose: Keep client-visible queue state converged with the store
Interface: Reconciler.refresh(), Reconciler.start_polling(), QueueMirror
Hidden: Tick scheduling, overlap prevention, error bookkeeping

Polling runs even while the push channel is healthy; it bounds the
staleness window when a change signal is missed.
"""

from .mirror import QueueMirror
from .reconciler import PollHandle, Reconciler

__all__ = ["PollHandle", "QueueMirror", "Reconciler"]
