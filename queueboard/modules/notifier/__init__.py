"""
Notifier Module - Black Box Interface

Purpose: Push channel that signals "queue partition changed" to subscribers
Interface: ChangeNotifier.subscribe(), Subscription.unsubscribe()
Hidden: Channel transport, reconnection, re-fetch on signal

Delivery is best effort; the poll reconciler bounds staleness when a
signal is missed.
"""

from .notifier import ChangeNotifier, OnChange, Subscription, invoke_callback

__all__ = ["ChangeNotifier", "OnChange", "Subscription", "invoke_callback"]
