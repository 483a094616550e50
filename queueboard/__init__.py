"""
queueboard - Shared live queues

Two ordered FIFO partitions, a main queue and a waiting room, shared by
many client sessions and kept in sync by a push change feed with a
polling fallback.

Architecture:
- Each module is self-contained with clear interfaces
- Modules are completely replaceable
- No module knows the internals of another
- All communication through defined interfaces

Modules:
- config: Environment configuration
- api: Shared data models
- storage: Redis connection
- store: Ordered, partitioned persistence and change feed
- queue: Push, pop, remove and move operations
- notifier: Push channel per partition
- reconciler: Refresh, polling fallback and per-session cache
- expiry: Waiting room countdown overlay
"""

__version__ = "1.0.0"
