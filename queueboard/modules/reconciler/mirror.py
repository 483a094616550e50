import logging
from functools import partial
from typing import Dict, List, Optional

from ..api.models import QueueEntry, QueueType
from ..notifier import ChangeNotifier, Subscription
from .reconciler import PollHandle, Reconciler

logger = logging.getLogger(__name__)


class QueueMirror:
    """
    Per-session cache of both partitions.

    Local state is only ever replaced wholesale with a fresh read, whether
    the read was triggered by a change signal or by a poll tick.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        notifier: ChangeNotifier,
        poll_interval_ms: int = 3000,
    ):
        self.reconciler = reconciler
        self.notifier = notifier
        self.poll_interval_ms = poll_interval_ms
        self.queues: Dict[QueueType, List[QueueEntry]] = {qt: [] for qt in QueueType}
        self.versions: Dict[QueueType, int] = {qt: 0 for qt in QueueType}
        self.subscriptions: Dict[QueueType, Subscription] = {}
        self.pollers: Dict[QueueType, PollHandle] = {}

    @property
    def errors(self) -> Dict[QueueType, Optional[str]]:
        """Last transient read error per partition (None once a read succeeds)."""
        return self.reconciler.errors

    def replace(self, queue_type: QueueType, entries: List[QueueEntry]) -> None:
        self.queues[queue_type] = list(entries)
        self.versions[queue_type] += 1

    async def refresh(self, queue_type: QueueType) -> List[QueueEntry]:
        """Reconcile one partition right now."""
        entries = await self.reconciler.refresh(queue_type)
        self.replace(queue_type, entries)
        return entries

    async def start(self) -> None:
        """Load both partitions, then keep them in sync via push and poll."""
        for queue_type in QueueType:
            await self.refresh(queue_type)
            on_change = partial(self.replace, queue_type)
            self.subscriptions[queue_type] = self.notifier.subscribe(queue_type, on_change)
            self.pollers[queue_type] = self.reconciler.start_polling(
                queue_type, on_change, self.poll_interval_ms
            )

    async def close(self) -> None:
        for subscription in self.subscriptions.values():
            subscription.unsubscribe()
        for poller in self.pollers.values():
            poller.cancel()
        for subscription in self.subscriptions.values():
            await subscription.wait_closed()
        for poller in self.pollers.values():
            await poller.wait_closed()
        self.subscriptions.clear()
        self.pollers.clear()
