import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional

from ..api.models import QueueEntry, QueueType
from ..store import QueueStore

logger = logging.getLogger(__name__)

OnChange = Callable[[List[QueueEntry]], Any]
Refresh = Callable[[QueueType], Awaitable[List[QueueEntry]]]


async def invoke_callback(on_change: OnChange, entries: List[QueueEntry]) -> None:
    """Call a sync or async change callback; a failing callback is logged, not raised."""
    try:
        result = on_change(entries)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.error(f"Queue change callback failed: {e}")


class Subscription:
    """Handle for one partition's push channel."""

    def __init__(self, queue_type: QueueType):
        self.queue_type = queue_type
        self.ready = asyncio.Event()
        self.notifications = 0
        self._closed = False
        self._task: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def unsubscribe(self) -> None:
        """
        Release the channel.

        Safe to call more than once and from teardown code. No callback
        fires after this returns.
        """
        if self._closed:
            return
        self._closed = True
        self.ready.clear()
        if self._task and not self._task.done():
            self._task.cancel()

    async def wait_closed(self) -> None:
        """Wait until the listener task has finished."""
        if self._task:
            await asyncio.gather(self._task, return_exceptions=True)


class ChangeNotifier:
    def __init__(self, store: QueueStore, refresh: Refresh, reconnect_delay: float = 5.0):
        """
        Initialize the change notifier.

        Args:
            store: Queue store providing per-partition change channels
            refresh: Full re-fetch of a partition, shared with the poller
            reconnect_delay: Seconds to wait before re-opening a dropped channel
        """
        self.store = store
        self.refresh = refresh
        self.reconnect_delay = reconnect_delay

    def subscribe(self, queue_type: QueueType, on_change: OnChange) -> Subscription:
        """
        Listen for changes to one partition.

        Every change event triggers a full re-fetch of the partition (not a
        diff), then on_change(entries). Must be called from a running
        event loop.

        Returns:
            Subscription handle
        """
        logger.info(f"Setting up subscription for {queue_type.value} queue")
        subscription = Subscription(queue_type)
        subscription._task = asyncio.create_task(
            self._listen(subscription, on_change),
            name=f"{queue_type.value}-queue-changes",
        )
        return subscription

    async def _listen(self, subscription: Subscription, on_change: OnChange) -> None:
        queue_type = subscription.queue_type

        while not subscription.closed:
            try:
                async with self.store.listen(queue_type) as events:
                    subscription.ready.set()
                    async for event in events:
                        if subscription.closed:
                            return
                        logger.debug(
                            f"{event.event.value} on {queue_type.value} queue ({event.item_id})"
                        )
                        entries = await self.refresh(queue_type)
                        if subscription.closed:
                            return
                        subscription.notifications += 1
                        await invoke_callback(on_change, entries)
                logger.warning(f"Change channel for {queue_type.value} queue closed")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Change channel error for {queue_type.value} queue: {e}")

            subscription.ready.clear()
            if subscription.closed:
                return
            logger.info(f"Reconnecting in {self.reconnect_delay} seconds...")
            await asyncio.sleep(self.reconnect_delay)
