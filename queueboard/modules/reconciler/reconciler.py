import asyncio
import logging
from typing import Dict, List, Optional

from ..api.models import QueueEntry, QueueType
from ..notifier import OnChange, invoke_callback
from ..queue import QueueModule

logger = logging.getLogger(__name__)


class PollHandle:
    """Handle for one partition's polling loop."""

    def __init__(self, queue_type: QueueType, interval: float):
        self.queue_type = queue_type
        self.interval = interval
        self.ticks = 0
        self.dropped_ticks = 0
        self._cancelled = False
        self._task: Optional[asyncio.Task] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop polling. Safe to call more than once; no callback fires afterwards."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._task and not self._task.done():
            self._task.cancel()

    async def wait_closed(self) -> None:
        if self._task:
            await asyncio.gather(self._task, return_exceptions=True)


class Reconciler:
    def __init__(self, queue_module: QueueModule):
        """
        Initialize the reconciler.

        Args:
            queue_module: Source of partition reads
        """
        self.queue_module = queue_module
        self.errors: Dict[QueueType, Optional[str]] = {}

    async def refresh(self, queue_type: QueueType) -> List[QueueEntry]:
        """
        Full re-fetch of one partition.

        Idempotent: the push channel and the poller both call it, and
        both converge on the same list for the same store contents. A
        failed read returns [] and records the error until the next
        successful read.
        """
        snapshot = await self.queue_module.get_snapshot(queue_type)
        self.errors[queue_type] = snapshot.error
        return snapshot.entries

    def start_polling(
        self, queue_type: QueueType, on_change: OnChange, interval_ms: int
    ) -> PollHandle:
        """
        Re-fetch a partition every interval_ms and pass the list to on_change.

        Ticks never overlap: the next tick waits for the current fetch and
        callback. Ticks missed while a fetch overran the interval are
        dropped, not replayed.

        Returns:
            PollHandle to cancel the loop
        """
        if interval_ms <= 0:
            raise ValueError("Polling interval must be positive")

        handle = PollHandle(queue_type, interval_ms / 1000.0)
        handle._task = asyncio.create_task(
            self._poll(handle, on_change), name=f"{queue_type.value}-queue-poll"
        )
        logger.info(f"Polling {queue_type.value} queue every {interval_ms}ms")
        return handle

    async def _poll(self, handle: PollHandle, on_change: OnChange) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + handle.interval

        while not handle.cancelled:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            if handle.cancelled:
                return

            try:
                entries = await self.refresh(handle.queue_type)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Polling error for {handle.queue_type.value} queue: {e}")
                entries = None

            if handle.cancelled:
                return
            if entries is not None:
                handle.ticks += 1
                await invoke_callback(on_change, entries)

            next_tick += handle.interval
            now = loop.time()
            if next_tick < now:
                missed = int((now - next_tick) // handle.interval) + 1
                handle.dropped_ticks += missed
                next_tick += missed * handle.interval
                logger.debug(
                    f"Dropped {missed} poll tick(s) for {handle.queue_type.value} queue"
                )
