import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import AsyncIterator, Callable, Optional

from ..notifier import invoke_callback

logger = logging.getLogger(__name__)

DEFAULT_DURATION = timedelta(minutes=5)
EXPIRED_LABEL = "EXPIRED"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@dataclass(frozen=True)
class ExpiryState:
    """Derived countdown for one waiting-room entry. Display only."""

    remaining: timedelta

    @property
    def expired(self) -> bool:
        return self.remaining <= timedelta(0)

    @property
    def remaining_ms(self) -> int:
        return max(0, int(self.remaining / timedelta(milliseconds=1)))

    @property
    def label(self) -> str:
        """'EXPIRED' or the remaining time as zero-padded mm:ss."""
        if self.expired:
            return EXPIRED_LABEL
        ms = self.remaining_ms
        minutes = ms // 60000
        seconds = (ms % 60000) // 1000
        return f"{minutes:02d}:{seconds:02d}"


def compute_expiry(
    moved_at: Optional[datetime],
    now: datetime,
    duration: timedelta = DEFAULT_DURATION,
) -> Optional[ExpiryState]:
    """
    Countdown state of an entry that entered the waiting room at moved_at.

    remaining = moved_at + duration - now, clamped at zero. Returns None
    when moved_at is absent. Never raises and never changes queue state.
    """
    if moved_at is None:
        return None

    remaining = _as_utc(moved_at) + duration - _as_utc(now)
    if remaining < timedelta(0):
        remaining = timedelta(0)
    return ExpiryState(remaining=remaining)


class ExpiryTicker:
    """Recomputes an entry's countdown at a fixed cadence until it expires."""

    def __init__(
        self,
        moved_at: Optional[datetime],
        duration: timedelta = DEFAULT_DURATION,
        interval: float = 1.0,
        clock: Callable[[], datetime] = None,
    ):
        self.moved_at = moved_at
        self.duration = duration
        self.interval = interval
        self.clock = clock or (lambda: datetime.now(UTC))
        self._task: Optional[asyncio.Task] = None

    async def ticks(self) -> AsyncIterator[ExpiryState]:
        """Yield one state per interval; the last state yielded is the expired one."""
        while True:
            state = compute_expiry(self.moved_at, self.clock(), self.duration)
            if state is None:
                return
            yield state
            if state.expired:
                return
            await asyncio.sleep(self.interval)

    def start(self, on_tick: Callable[[ExpiryState], object]) -> asyncio.Task:
        """Run the countdown in the background, calling on_tick with each state."""

        async def run():
            async for state in self.ticks():
                await invoke_callback(on_tick, state)

        self._task = asyncio.create_task(run(), name="expiry-ticker")
        return self._task

    def cancel(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
