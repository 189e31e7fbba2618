"""
Cancellable periodic tasks.

Every background loop in the engine runs as a Ticker owned by the component
that starts it, so each start has a matching stop.
"""

import asyncio
from typing import Awaitable, Callable, Optional, Set

from arbitrage_bot.logger import get_logger


logger = get_logger("scheduler")

TickCallback = Callable[[], Awaitable[None]]


class Ticker:
    """
    Runs a coroutine callback every ``interval_seconds`` on the event loop.

    The first tick fires one interval after ``start``. ``stop`` never blocks:
    a sleeping ticker is cancelled at once, while a ticker in the middle of a
    tick finishes that tick and then exits without scheduling another one.
    Exceptions raised by a tick are logged and the next tick retries.
    """

    def __init__(self, name: str, interval_seconds: float, callback: TickCallback):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self.interval_seconds = interval_seconds
        self._callback = callback

        self._task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None
        self._draining: Set[asyncio.Task] = set()

        self.tick_count = 0
        self.error_count = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None

    @property
    def in_tick(self) -> bool:
        return self._inflight is not None

    def start(self) -> None:
        """Start ticking. Calling start on a running ticker does nothing."""
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"ticker:{self.name}"
        )
        logger.debug("Ticker started", ticker=self.name, interval=self.interval_seconds)

    def stop(self, cancel_inflight: bool = False) -> None:
        """
        Stop scheduling further ticks.

        Args:
            cancel_inflight: Also cancel a tick that is currently running
        """
        task, self._task = self._task, None
        if task is not None and not task.done():
            if task is not self._inflight or cancel_inflight:
                task.cancel()

            self._draining.add(task)
            task.add_done_callback(self._draining.discard)
            logger.debug("Ticker stopped", ticker=self.name, cancelled_inflight=cancel_inflight)

        if cancel_inflight:
            # Loops left finishing a tick by an earlier stop
            for draining in list(self._draining):
                draining.cancel()

    async def wait_closed(self) -> None:
        """Wait until every stopped loop has actually exited."""
        if self._draining:
            await asyncio.gather(*list(self._draining), return_exceptions=True)

    async def run_once(self) -> None:
        """Run a single tick immediately, outside the schedule."""
        await self._tick()

    async def _run(self) -> None:
        me = asyncio.current_task()
        while self._task is me:
            await asyncio.sleep(self.interval_seconds)
            if self._task is not me:
                break
            self._inflight = me
            try:
                await self._tick()
            finally:
                if self._inflight is me:
                    self._inflight = None

    async def _tick(self) -> None:
        try:
            await self._callback()
            self.tick_count += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.error_count += 1
            logger.error(f"Tick failed: {e}", ticker=self.name, exc_info=True)
