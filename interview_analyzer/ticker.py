"""
Fixed-period ticker for the analyzer sampling loops.

Each analyzer owns its tickers; nothing else touches an analyzer's buffers,
so no locks are needed around them.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set, Union

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Union[None, Awaitable[None]]]


class PeriodicTask:
    """
    Fire a callback every ``interval`` seconds on the running event loop.

    The schedule does not wait for the callback to finish. With
    ``skip_if_busy`` a tick is dropped while the previous callback is still
    in flight, so a slow inference call never overlaps with itself.
    """

    def __init__(self, interval: float, callback: TickCallback,
                 name: str = "ticker", skip_if_busy: bool = True):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.interval = interval
        self.callback = callback
        self.name = name
        self.skip_if_busy = skip_if_busy

        self._task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()
        self.ticks_fired = 0
        self.ticks_skipped = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def in_flight(self) -> bool:
        return bool(self._pending)

    def start(self) -> None:
        """Start ticking. Must be called from inside a running event loop."""
        if self.is_running:
            raise RuntimeError(f"{self.name} is already running")
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=self.name)
        logger.debug(f"{self.name} started (interval {self.interval:.3f}s)")

    def stop(self) -> None:
        """
        Stop scheduling new ticks.

        A callback that is already running is left to complete; callbacks are
        expected to re-check their owner's state before mutating it.
        """
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.debug(f"{self.name} stopped")

    async def wait_idle(self) -> None:
        """Wait for in-flight callbacks to finish."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self.skip_if_busy and self._pending:
                self.ticks_skipped += 1
                logger.debug(f"{self.name}: previous tick still in flight, skipping")
                continue
            self.ticks_fired += 1
            tick = asyncio.create_task(self._fire())
            self._pending.add(tick)
            tick.add_done_callback(self._pending.discard)

    async def _fire(self) -> None:
        try:
            result = self.callback()
            if asyncio.iscoroutine(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"{self.name}: tick failed")
