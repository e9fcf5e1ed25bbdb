"""
countdown_to/timer.py

Asyncio repeating timer.

Each timer owns one task that sleeps for the interval and then runs a
synchronous callback, so a tick always finishes before the next one is
armed. Cancelling the timer cancels the task; that is the only way to stop
it.
"""

import asyncio
import logging
from typing import Callable, Optional


class RepeatingTimer:
    """
    Calls ``callback`` every ``interval`` seconds until cancelled.

    Args:
        interval: Seconds between calls.
        callback: Synchronous function run on each tick.
        name: Label used in log messages and the task name.
        logger: Optional logger instance.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], None],
        name: str = "timer",
        logger: Optional[logging.Logger] = None,
    ):
        if interval <= 0:
            raise ValueError(f"Timer interval must be positive, got {interval}")

        self.interval = interval
        self.callback = callback
        self.name = name
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None
        self.logger = logger or logging.getLogger("countdown_to.timer")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """
        Arm the timer on the running event loop.

        Raises:
            RuntimeError: If called outside a running event loop.
        """
        if self.running:
            self.logger.warning(f"Timer {self.name} already running")
            return

        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=f"countdown_to:{self.name}")
        self.logger.debug(f"Timer {self.name} armed (interval: {self.interval}s)")

    def cancel(self) -> None:
        """Cancel the pending tick. Safe to call more than once."""
        if self._task is None:
            return

        self._task.cancel()
        self._task = None
        self.logger.debug(f"Timer {self.name} cancelled after {self.ticks} ticks")

    async def stop(self) -> None:
        """Cancel the timer and wait for its task to finish."""
        task = self._task
        self.cancel()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.ticks += 1
            try:
                self.callback()
            except Exception as e:
                # Keep ticking; the next tick recomputes everything
                self.logger.exception(f"Error in timer {self.name} tick: {e}")
