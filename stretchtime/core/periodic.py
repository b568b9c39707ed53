"""Cancellable periodic tasks and the clock used across the core"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: aware UTC wall-clock time."""
    return datetime.now(timezone.utc)


class PeriodicTask:
    """Runs an async callback on a fixed cadence.

    Stopping only prevents future firings; a callback that is already
    running is left to complete or fail on its own. Errors raised by the
    callback are logged and the cadence continues.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
        run_immediately: bool = False,
    ):
        self.name = name
        self.interval_seconds = interval_seconds
        self._callback = callback
        self._run_immediately = run_immediately
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def is_running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    def start(self):
        """Start the loop on the running event loop."""
        if self.is_running:
            logger.warning(f"Periodic task '{self.name}' already running")
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop(self._stop_event))
        logger.debug(f"Periodic task '{self.name}' started (interval: {self.interval_seconds}s)")

    def stop(self):
        """Halt future firings."""
        if self._stop_event is not None:
            self._stop_event.set()
        self._stop_event = None

    async def wait_closed(self):
        """Wait for the loop (and any in-flight callback) to finish."""
        if self._task is not None:
            await self._task
            self._task = None

    async def _run_loop(self, stop_event: asyncio.Event):
        if self._run_immediately:
            await self._run_once()

        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                await self._run_once()

        logger.debug(f"Periodic task '{self.name}' stopped")

    async def _run_once(self):
        try:
            await self._callback()
        except Exception as e:
            logger.error(f"Error in periodic task '{self.name}': {e}", exc_info=True)
