"""Stretch reminder timer with pause, snooze and reset controls."""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from stretchtime.core.periodic import Clock, PeriodicTask, utc_now
from stretchtime.core.settings_store import SettingsStore

logger = logging.getLogger(__name__)

Listener = Callable[[], None]

_ONE_MS = timedelta(milliseconds=1)


class StretchTimer:
    """
    Tracks time since the last stretch and signals when one is due.

    Subscribers registered with ``on_tick`` hear every periodic check;
    subscribers registered with ``on_stretch_due`` hear a check that found the
    interval elapsed. The timer never decides suppression itself: a due
    subscriber must call ``reset_timer()`` before it awaits anything, or the
    next check will signal again.
    """

    def __init__(
        self,
        store: SettingsStore,
        check_interval_seconds: float = 30.0,
        clock: Clock = utc_now,
    ):
        self._store = store
        self._clock = clock
        self._periodic = PeriodicTask("stretch-timer", check_interval_seconds, self._on_interval)

        self.last_reset: datetime = clock()
        self.paused = False
        self.snoozed_until: Optional[datetime] = None

        self._tick_listeners: List[Listener] = []
        self._due_listeners: List[Listener] = []

    def on_tick(self, listener: Listener) -> Callable[[], None]:
        """Subscribe to every periodic check. Returns an unsubscribe callable."""
        return self._subscribe(self._tick_listeners, listener)

    def on_stretch_due(self, listener: Listener) -> Callable[[], None]:
        """Subscribe to "stretch due". Returns an unsubscribe callable."""
        return self._subscribe(self._due_listeners, listener)

    def start(self):
        self.last_reset = self._clock()
        self.paused = False
        self._periodic.start()
        logger.info("Stretch timer started")

    def stop(self):
        self._periodic.stop()
        logger.info("Stretch timer stopped")

    async def wait_closed(self):
        await self._periodic.wait_closed()

    def pause(self):
        self.paused = True

    def resume(self):
        """Unpause and restart the countdown from the full interval."""
        self.paused = False
        self.last_reset = self._clock()
        self.snoozed_until = None

    def is_paused(self) -> bool:
        return self.paused

    def snooze(self):
        """Snooze the next reminder. Only a running timer can be snoozed."""
        if self.paused:
            logger.debug("Ignoring snooze while paused")
            return

        minutes = self._store.get().snooze_duration_minutes
        self.snoozed_until = self._clock() + timedelta(minutes=minutes)
        logger.info(f"Stretch reminder snoozed for {minutes} minutes")

    def reset_timer(self):
        self.last_reset = self._clock()
        self.snoozed_until = None

    def get_remaining_ms(self) -> int:
        """Milliseconds until the next reminder, or -1 while paused."""
        if self.paused:
            return -1

        now = self._clock()
        if self._is_snoozed(now):
            return max(0, int((self.snoozed_until - now) / _ONE_MS))

        interval = timedelta(minutes=self._store.get().stretch_interval_minutes)
        remaining = interval - (now - self.last_reset)
        return max(0, int(remaining / _ONE_MS))

    def check(self):
        """Run one periodic check."""
        self._emit(self._tick_listeners)

        if self.paused:
            return

        now = self._clock()
        if self._is_snoozed(now):
            return

        interval = timedelta(minutes=self._store.get().stretch_interval_minutes)
        if now - self.last_reset >= interval:
            logger.info("Stretch is due")
            self._emit(self._due_listeners)

    def _is_snoozed(self, now: datetime) -> bool:
        return self.snoozed_until is not None and now < self.snoozed_until

    async def _on_interval(self):
        self.check()

    @staticmethod
    def _subscribe(listeners: List[Listener], listener: Listener) -> Callable[[], None]:
        listeners.append(listener)

        def unsubscribe():
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    @staticmethod
    def _emit(listeners: List[Listener]):
        for listener in list(listeners):
            try:
                listener()
            except Exception as e:
                logger.error(f"Timer listener {listener!r} failed: {e}", exc_info=True)
