"""Aggregated, cached calendar availability across providers"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from stretchtime.core.calendar.client import CalendarClient
from stretchtime.core.periodic import Clock, PeriodicTask, utc_now
from stretchtime.core.settings_store import SettingsStore
from stretchtime.models.calendar import EventStatus, NormalizedEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailabilityCache:
    """Events from the last fetch cycle and when that cycle ran"""

    events: Tuple[NormalizedEvent, ...] = ()
    fetched_at: Optional[datetime] = None


class CalendarManager:
    """
    Polls every enabled and connected provider on a fixed cadence and answers
    "busy or meeting soon?" from the cached result.

    Each fetch cycle replaces the cache wholesale. A provider that fails
    contributes no events to that cycle; the other provider's events are
    still published.
    """

    def __init__(
        self,
        store: SettingsStore,
        clients: Iterable[CalendarClient],
        clock: Clock = utc_now,
        poll_interval_seconds: float = 300.0,
        cache_ttl_seconds: float = 300.0,
        lookahead_minutes: int = 120,
    ):
        self._store = store
        self._clients: Dict[str, CalendarClient] = {c.name: c for c in clients}
        self._clock = clock
        self.cache_ttl = timedelta(seconds=cache_ttl_seconds)
        self.lookahead_minutes = lookahead_minutes
        self.cache = AvailabilityCache()
        self._poller = PeriodicTask(
            "calendar-poll", poll_interval_seconds, self.fetch_events, run_immediately=True
        )

    @property
    def clients(self) -> List[CalendarClient]:
        return list(self._clients.values())

    def client(self, name: str) -> CalendarClient:
        """Look up a provider client; raises KeyError for unknown providers."""
        return self._clients[name]

    @property
    def cached_events(self) -> Tuple[NormalizedEvent, ...]:
        return self.cache.events

    @property
    def fetched_at(self) -> Optional[datetime]:
        return self.cache.fetched_at

    @property
    def is_polling(self) -> bool:
        return self._poller.is_running

    def start_polling(self):
        """Start polling, with one fetch right away."""
        self._poller.start()
        logger.info("Calendar polling started")

    def stop_polling(self):
        self._poller.stop()
        logger.info("Calendar polling stopped")

    async def wait_closed(self):
        await self._poller.wait_closed()

    async def fetch_events(self):
        """Run one fetch cycle and replace the cache."""
        settings = self._store.get()
        start = self._clock()
        all_events: List[NormalizedEvent] = []

        for name, client in self._clients.items():
            if not settings.provider(name).enabled:
                continue
            all_events.extend(await self._fetch_provider(client, start))

        self.cache = AvailabilityCache(events=tuple(all_events), fetched_at=self._clock())
        logger.info(f"Calendar cache refreshed with {len(all_events)} events")

    async def _fetch_provider(self, client: CalendarClient, start: datetime) -> List[NormalizedEvent]:
        try:
            if not client.is_connected():
                return []
            return await client.get_upcoming_events(self.lookahead_minutes, start=start)
        except Exception as e:
            logger.error(f"Failed to fetch {client.name} events: {e}", exc_info=True)
            return []

    def is_stale(self) -> bool:
        if self.cache.fetched_at is None:
            return True
        return self._clock() - self.cache.fetched_at > self.cache_ttl

    async def is_busy_or_meeting_soon(self, buffer_minutes: int) -> bool:
        """True if a meeting is in progress or starts within ``buffer_minutes``.

        Refreshes the cache first if it is older than the freshness threshold.
        """
        if self.is_stale():
            await self.fetch_events()

        block_on_tentative = self._store.get().block_on_tentative
        now = self._clock()
        buffer_end = now + timedelta(minutes=buffer_minutes)

        for event in self.cache.events:
            if event.status == EventStatus.FREE:
                continue
            if event.status == EventStatus.TENTATIVE and not block_on_tentative:
                continue

            # Currently in a meeting
            if event.start <= now < event.end:
                logger.info(f"Busy: '{event.summary}' is in progress")
                return True

            # Meeting starting within buffer window
            if now < event.start <= buffer_end:
                logger.info(f"Busy: '{event.summary}' starts at {event.start.isoformat()}")
                return True

        return False
