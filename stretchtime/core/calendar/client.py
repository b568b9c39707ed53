"""Read-only calendar client shared by all providers"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import httpx

from stretchtime.core.calendar.providers import ProviderDescriptor
from stretchtime.core.calendar.tokens import TokenManager
from stretchtime.core.http_client import http_session
from stretchtime.core.periodic import Clock, utc_now
from stretchtime.models.calendar import NormalizedEvent

logger = logging.getLogger(__name__)

MAX_PAGES = 10


class CalendarClient:
    """Fetches upcoming events for one provider"""

    def __init__(
        self,
        provider: ProviderDescriptor,
        tokens: TokenManager,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Clock = utc_now,
        timeout: float = 10.0,
    ):
        self.provider = provider
        self.tokens = tokens
        self._http_client = http_client
        self._clock = clock
        self._timeout = timeout

    @property
    def name(self) -> str:
        return self.provider.name

    def is_connected(self) -> bool:
        return self.tokens.is_connected()

    async def get_upcoming_events(
        self, minutes_ahead: int, start: Optional[datetime] = None
    ) -> List[NormalizedEvent]:
        """Get events between ``start`` (default now) and ``minutes_ahead`` later.

        Never raises for network or API failures; those are logged and an
        empty list is returned.
        """
        if not self.is_connected():
            return []

        start = start or self._clock()
        end = start + timedelta(minutes=minutes_ahead)
        display_name = self.provider.display_name

        events: List[NormalizedEvent] = []
        url = self.provider.events_url
        params: Optional[Dict[str, str]] = self.provider.build_event_params(start, end)

        try:
            token = await self.tokens.get_valid_access_token()
            headers = {"Authorization": f"Bearer {token}", **self.provider.event_headers}
            async with http_session(self._http_client, self._timeout) as client:
                for _ in range(MAX_PAGES):
                    response = await client.get(url, params=params, headers=headers)
                    if not response.is_success:
                        logger.error(f"{display_name} Calendar API error: {response.status_code}")
                        return []

                    payload = response.json()
                    events.extend(self.provider.normalize_events(payload))

                    next_page = self.provider.next_page(payload, url, params)
                    if next_page is None:
                        break
                    url, params = next_page
                else:
                    logger.warning(f"{display_name} returned more than {MAX_PAGES} pages; keeping the first {MAX_PAGES}")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"{display_name} Calendar error: {e}")
            return []

        logger.debug(f"Fetched {len(events)} {display_name} events")
        return events
