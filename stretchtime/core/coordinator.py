"""Wires the stretch timer to calendar availability and the notifier."""

import asyncio
import logging
import math
import webbrowser
from typing import Any, Callable, Dict, List, Optional, Protocol, Set

import httpx

from stretchtime.config import Settings
from stretchtime.core.calendar import (
    PROVIDERS,
    CalendarClient,
    CalendarManager,
    PKCEAuthenticator,
    TokenManager,
)
from stretchtime.core.calendar.errors import AuthenticationError
from stretchtime.core.periodic import Clock, utc_now
from stretchtime.core.settings_store import SettingsStore
from stretchtime.core.timer import StretchTimer

logger = logging.getLogger(__name__)

APP_NAME = "StretchTime"
STRETCH_TITLE = "Time to Stretch!"
STRETCH_BODY = "You've been sitting for a while. Take a moment to stand up and stretch."


class Notifier(Protocol):
    """Presents the stretch reminder to the user"""

    def notify(self, title: str, body: str) -> None:
        ...


class LogNotifier:
    """Notifier that only writes to the log"""

    def notify(self, title: str, body: str) -> None:
        logger.info(f"{title} {body}")


class AppCoordinator:
    """
    Owns the timer and the calendar manager and decides what happens when a
    stretch is due. Also carries the connect/disconnect actions the settings
    UI triggers.
    """

    def __init__(
        self,
        store: SettingsStore,
        timer: StretchTimer,
        calendar: CalendarManager,
        authenticators: Dict[str, PKCEAuthenticator],
        notifier: Optional[Notifier] = None,
    ):
        self.store = store
        self.timer = timer
        self.calendar = calendar
        self.authenticators = authenticators
        self.notifier = notifier or LogNotifier()
        self.status = self.status_text()

        self._pending: Set[asyncio.Task] = set()
        self._connecting: Set[str] = set()
        self._unsubscribe: List[Callable[[], None]] = []

    def start(self):
        """Start the timer and calendar polling."""
        if self._unsubscribe:
            logger.warning(f"{APP_NAME} already started")
            return

        self._unsubscribe = [
            self.timer.on_stretch_due(self._on_stretch_due),
            self.timer.on_tick(self._on_tick),
        ]
        self.timer.start()
        self.calendar.start_polling()
        self.status = self.status_text()
        logger.info(f"{APP_NAME} started")

    async def stop(self):
        """Stop the timer and polling, letting in-flight work finish."""
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []

        self.timer.stop()
        self.calendar.stop_polling()
        await self.timer.wait_closed()
        await self.calendar.wait_closed()
        await self.drain()
        logger.info(f"{APP_NAME} stopped")

    async def drain(self):
        """Wait for pending suppression checks."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _on_tick(self):
        self.status = self.status_text()
        logger.debug(self.status)

    def _on_stretch_due(self):
        # Reset before awaiting the calendar so the next tick can't fire again
        self.timer.reset_timer()
        task = asyncio.create_task(self._notify_unless_busy())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _notify_unless_busy(self):
        buffer_minutes = self.store.get().pre_meeting_buffer_minutes
        try:
            busy = await self.calendar.is_busy_or_meeting_soon(buffer_minutes)
        except Exception as e:
            logger.error(f"Busy check failed, skipping this reminder: {e}", exc_info=True)
            return

        if busy:
            logger.info("Stretch reminder suppressed by calendar")
            return

        self.stretch_now()

    def stretch_now(self):
        self.notifier.notify(STRETCH_TITLE, STRETCH_BODY)

    def status_text(self) -> str:
        """Tooltip text for the tray icon"""
        if self.timer.is_paused():
            return f"{APP_NAME} - Paused"
        total_sec = math.ceil(self.timer.get_remaining_ms() / 1000)
        minutes, seconds = divmod(total_sec, 60)
        return f"{APP_NAME} - {minutes}:{seconds:02d} until next stretch"

    def is_connected(self, provider: str) -> bool:
        return self.calendar.client(provider).is_connected()

    async def connect_provider(self, provider: str):
        """Authenticate with a provider and enable it.

        Raises KeyError for unknown providers and CalendarError subclasses
        when the flow fails.
        """
        authenticator = self.authenticators[provider]
        if provider in self._connecting:
            raise AuthenticationError(
                f"{authenticator.provider.display_name} authentication already in progress"
            )

        self._connecting.add(provider)
        try:
            await authenticator.authenticate()
        finally:
            self._connecting.discard(provider)

        self.store.update({provider: {"enabled": True}})

    def disconnect_provider(self, provider: str):
        self.calendar.client(provider).tokens.disconnect()
        self.store.update({provider: {"enabled": False}})


def build_coordinator(
    runtime: Settings,
    store: Optional[SettingsStore] = None,
    notifier: Optional[Notifier] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    open_browser: Callable[[str], Any] = webbrowser.open,
    clock: Clock = utc_now,
) -> AppCoordinator:
    """Build the full component graph from runtime settings."""
    store = store or SettingsStore(runtime.settings_path, runtime.key_path)

    clients = []
    authenticators = {}
    for descriptor in PROVIDERS.values():
        tokens = TokenManager(
            descriptor,
            store,
            http_client=http_client,
            clock=clock,
            expiry_margin_seconds=runtime.token_expiry_margin_seconds,
            timeout=runtime.http_timeout_seconds,
        )
        clients.append(
            CalendarClient(
                descriptor,
                tokens,
                http_client=http_client,
                clock=clock,
                timeout=runtime.http_timeout_seconds,
            )
        )
        authenticators[descriptor.name] = PKCEAuthenticator(
            descriptor,
            store,
            tokens,
            open_browser=open_browser,
            timeout_seconds=runtime.auth_timeout_seconds,
        )

    timer = StretchTimer(store, check_interval_seconds=runtime.timer_check_interval_seconds, clock=clock)
    calendar = CalendarManager(
        store,
        clients,
        clock=clock,
        poll_interval_seconds=runtime.calendar_poll_interval_seconds,
        cache_ttl_seconds=runtime.calendar_cache_ttl_seconds,
        lookahead_minutes=runtime.calendar_lookahead_minutes,
    )
    return AppCoordinator(store, timer, calendar, authenticators, notifier=notifier)
