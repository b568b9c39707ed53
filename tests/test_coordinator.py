"""Tests for the reminder/suppression wiring and provider connect actions."""

import asyncio

import pytest

from stretchtime.core.calendar.errors import AuthenticationError, AuthorizationDeniedError
from stretchtime.core.coordinator import STRETCH_TITLE, AppCoordinator
from stretchtime.core.timer import StretchTimer


class StubTokens:
    def __init__(self):
        self.disconnected = False

    def disconnect(self):
        self.disconnected = True


class StubClient:
    def __init__(self, connected=False):
        self.connected = connected
        self.tokens = StubTokens()

    def is_connected(self):
        return self.connected


class StubCalendar:
    """Answers the busy question and records the buffer it was asked with."""

    def __init__(self, busy=False, error=None, gate=None):
        self.busy = busy
        self.error = error
        self.gate = gate
        self.buffers = []
        self.clients = {"google": StubClient(), "outlook": StubClient()}
        self.polling = False

    async def is_busy_or_meeting_soon(self, buffer_minutes):
        self.buffers.append(buffer_minutes)
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise self.error
        return self.busy

    def client(self, name):
        return self.clients[name]

    def start_polling(self):
        self.polling = True

    def stop_polling(self):
        self.polling = False

    async def wait_closed(self):
        pass


class StubAuthenticator:
    def __init__(self, error=None, gate=None):
        self.error = error
        self.gate = gate
        self.calls = 0
        self.provider = type("Descriptor", (), {"display_name": "Google"})()

    async def authenticate(self):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise self.error


def make_coordinator(store, clock, notifier, calendar=None, authenticators=None):
    timer = StretchTimer(store, clock=clock)
    return AppCoordinator(
        store,
        timer,
        calendar or StubCalendar(),
        authenticators or {"google": StubAuthenticator()},
        notifier=notifier,
    )


def fire_due(coordinator, clock):
    coordinator.timer.on_stretch_due(coordinator._on_stretch_due)
    clock.advance(minutes=30)
    coordinator.timer.check()


async def test_notifies_when_free(store, clock, notifier):
    coordinator = make_coordinator(store, clock, notifier)

    fire_due(coordinator, clock)
    await coordinator.drain()

    assert [title for title, _ in notifier.notifications] == [STRETCH_TITLE]


async def test_suppressed_when_busy_but_timer_still_reset(store, clock, notifier):
    """Test that a suppressed reminder waits a full interval before firing again."""
    store.update({"pre_meeting_buffer_minutes": 10})
    calendar = StubCalendar(busy=True)
    coordinator = make_coordinator(store, clock, notifier, calendar=calendar)

    fire_due(coordinator, clock)
    await coordinator.drain()

    assert notifier.notifications == []
    assert calendar.buffers == [10]
    assert coordinator.timer.get_remaining_ms() == 30 * 60_000


async def test_reset_happens_before_busy_check_completes(store, clock, notifier):
    """Test that a tick during a slow busy check doesn't fire a second reminder."""
    gate = asyncio.Event()
    calendar = StubCalendar(gate=gate)
    coordinator = make_coordinator(store, clock, notifier, calendar=calendar)

    fire_due(coordinator, clock)
    await asyncio.sleep(0)
    coordinator.timer.check()
    coordinator.timer.check()

    gate.set()
    await coordinator.drain()

    assert len(calendar.buffers) == 1
    assert len(notifier.notifications) == 1


async def test_busy_check_failure_skips_reminder(store, clock, notifier, caplog):
    calendar = StubCalendar(error=RuntimeError("cache exploded"))
    coordinator = make_coordinator(store, clock, notifier, calendar=calendar)

    fire_due(coordinator, clock)
    await coordinator.drain()

    assert notifier.notifications == []
    assert "Busy check failed" in caplog.text


def test_stretch_now_notifies_directly(store, clock, notifier):
    coordinator = make_coordinator(store, clock, notifier)
    coordinator.stretch_now()
    assert len(notifier.notifications) == 1


def test_status_text(store, clock, notifier):
    coordinator = make_coordinator(store, clock, notifier)
    assert coordinator.status_text() == "StretchTime - 30:00 until next stretch"

    clock.advance(seconds=90, milliseconds=500)
    assert coordinator.status_text() == "StretchTime - 28:30 until next stretch"

    coordinator.timer.pause()
    assert coordinator.status_text() == "StretchTime - Paused"


async def test_start_and_stop(store, clock, notifier):
    calendar = StubCalendar()
    coordinator = make_coordinator(store, clock, notifier, calendar=calendar)

    coordinator.start()
    assert calendar.polling

    await coordinator.stop()
    assert not calendar.polling
    assert not coordinator.timer._periodic.is_running


async def test_start_twice_subscribes_once(store, clock, notifier, caplog):
    """Test that a second start() doesn't double up reminders."""
    coordinator = make_coordinator(store, clock, notifier)
    coordinator.start()
    coordinator.start()

    clock.advance(minutes=30)
    coordinator.timer.check()
    await coordinator.drain()

    assert len(notifier.notifications) == 1
    assert "already started" in caplog.text
    await coordinator.stop()

    # can be started again after a stop
    coordinator.start()
    assert coordinator.calendar.polling
    await coordinator.stop()


async def test_tick_updates_status(store, clock, notifier):
    coordinator = make_coordinator(store, clock, notifier)
    coordinator.start()
    clock.advance(minutes=10)
    coordinator.timer.check()
    assert coordinator.status == "StretchTime - 20:00 until next stretch"
    await coordinator.stop()


async def test_connect_enables_provider(store, clock, notifier):
    authenticator = StubAuthenticator()
    coordinator = make_coordinator(store, clock, notifier, authenticators={"google": authenticator})

    await coordinator.connect_provider("google")

    assert authenticator.calls == 1
    assert store.get().google.enabled is True


async def test_failed_connect_leaves_provider_disabled(store, clock, notifier):
    authenticator = StubAuthenticator(error=AuthorizationDeniedError("access_denied"))
    coordinator = make_coordinator(store, clock, notifier, authenticators={"google": authenticator})

    with pytest.raises(AuthorizationDeniedError):
        await coordinator.connect_provider("google")

    assert store.get().google.enabled is False

    # a later attempt is allowed
    authenticator.error = None
    await coordinator.connect_provider("google")
    assert store.get().google.enabled is True


async def test_concurrent_connect_rejected(store, clock, notifier):
    gate = asyncio.Event()
    authenticator = StubAuthenticator(gate=gate)
    coordinator = make_coordinator(store, clock, notifier, authenticators={"google": authenticator})

    first = asyncio.create_task(coordinator.connect_provider("google"))
    await asyncio.sleep(0)

    with pytest.raises(AuthenticationError, match="already in progress"):
        await coordinator.connect_provider("google")

    gate.set()
    await first
    assert authenticator.calls == 1


async def test_unknown_provider(store, clock, notifier):
    coordinator = make_coordinator(store, clock, notifier)
    with pytest.raises(KeyError):
        await coordinator.connect_provider("yahoo")


def test_disconnect_provider(store, clock, notifier):
    calendar = StubCalendar()
    coordinator = make_coordinator(store, clock, notifier, calendar=calendar)
    store.update({"google": {"enabled": True}})

    coordinator.disconnect_provider("google")

    assert calendar.clients["google"].tokens.disconnected
    assert store.get().google.enabled is False
