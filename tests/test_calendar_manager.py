"""Tests for the calendar availability aggregator."""

import asyncio
from datetime import timedelta

import pytest

from stretchtime.core.calendar.manager import CalendarManager
from stretchtime.models.calendar import EventStatus, NormalizedEvent


class FakeCalendarClient:
    """Stands in for a provider client."""

    def __init__(self, name, events=(), connected=True, error=None):
        self.name = name
        self.events = list(events)
        self.connected = connected
        self.error = error
        self.calls = []

    def is_connected(self):
        return self.connected

    async def get_upcoming_events(self, minutes_ahead, start=None):
        self.calls.append((minutes_ahead, start))
        if self.error:
            raise self.error
        return list(self.events)


def make_event(clock, start_minutes, end_minutes, status=EventStatus.CONFIRMED, provider="google"):
    now = clock()
    return NormalizedEvent(
        provider=provider,
        summary="Standup",
        start=now + timedelta(minutes=start_minutes),
        end=now + timedelta(minutes=end_minutes),
        status=status,
    )


@pytest.fixture
def google():
    return FakeCalendarClient("google")


@pytest.fixture
def outlook():
    return FakeCalendarClient("outlook")


@pytest.fixture
def manager(store, clock, google, outlook) -> CalendarManager:
    store.update({"google": {"enabled": True}, "outlook": {"enabled": True}})
    return CalendarManager(store, [google, outlook], clock=clock)


async def test_meeting_starting_within_buffer_is_busy(manager, google, clock):
    """Test a meeting 5 minutes out against 15 and 2 minute buffers."""
    google.events = [make_event(clock, 5, 35)]
    await manager.fetch_events()

    assert await manager.is_busy_or_meeting_soon(15) is True
    assert await manager.is_busy_or_meeting_soon(2) is False


async def test_meeting_in_progress_is_busy(manager, google, clock):
    """Test that an ongoing meeting counts as busy with no buffer."""
    google.events = [make_event(clock, -10, 20)]
    await manager.fetch_events()
    assert await manager.is_busy_or_meeting_soon(0) is True


async def test_meeting_starting_now_is_busy(manager, google, clock):
    google.events = [make_event(clock, 0, 30)]
    await manager.fetch_events()
    assert await manager.is_busy_or_meeting_soon(0) is True


async def test_meeting_ending_now_is_not_busy(manager, google, clock):
    """Test that the end of an event is exclusive."""
    google.events = [make_event(clock, -30, 0)]
    await manager.fetch_events()
    assert await manager.is_busy_or_meeting_soon(0) is False


async def test_buffer_boundary_is_inclusive(manager, google, clock):
    google.events = [make_event(clock, 15, 45)]
    await manager.fetch_events()
    assert await manager.is_busy_or_meeting_soon(15) is True
    assert await manager.is_busy_or_meeting_soon(14) is False


@pytest.mark.parametrize("block_on_tentative,expected", [(False, False), (True, True)])
async def test_tentative_policy(manager, store, google, clock, block_on_tentative, expected):
    """Test that tentative meetings only count when the policy says so."""
    store.update({"block_on_tentative": block_on_tentative})
    google.events = [make_event(clock, 5, 35, status=EventStatus.TENTATIVE)]
    await manager.fetch_events()
    assert await manager.is_busy_or_meeting_soon(15) is expected


@pytest.mark.parametrize("block_on_tentative", [False, True])
async def test_free_events_never_busy(manager, store, google, clock, block_on_tentative):
    """Test that free events never suppress, however they are timed."""
    store.update({"block_on_tentative": block_on_tentative})
    google.events = [
        make_event(clock, -5, 30, status=EventStatus.FREE),
        make_event(clock, 3, 30, status=EventStatus.FREE),
    ]
    await manager.fetch_events()
    assert await manager.is_busy_or_meeting_soon(15) is False


async def test_stale_cache_refreshes_once_and_uses_new_events(manager, google, outlook, clock):
    """Test that a stale cache triggers exactly one fetch before deciding."""
    await manager.fetch_events()
    assert len(google.calls) == 1

    clock.advance(minutes=5, seconds=1)
    google.events = [make_event(clock, 2, 30)]

    assert await manager.is_busy_or_meeting_soon(15) is True
    assert len(google.calls) == 2
    assert len(outlook.calls) == 2


async def test_fresh_cache_is_not_refetched(manager, google, clock):
    await manager.fetch_events()
    clock.advance(minutes=5)
    google.events = [make_event(clock, 2, 30)]

    assert await manager.is_busy_or_meeting_soon(15) is False
    assert len(google.calls) == 1


async def test_first_query_fetches(manager, google, clock):
    """Test that a never-fetched cache counts as stale."""
    google.events = [make_event(clock, 2, 30)]
    assert await manager.is_busy_or_meeting_soon(15) is True
    assert len(google.calls) == 1


async def test_disabled_provider_contributes_nothing(manager, store, google, outlook, clock):
    store.update({"outlook": {"enabled": False}})
    outlook.events = [make_event(clock, 2, 30, provider="outlook")]
    await manager.fetch_events()

    assert outlook.calls == []
    assert manager.cache.events == ()


async def test_disconnected_provider_is_skipped(manager, google, clock):
    google.connected = False
    google.events = [make_event(clock, 2, 30)]
    await manager.fetch_events()

    assert google.calls == []
    assert manager.cache.events == ()


async def test_failing_provider_does_not_abort_cycle(manager, google, outlook, clock):
    """Test that one provider's failure still publishes the other's events."""
    google.error = RuntimeError("network down")
    outlook.events = [make_event(clock, 2, 30, provider="outlook")]

    await manager.fetch_events()

    assert [e.provider for e in manager.cache.events] == ["outlook"]
    assert manager.cache.fetched_at == clock()


async def test_cache_replaced_wholesale(manager, google, clock):
    """Test that a later cycle drops events the earlier one had."""
    google.events = [make_event(clock, 2, 30)]
    await manager.fetch_events()
    assert len(manager.cache.events) == 1

    google.events = []
    await manager.fetch_events()
    assert manager.cache.events == ()


async def test_fetch_uses_lookahead_from_cycle_start(manager, google, outlook, clock):
    await manager.fetch_events()
    assert google.calls == [(120, clock())]
    assert outlook.calls == [(120, clock())]


async def test_start_polling_fetches_immediately(store, clock, google):
    store.update({"google": {"enabled": True}})
    manager = CalendarManager(store, [google], clock=clock, poll_interval_seconds=300)

    manager.start_polling()
    assert manager.is_polling
    for _ in range(5):
        await asyncio.sleep(0)
    manager.stop_polling()
    await manager.wait_closed()

    assert len(google.calls) == 1
    assert manager.cache.fetched_at == clock()
    assert not manager.is_polling


async def test_polling_repeats_on_cadence(store, clock, google):
    store.update({"google": {"enabled": True}})
    manager = CalendarManager(store, [google], clock=clock, poll_interval_seconds=0.01)

    manager.start_polling()
    await asyncio.sleep(0.1)
    manager.stop_polling()
    await manager.wait_closed()

    assert len(google.calls) >= 3


def test_unknown_client_lookup(manager):
    with pytest.raises(KeyError):
        manager.client("yahoo")


async def test_cache_accessors(manager, google, clock):
    assert manager.cached_events == ()
    assert manager.fetched_at is None

    google.events = [make_event(clock, 2, 30)]
    await manager.fetch_events()

    assert manager.cached_events == tuple(google.events)
    assert manager.fetched_at == clock()
