"""Shared fixtures: a temporary settings store and a controllable clock."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List
from urllib.parse import parse_qsl

import httpx
import pytest

from stretchtime.core.settings_store import SettingsStore


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingNotifier:
    def __init__(self):
        self.notifications: List[tuple] = []

    def notify(self, title: str, body: str) -> None:
        self.notifications.append((title, body))


def form_body(request: httpx.Request) -> dict:
    """Decode a form-encoded request body."""
    return dict(parse_qsl(request.content.decode()))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path: Path) -> SettingsStore:
    return SettingsStore(tmp_path / "settings.enc", tmp_path / ".key")


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
