"""Pydantic models for calendar events and the calendar API"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class EventStatus(str, Enum):
    """Attendance status used for busy decisions"""

    CONFIRMED = "confirmed"
    TENTATIVE = "tentative"
    FREE = "free"


class NormalizedEvent(BaseModel):
    """Calendar event reduced to what the busy check needs"""

    model_config = ConfigDict(frozen=True)

    provider: str
    summary: str
    start: datetime
    end: datetime
    status: EventStatus


class ProviderStatus(BaseModel):
    """Connection state of one provider"""

    name: str
    display_name: str
    enabled: bool
    connected: bool


class CalendarStatusResponse(BaseModel):
    """Response for calendar status"""

    providers: List[ProviderStatus]
    cached_events: int
    fetched_at: Optional[datetime] = None


class ConnectResponse(BaseModel):
    """Response for a connect attempt"""

    success: bool
    error: Optional[str] = None


class BusyResponse(BaseModel):
    """Response for the busy check"""

    busy: bool
    buffer_minutes: int
