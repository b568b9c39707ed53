"""Pydantic models for settings and timer API requests and responses."""

from typing import Optional

from pydantic import BaseModel, Field


class ProviderSettingsView(BaseModel):
    """Provider settings as shown to the settings UI (no tokens)"""

    enabled: bool
    client_id: str
    tenant_id: Optional[str] = None
    connected: bool


class SettingsResponse(BaseModel):
    """Current settings plus connection flags"""

    stretch_interval_minutes: int
    pre_meeting_buffer_minutes: int
    snooze_duration_minutes: int
    block_on_tentative: bool
    google: ProviderSettingsView
    outlook: ProviderSettingsView


class ProviderSettingsUpdate(BaseModel):
    """Editable provider fields"""

    enabled: Optional[bool] = None
    client_id: Optional[str] = None
    tenant_id: Optional[str] = None


class SettingsUpdate(BaseModel):
    """Partial settings update; unset fields are left alone"""

    stretch_interval_minutes: Optional[int] = Field(default=None, ge=1, le=240)
    pre_meeting_buffer_minutes: Optional[int] = Field(default=None, ge=0, le=240)
    snooze_duration_minutes: Optional[int] = Field(default=None, ge=1, le=240)
    block_on_tentative: Optional[bool] = None
    google: Optional[ProviderSettingsUpdate] = None
    outlook: Optional[ProviderSettingsUpdate] = None


class TimerStatusResponse(BaseModel):
    """Reminder timer state"""

    paused: bool
    remaining_ms: int
    status: str
