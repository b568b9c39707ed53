"""Pydantic models for user settings and persisted OAuth tokens."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

DEFAULT_OUTLOOK_CLIENT_ID = "7f6d8ba2-c83e-498f-86b6-77eb0375e03f"
DEFAULT_OUTLOOK_TENANT_ID = "consumers"


class TokenSet(BaseModel):
    """OAuth tokens for one calendar provider"""

    access_token: str = Field(repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    expires_at: datetime


class ProviderSettings(BaseModel):
    """Per-provider connection settings"""

    enabled: bool = False
    client_id: str = ""
    tenant_id: Optional[str] = None
    tokens: Optional[TokenSet] = None


class AppSettings(BaseModel):
    """User-editable settings, read fresh on every decision."""

    stretch_interval_minutes: int = Field(default=30, ge=1, le=240)
    pre_meeting_buffer_minutes: int = Field(default=15, ge=0, le=240)
    snooze_duration_minutes: int = Field(default=5, ge=1, le=240)
    block_on_tentative: bool = True
    google: ProviderSettings = Field(default_factory=ProviderSettings)
    outlook: ProviderSettings = Field(
        default_factory=lambda: ProviderSettings(
            client_id=DEFAULT_OUTLOOK_CLIENT_ID,
            tenant_id=DEFAULT_OUTLOOK_TENANT_ID,
        )
    )

    def provider(self, name: str) -> ProviderSettings:
        """Return the settings block for a provider by name."""
        if name not in ("google", "outlook"):
            raise KeyError(name)
        return getattr(self, name)
