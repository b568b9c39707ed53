"""API endpoints for reading and editing user settings"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from stretchtime.api.dependencies import get_coordinator
from stretchtime.core.coordinator import AppCoordinator
from stretchtime.models.api import ProviderSettingsView, SettingsResponse, SettingsUpdate
from stretchtime.models.settings import AppSettings

router = APIRouter(prefix="/settings", tags=["settings"])


def _settings_response(coordinator: AppCoordinator, current: AppSettings) -> SettingsResponse:
    def provider_view(name: str) -> ProviderSettingsView:
        provider_settings = current.provider(name)
        return ProviderSettingsView(
            enabled=provider_settings.enabled,
            client_id=provider_settings.client_id,
            tenant_id=provider_settings.tenant_id,
            connected=coordinator.is_connected(name),
        )

    return SettingsResponse(
        stretch_interval_minutes=current.stretch_interval_minutes,
        pre_meeting_buffer_minutes=current.pre_meeting_buffer_minutes,
        snooze_duration_minutes=current.snooze_duration_minutes,
        block_on_tentative=current.block_on_tentative,
        google=provider_view("google"),
        outlook=provider_view("outlook"),
    )


@router.get("", response_model=SettingsResponse)
async def get_settings(coordinator: AppCoordinator = Depends(get_coordinator)):
    """Get current settings; tokens are never returned, only connection flags"""
    return _settings_response(coordinator, coordinator.store.get())


@router.patch("", response_model=SettingsResponse)
async def update_settings(
    update: SettingsUpdate, coordinator: AppCoordinator = Depends(get_coordinator)
):
    """Apply a partial settings update"""
    try:
        current = coordinator.store.update(update.model_dump(exclude_unset=True))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=f"Invalid settings: {e}")
    return _settings_response(coordinator, current)
