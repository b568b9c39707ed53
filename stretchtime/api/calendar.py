"""API endpoints for calendar connections and availability"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from stretchtime.api.dependencies import get_coordinator
from stretchtime.core.calendar.errors import CalendarError
from stretchtime.core.coordinator import AppCoordinator
from stretchtime.models.calendar import (
    BusyResponse,
    CalendarStatusResponse,
    ConnectResponse,
    ProviderStatus,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendar", tags=["calendar"])


def _require_provider(coordinator: AppCoordinator, provider: str):
    if provider not in coordinator.authenticators:
        raise HTTPException(status_code=404, detail=f"Unknown calendar provider: {provider}")


@router.get("/status", response_model=CalendarStatusResponse)
async def get_calendar_status(coordinator: AppCoordinator = Depends(get_coordinator)):
    """Connection state of every provider plus cache freshness"""
    current = coordinator.store.get()
    providers = [
        ProviderStatus(
            name=client.name,
            display_name=client.provider.display_name,
            enabled=current.provider(client.name).enabled,
            connected=client.is_connected(),
        )
        for client in coordinator.calendar.clients
    ]
    return CalendarStatusResponse(
        providers=providers,
        cached_events=len(coordinator.calendar.cached_events),
        fetched_at=coordinator.calendar.fetched_at,
    )


@router.post("/{provider}/connect", response_model=ConnectResponse)
async def connect_provider(provider: str, coordinator: AppCoordinator = Depends(get_coordinator)):
    """
    Run the browser OAuth flow for a provider.
    Returns once the user has authorized (or the flow failed or timed out)
    """
    _require_provider(coordinator, provider)
    try:
        await coordinator.connect_provider(provider)
    except CalendarError as e:
        logger.warning(f"Connecting {provider} failed: {e}")
        return ConnectResponse(success=False, error=str(e))
    return ConnectResponse(success=True)


@router.post("/{provider}/disconnect")
async def disconnect_provider(provider: str, coordinator: AppCoordinator = Depends(get_coordinator)):
    """Forget a provider's tokens and disable it"""
    _require_provider(coordinator, provider)
    coordinator.disconnect_provider(provider)
    return {"success": True}


@router.get("/busy", response_model=BusyResponse)
async def get_busy(
    buffer_minutes: Optional[int] = Query(None, ge=0, le=240),
    coordinator: AppCoordinator = Depends(get_coordinator),
):
    """Check whether a meeting is in progress or about to start"""
    if buffer_minutes is None:
        buffer_minutes = coordinator.store.get().pre_meeting_buffer_minutes
    busy = await coordinator.calendar.is_busy_or_meeting_soon(buffer_minutes)
    return BusyResponse(busy=busy, buffer_minutes=buffer_minutes)
