"""API endpoints mirroring the tray menu's timer actions"""

from fastapi import APIRouter, Depends

from stretchtime.api.dependencies import get_coordinator
from stretchtime.core.coordinator import AppCoordinator
from stretchtime.models.api import TimerStatusResponse

router = APIRouter(prefix="/timer", tags=["timer"])


def _timer_status(coordinator: AppCoordinator) -> TimerStatusResponse:
    return TimerStatusResponse(
        paused=coordinator.timer.is_paused(),
        remaining_ms=coordinator.timer.get_remaining_ms(),
        status=coordinator.status_text(),
    )


@router.get("", response_model=TimerStatusResponse)
async def get_timer(coordinator: AppCoordinator = Depends(get_coordinator)):
    return _timer_status(coordinator)


@router.post("/pause", response_model=TimerStatusResponse)
async def pause_timer(coordinator: AppCoordinator = Depends(get_coordinator)):
    coordinator.timer.pause()
    return _timer_status(coordinator)


@router.post("/resume", response_model=TimerStatusResponse)
async def resume_timer(coordinator: AppCoordinator = Depends(get_coordinator)):
    """Resume; the countdown restarts from the full interval"""
    coordinator.timer.resume()
    return _timer_status(coordinator)


@router.post("/snooze", response_model=TimerStatusResponse)
async def snooze_timer(coordinator: AppCoordinator = Depends(get_coordinator)):
    coordinator.timer.snooze()
    return _timer_status(coordinator)


@router.post("/reset", response_model=TimerStatusResponse)
async def reset_timer(coordinator: AppCoordinator = Depends(get_coordinator)):
    coordinator.timer.reset_timer()
    return _timer_status(coordinator)


@router.post("/stretch-now")
async def stretch_now(coordinator: AppCoordinator = Depends(get_coordinator)):
    """Show the stretch reminder right away"""
    coordinator.stretch_now()
    return {"success": True}
