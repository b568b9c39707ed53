"""Shared FastAPI dependencies"""

from fastapi import HTTPException, Request

from stretchtime.core.coordinator import AppCoordinator


def get_coordinator(request: Request) -> AppCoordinator:
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return coordinator
