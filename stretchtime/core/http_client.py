"""Shared httpx client handling"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx


@asynccontextmanager
async def http_session(
    client: Optional[httpx.AsyncClient], timeout: float
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the injected client, or a short-lived one owned by this call."""
    if client is not None:
        yield client
        return

    async with httpx.AsyncClient(timeout=timeout) as session:
        yield session
