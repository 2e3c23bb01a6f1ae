"""Request-scoped dependencies shared by the routers"""

from collections.abc import AsyncGenerator

import httpx

from core.config import settings


# Overridden in tests with an httpx.MockTransport-backed client
async def get_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    timeout = httpx.Timeout(settings.REMOTE_FETCH_TIMEOUT_SECONDS)
    async with httpx.AsyncClient(timeout=timeout) as client:
        yield client
