"""Shared outbound HTTP client dependency."""

from collections.abc import AsyncIterator

import httpx

from ytrelay.core.config import settings


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    """FastAPI dependency yielding a client for hub and webhook calls."""

    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
        yield client
