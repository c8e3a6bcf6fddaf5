"""Shared httpx client helpers for outbound platform calls."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

import httpx

from config import get_settings

settings = get_settings()


def new_client() -> httpx.AsyncClient:
    """Create an AsyncClient bounded by the configured timeout."""
    return httpx.AsyncClient(timeout=settings.http_timeout_seconds)


@asynccontextmanager
async def client_scope(
    client: Optional[httpx.AsyncClient] = None,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the given client, or a short-lived one that is closed afterwards."""
    if client is not None:
        yield client
        return
    async with new_client() as owned:
        yield owned


def response_body(response: httpx.Response) -> object:
    """Best-effort decode of an error body for diagnostics."""
    try:
        return response.json()
    except ValueError:
        return response.text
