"""Shared helpers for executors that talk HTTP."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx


@asynccontextmanager
async def open_client(
    client: Optional[httpx.AsyncClient], timeout: float
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield ``client`` if one was injected, else a short-lived client."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as session:
        yield session


def describe_error(response: httpx.Response) -> str:
    """Extract a readable error from a failed API response."""
    try:
        data = response.json()
    except ValueError:
        return f"HTTP {response.status_code}: {response.text}"
    if isinstance(data, dict):
        for key in ("description", "message", "error"):
            if data.get(key):
                return f"HTTP {response.status_code}: {data[key]}"
    return f"HTTP {response.status_code}: {data}"
