from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from app.db.session import dispose_engine
from app.services.discord_api import close_discord_gateway

T = TypeVar("T")


async def _release_loop_bound_resources() -> None:
    await close_discord_gateway()
    await dispose_engine()


async def _run_with_fresh_pools(awaitable: Awaitable[T]) -> T:
    """Each Celery job gets its own event loop; pooled connections must not outlive it."""
    await _release_loop_bound_resources()
    try:
        return await awaitable
    finally:
        await _release_loop_bound_resources()


def run_async_job(awaitable: Awaitable[T]) -> T:
    return asyncio.run(_run_with_fresh_pools(awaitable))
