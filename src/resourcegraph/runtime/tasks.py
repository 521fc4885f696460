"""
Helpers for running independent resolution units concurrently.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable


async def gather_or_cancel(*awaitables: Awaitable[Any]) -> list[Any]:
    """
    Run awaitables concurrently and return their results in order.

    The first failure cancels the remaining tasks before it is re-raised, so
    no sibling keeps talking to the backend for a result nobody will use.
    """
    tasks = [asyncio.ensure_future(aw) for aw in awaitables]
    if not tasks:
        return []
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
