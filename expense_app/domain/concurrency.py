"""Fan-out helpers for concurrent gateway calls."""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable


async def gather_fail_fast(*awaitables: Awaitable[Any]) -> list[Any]:
    """Await all calls concurrently.

    The first failure cancels whatever is still in flight and propagates;
    there is no partial result.
    """
    if not awaitables:
        return []
    tasks = [asyncio.ensure_future(a) for a in awaitables]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        raise
