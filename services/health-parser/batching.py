"""Bounded-concurrency fan-out that keeps results aligned with their inputs."""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def gather_or_cancel(*aws: Awaitable[R]) -> list[R]:
    """``asyncio.gather`` that cancels and awaits the siblings of a failed task.

    The first exception propagates unchanged; no task outlives the call.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def process_batch_with_concurrency(
    items: Sequence[T],
    worker: Callable[[T, int], Awaitable[R]],
    limit: int | None = None,
    semaphore: asyncio.Semaphore | None = None,
) -> list[R]:
    """Run ``worker(item, index)`` for every item, at most ``limit`` at a time.

    Result ``i`` always belongs to item ``i``. Pass ``semaphore`` to share one
    limit across several batches (e.g. all passes hitting one GPU). If any
    worker fails, the remaining ones are cancelled before the error is raised.
    """
    if semaphore is None:
        if not limit or limit < 1:
            raise ValueError("limit must be >= 1 when no semaphore is given")
        semaphore = asyncio.Semaphore(limit)

    async def run(item: T, index: int) -> R:
        async with semaphore:
            return await worker(item, index)

    return await gather_or_cancel(*(run(item, i) for i, item in enumerate(items)))
