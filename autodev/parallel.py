"""
AutoDev Parallel Runner

Bounded-concurrency job pool. A fixed number of workers pull named
zero-argument coroutine factories from a shared FIFO queue until it is
drained. A failing job never cancels its siblings: its key is filled
with a sentinel result and the batch keeps going.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from loguru import logger

Job = Callable[[], Awaitable[Any]]
DoneCallback = Callable[[str, Any, "BaseException | None"], None]


async def run_parallel(
    jobs: list[tuple[str, Job]],
    max_concurrency: int,
    on_done: DoneCallback | None = None,
    failure_factory: Callable[[], Any] = list,
) -> dict[str, Any]:
    """
    Run every job with at most `max_concurrency` in flight.

    Args:
        jobs: (name, factory) pairs. Names should be unique; a duplicate
            name overwrites the earlier result.
        max_concurrency: Upper bound on concurrent workers.
        on_done: Called once per job with (name, result, error). `error`
            is None on success.
        failure_factory: Produces the sentinel stored for a failed job.

    Returns:
        dict mapping job name to its result (or the sentinel).
    """
    results: dict[str, Any] = {}
    if not jobs:
        return results

    queue: asyncio.Queue[tuple[str, Job]] = asyncio.Queue()
    for item in jobs:
        queue.put_nowait(item)

    worker_count = max(1, min(max_concurrency, len(jobs)))

    async def _worker(worker_id: int) -> None:
        while True:
            try:
                name, job = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            error: BaseException | None = None
            try:
                result = await job()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"[PARALLEL] {name} failed on worker {worker_id}: {e}")
                error = e
                result = failure_factory()

            results[name] = result
            if on_done is not None:
                try:
                    on_done(name, result, error)
                except Exception as cb_err:
                    logger.warning(f"[PARALLEL] on_done callback failed for {name}: {cb_err}")
            queue.task_done()

    logger.debug(f"[PARALLEL] {len(jobs)} jobs across {worker_count} workers")
    await asyncio.gather(*(_worker(i + 1) for i in range(worker_count)))
    return results
