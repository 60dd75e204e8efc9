"""Run an async exchange to completion from synchronous code."""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Coroutine, TypeVar

T = TypeVar("T")


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def run_sync(coro: Coroutine[Any, Any, T]) -> T:
    """Run ``coro`` in its own event loop and return its result.

    Each call gets a fresh loop that is closed before returning, so no task
    it started can outlive the call. If this thread is already running a
    loop, the fresh loop runs on a single-use worker thread instead.
    """
    if _running_loop() is None:
        return asyncio.run(coro)

    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="a2a-delegate") as executor:
        return executor.submit(asyncio.run, coro).result()
