from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
from typing import Any, Awaitable, Coroutine, TypeVar

T = TypeVar("T")


async def maybe_await(x: Any) -> Any:
    """Await *x* if it is awaitable; sinks may be sync or async."""
    if inspect.isawaitable(x):
        return await x
    return x


def run_sync(coro: Coroutine[Any, Any, T]) -> T:
    """Run *coro* to completion from synchronous code.

    With no running loop in this thread a private loop is used. Inside a
    running loop the coroutine runs on a helper thread with its own loop, so
    sync entry points stay usable from async frameworks.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    with concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="abacx-sync") as ex:
        return ex.submit(asyncio.run, coro).result()


async def gather_isolated(*aws: Awaitable[T]) -> list[T | BaseException]:
    """Gather awaitables concurrently, returning exceptions in place of results."""
    return list(await asyncio.gather(*aws, return_exceptions=True))


__all__ = ["maybe_await", "run_sync", "gather_isolated"]
