"""Async utilities for running blocking catalog calls concurrently."""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Coroutine,
    Generic,
    Sequence,
    TypeVar,
)

from minecraft_mod_manager.errors import OperationCancelledError

T = TypeVar("T")
R = TypeVar("R")
logger = logging.getLogger(__name__)

# Module-level semaphore, initialized once per command run
_semaphore: asyncio.Semaphore | None = None


def init_semaphore(max_parallel: int = 5) -> None:
    """Initialize the concurrency semaphore. Call once per event loop."""
    global _semaphore
    _semaphore = asyncio.Semaphore(max_parallel)
    logger.debug(
        "Request semaphore initialized: max_parallel=%d",
        max_parallel,
    )


class CancelToken:
    """Cooperative cancellation shared by every task and outbound call.

    Cancelling stops waits promptly (``wait`` returns early) but never
    rolls back work that has already been written.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to *timeout* seconds; ``True`` if cancelled meanwhile."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError()


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Does NOT acquire the semaphore.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def run_sync_limited(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool, bounded by the concurrency semaphore.

    Falls back to unbounded if semaphore not initialized.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)
    """
    if _semaphore is None:
        return await asyncio.to_thread(func, *args, **kwargs)
    async with _semaphore:
        return await asyncio.to_thread(func, *args, **kwargs)


async def gather_limited(
    coros: Sequence[Coroutine[Any, Any, T]],
) -> list[T]:
    """Run coroutines concurrently, bounded by the semaphore.

    Each coroutine should use run_sync_limited internally.
    Returns results in order. Exceptions propagate from the first failure.

    Args:
        coros: Sequence of coroutines to run concurrently.

    Returns:
        List of results in the same order as input coroutines.
    """
    return list(await asyncio.gather(*coros))


@dataclass
class TaskResult(Generic[R]):
    """Outcome of one fanned-out task: a value or the error it raised."""

    value: R | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def fan_out(
    items: Sequence[T],
    worker: Callable[[T], R],
) -> list[TaskResult[R]]:
    """Run ``worker(item)`` for every item concurrently.

    Each task only produces its own result; results are published on a
    single queue as ``(index, result)`` and drained into a list indexed
    by original position, so callers can apply them sequentially and in
    order.  Exceptions raised by *worker* are captured per slot.

    Args:
        items: Work items.
        worker: Blocking callable run in the thread pool via
            ``run_sync_limited``.

    Returns:
        One ``TaskResult`` per item, in input order.
    """
    queue: asyncio.Queue[tuple[int, TaskResult[R]]] = asyncio.Queue()

    async def run_one(index: int, item: T) -> None:
        try:
            value = await run_sync_limited(worker, item)
        except Exception as exc:
            await queue.put((index, TaskResult(error=exc)))
            return
        await queue.put((index, TaskResult(value=value)))

    tasks = [
        asyncio.create_task(run_one(index, item))
        for index, item in enumerate(items)
    ]
    slots: list[TaskResult[R]] = [TaskResult() for _ in items]
    try:
        for _ in range(len(tasks)):
            index, result = await queue.get()
            slots[index] = result
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
    return slots
