"""Bounded, per-pool execution isolation."""

import asyncio
import contextvars
import functools
import inspect
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

from shared.errors import BulkheadRejection
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class Bulkhead:
    """Runs calls on a dedicated pool of ``core_size`` slots.

    Up to ``max_queue_size`` further calls may wait for a slot. Anything
    beyond ``core_size + max_queue_size`` in flight is rejected immediately.
    Coroutine functions run as tasks gated by a semaphore; plain callables
    run on this pool's own thread pool so they never occupy the threads that
    accept requests.
    """

    def __init__(self, name: str, core_size: int, max_queue_size: int):
        if core_size <= 0:
            raise ValueError("core_size must be positive")
        self.name = name
        self.core_size = core_size
        self.max_queue_size = max(0, max_queue_size)
        self.capacity = self.core_size + self.max_queue_size
        self._admitted = 0
        self._active = 0
        self._lock = threading.Lock()
        self._semaphore: asyncio.Semaphore | None = None
        self._executor: ThreadPoolExecutor | None = None

    @property
    def in_flight(self) -> int:
        return self._admitted

    @property
    def active(self) -> int:
        return self._active

    @property
    def queued(self) -> int:
        return self._admitted - self._active

    def submit(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> asyncio.Task:
        """Admit a call and schedule it on the pool.

        The returned task inherits the caller's context variables.

        Raises:
            BulkheadRejection: If the pool and its queue are full
        """
        with self._lock:
            if self._admitted >= self.capacity:
                logger.warning(
                    "bulkhead_rejected",
                    pool=self.name,
                    in_flight=self._admitted,
                    capacity=self.capacity,
                )
                raise BulkheadRejection(self.name, self.capacity)
            self._admitted += 1

        try:
            return asyncio.get_running_loop().create_task(self._run(func, args, kwargs))
        except BaseException:
            self._release()
            raise

    async def _run(self, func: Callable[..., Any], args: tuple, kwargs: dict) -> Any:
        try:
            async with self._get_semaphore():
                self._active += 1
                try:
                    if inspect.iscoroutinefunction(func):
                        return await func(*args, **kwargs)
                    context = contextvars.copy_context()
                    call = functools.partial(context.run, func, *args, **kwargs)
                    return await asyncio.get_running_loop().run_in_executor(
                        self._get_executor(), call
                    )
                finally:
                    self._active -= 1
        finally:
            self._release()

    def _release(self) -> None:
        with self._lock:
            self._admitted -= 1

    def _get_semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.core_size)
        return self._semaphore

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.core_size,
                thread_name_prefix=f"bulkhead-{self.name}",
            )
        return self._executor

    def shutdown(self) -> None:
        """Release the thread pool. In-flight thread calls are left to finish."""
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    def get_state(self) -> dict:
        return {
            "pool": self.name,
            "core_size": self.core_size,
            "max_queue_size": self.max_queue_size,
            "active": self.active,
            "queued": self.queued,
        }
