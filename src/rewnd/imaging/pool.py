"""Processing concurrency layer.

Architecture:
    FastAPI (async) -> asyncio.Semaphore(N) -> ThreadPoolExecutor(N) -> Pillow

Requests beyond the semaphore limit queue for ``queue_timeout`` seconds, then
get 503. A job running longer than ``processing_timeout`` fails the request
with 504; its slot is held until the worker thread really finishes.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, TypeVar

from rewnd.errors import ProcessingTimeoutError, ProcessingUnavailableError

if TYPE_CHECKING:
    from collections.abc import Callable

    from rewnd.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProcessingPool:
    """Manages the semaphore and thread pool for image processing."""

    def __init__(self, settings: Settings) -> None:
        self._semaphore = asyncio.Semaphore(settings.max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_concurrent,
            thread_name_prefix="photo-processing",
        )
        self._queue_timeout = settings.queue_timeout
        self._processing_timeout = settings.processing_timeout
        self._active_count: int = 0
        self._queue_depth: int = 0
        self._counter_lock = threading.Lock()

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Submit a synchronous function to the processing thread pool.

        Raises:
            ProcessingUnavailableError: If no slot frees up within the queue timeout.
            ProcessingTimeoutError: If the job exceeds the processing timeout.
        """
        with self._counter_lock:
            self._queue_depth += 1
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=self._queue_timeout)
        except TimeoutError:
            raise ProcessingUnavailableError("All processing workers are busy, try again shortly") from None
        finally:
            with self._counter_lock:
                self._queue_depth -= 1

        with self._counter_lock:
            self._active_count += 1

        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._executor, func, *args)
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=self._processing_timeout)
        except TimeoutError:
            if future.done():
                raise
            logger.warning("Processing exceeded %.1fs, abandoning request", self._processing_timeout)
            raise ProcessingTimeoutError(f"Image processing exceeded {self._processing_timeout:g}s") from None
        finally:
            if future.done():
                self._release()
            else:
                future.add_done_callback(self._release_abandoned)

    def _release(self) -> None:
        self._semaphore.release()
        with self._counter_lock:
            self._active_count -= 1

    def _release_abandoned(self, future: asyncio.Future[object]) -> None:
        if not future.cancelled() and future.exception() is not None:
            logger.warning("Abandoned processing job failed: %s", future.exception())
        self._release()

    @property
    def active_count(self) -> int:
        """Number of currently running processing jobs."""
        with self._counter_lock:
            return self._active_count

    @property
    def queue_depth(self) -> int:
        """Number of requests waiting for a processing slot."""
        with self._counter_lock:
            return self._queue_depth

    def shutdown(self) -> None:
        """Shut down the thread pool executor."""
        self._executor.shutdown(wait=True)
