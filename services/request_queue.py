import asyncio
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Optional, Tuple

logger = logging.getLogger("tutor-router.queue")

MAX_WORKERS = 1

_Item = Tuple[str, Callable[..., Awaitable[Any]], tuple, dict, "asyncio.Future[Any]"]


class RequestQueue:
    """
    In-process FIFO that runs queued coroutines strictly one at a time.

    Bounds concurrent outbound provider calls to one per process so that
    users sharing the same API keys do not trip provider rate limits.
    Unbounded, no priority; a caller may only abandon its own pending item.
    """

    def __init__(self):
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._active = 0
        self._processed = 0
        self._closed = False

    def _ensure_worker(self):
        # Created lazily so the queue binds to the loop that first uses it
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain(), name="request-queue-worker")
            logger.info("Request queue worker started")

    async def enqueue(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Queue func(*args, **kwargs) and wait for its result (or its exception)."""
        if self._closed:
            raise RuntimeError("Request queue is closed")

        self._ensure_worker()
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        request_id = str(uuid.uuid4())

        self._queue.put_nowait((request_id, func, args, kwargs, future))
        logger.info(f"Enqueued request {request_id[:8]} (depth: {self._queue.qsize()})")
        return await future

    async def _drain(self):
        while True:
            request_id, func, args, kwargs, future = await self._queue.get()
            try:
                if future.cancelled():
                    logger.info(f"Skipping cancelled request {request_id[:8]}")
                    continue

                self._active = 1
                t0 = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except asyncio.CancelledError:
                    if not future.done():
                        future.cancel()
                    # Only a cancel aimed at the worker itself stops draining
                    if self._closed or asyncio.current_task().cancelling():
                        raise
                    logger.warning(f"Request {request_id[:8]} cancelled itself; continuing with the queue")
                except Exception as e:
                    if not future.done():
                        future.set_exception(e)
                except BaseException as e:
                    if not future.done():
                        future.set_exception(RuntimeError(f"Request aborted by {type(e).__name__}"))
                    raise
                else:
                    if not future.done():
                        future.set_result(result)
                finally:
                    self._active = 0
                    self._processed += 1
                    logger.info(
                        f"Finished request {request_id[:8]} in {int((time.perf_counter() - t0) * 1000)}ms "
                        f"(depth: {self._queue.qsize()})"
                    )
            finally:
                self._queue.task_done()

    def get_metrics(self) -> dict:
        """Returns queue depth and active workers."""
        return {
            "enabled": not self._closed,
            "queue_depth": self._queue.qsize() if self._queue is not None else 0,
            "active_workers": self._active,
            "max_workers": MAX_WORKERS,
            "processed": self._processed,
        }

    async def close(self):
        self._closed = True
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        # Fail anything still waiting so callers don't hang on shutdown
        if self._queue is not None:
            while not self._queue.empty():
                request_id, _, _, _, future = self._queue.get_nowait()
                if not future.done():
                    future.set_exception(RuntimeError("Request queue closed before execution"))
        logger.info("Request queue closed")
