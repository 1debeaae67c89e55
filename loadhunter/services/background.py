"""
services/background.py — Bounded background task queue for side effects

Customer upserts, hunt matching and geocode hit counts run here so they
never sit on the per-message critical path.

Business Rules:
- Bounded asyncio.Queue; submit() waits when full (backpressure),
  try_submit() refuses instead
- At-least-once: a failing job is retried up to max_attempts, with a
  linear delay between attempts. Jobs must be idempotent
- A job that exhausts its attempts is logged and dropped; it never
  affects the message that spawned it
- Jobs may be sync or async callables

Called by: services/load_ingestion.py, services/geocode_cache.py, main.py, scheduler.py
Depends on: config (background_queue_size, background_workers, background_max_attempts)
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Callable

from loguru import logger

from ..config import settings


@dataclass
class _Job:
    name: str
    fn: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)


class BackgroundQueue:
    def __init__(self, maxsize: int | None = None, workers: int | None = None,
                 max_attempts: int | None = None, retry_delay: float = 0.5):
        self.maxsize = maxsize or settings.background_queue_size
        self.worker_count = workers or settings.background_workers
        self.max_attempts = max_attempts or settings.background_max_attempts
        self.retry_delay = retry_delay
        self._queue: asyncio.Queue | None = None
        self._workers: list[asyncio.Task] = []
        self.completed = 0
        self.failed = 0
        self.retried = 0

    @property
    def running(self) -> bool:
        return bool(self._workers) and not all(w.done() for w in self._workers)

    def start(self) -> None:
        """Spawn workers on the running loop. Idempotent."""
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self.maxsize)
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"background-worker-{i}")
            for i in range(self.worker_count)
        ]
        logger.info(f"background_queue_started workers={self.worker_count} maxsize={self.maxsize}")

    async def submit(self, name: str, fn: Callable[..., Any], *args, **kwargs) -> None:
        """Enqueue a job, waiting for room when the queue is full."""
        self.start()
        await self._queue.put(_Job(name, fn, args, kwargs))

    def try_submit(self, name: str, fn: Callable[..., Any], *args, **kwargs) -> bool:
        """Enqueue without waiting. False when the queue is full or no loop is running."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        self.start()
        try:
            self._queue.put_nowait(_Job(name, fn, args, kwargs))
            return True
        except asyncio.QueueFull:
            logger.warning(f"background_job_dropped name={name} reason=queue_full")
            return False

    async def drain(self) -> None:
        """Wait until every queued job has finished (or exhausted its attempts)."""
        if self._queue is not None and self.running:
            await self._queue.join()

    async def stop(self) -> None:
        await self.drain()
        for w in self._workers:
            w.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info(f"background_queue_stopped completed={self.completed} failed={self.failed}")

    async def _worker(self, idx: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._run(job)
            finally:
                self._queue.task_done()

    async def _run(self, job: _Job) -> None:
        for attempt in range(1, self.max_attempts + 1):
            try:
                result = job.fn(*job.args, **job.kwargs)
                if inspect.isawaitable(result):
                    await result
                self.completed += 1
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if attempt >= self.max_attempts:
                    self.failed += 1
                    logger.error(f"background_job_failed name={job.name} attempts={attempt} error={e}")
                    return
                self.retried += 1
                logger.warning(f"background_job_retry name={job.name} attempt={attempt} error={e}")
                await asyncio.sleep(self.retry_delay * attempt)
