"""In-process job queue using asyncio.

A bounded queue drained by a fixed pool of worker tasks. Nothing submitted
here is ever left unobserved: any exception escaping the worker function is
logged and passed to ``on_error`` so the job reaches a terminal state.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from tryon.errors import QueueFull
from tryon.jobs.dispatcher import GenerationTask, JobDispatcher

logger = logging.getLogger(__name__)

WorkerFn = Callable[[GenerationTask], Awaitable[None]]
ErrorFn = Callable[[GenerationTask, BaseException], Awaitable[None]]


class InProcessQueue(JobDispatcher):
    """Local async job queue processing up to ``workers`` jobs concurrently."""

    def __init__(
        self,
        worker_fn: WorkerFn,
        on_error: Optional[ErrorFn] = None,
        maxsize: int = 100,
        workers: int = 4,
    ):
        if workers < 1:
            raise ValueError("InProcessQueue needs at least one worker")
        self._queue: asyncio.Queue[GenerationTask] = asyncio.Queue(maxsize=maxsize)
        self._worker_fn = worker_fn
        self._on_error = on_error
        self._worker_count = workers
        self._tasks: List[asyncio.Task] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def submit(self, task: GenerationTask) -> str:
        if not self._running:
            raise QueueFull("Job queue is not running")
        try:
            self._queue.put_nowait(task)
        except asyncio.QueueFull as exc:
            raise QueueFull(f"Job queue is full ({self._queue.maxsize} pending)") from exc
        return task.job_id

    async def start(self) -> None:
        self._running = True
        self._tasks = [
            asyncio.create_task(self._worker_loop(i), name=f"job-worker-{i}")
            for i in range(self._worker_count)
        ]
        logger.info("Job queue started with %d worker(s)", self._worker_count)

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Job queue stopped")

    async def join(self) -> None:
        """Wait until every submitted task has been processed."""
        await self._queue.join()

    async def _worker_loop(self, index: int) -> None:
        while self._running:
            task = await self._queue.get()
            try:
                await self._worker_fn(task)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.exception("Worker %d failed on job %s", index, task.job_id)
                await self._report(task, exc)
            finally:
                self._queue.task_done()

    async def _report(self, task: GenerationTask, exc: BaseException) -> None:
        if self._on_error is None:
            return
        try:
            await self._on_error(task, exc)
        except Exception:
            logger.exception("Error handler failed for job %s", task.job_id)
