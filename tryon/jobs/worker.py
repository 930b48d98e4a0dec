"""Background generation worker.

Drives one job from ``queued`` to ``done`` or ``error``:

1. reject empty garment lists (terminal error, provider never called)
2. mark the job as processing
3. call the provider (single blocking call from the worker's perspective)
4. mark done with the result URL, or error with the exception message

There are no retries here; a client that wants another attempt submits a
new job.
"""

import logging
from typing import Awaitable, Callable, Optional

from tryon.errors import InvalidJobTransition, StoreUnavailable
from tryon.jobs.dispatcher import GenerationTask
from tryon.jobs.store import JobStore
from tryon.latency import log_latency, now_ms
from tryon.metrics.repository import MetricsRepository
from tryon.providers.base import ImageProvider

logger = logging.getLogger(__name__)


async def run_generation_job(
    task: GenerationTask,
    *,
    store: JobStore,
    provider: ImageProvider,
    metrics: Optional[MetricsRepository] = None,
    model: str = "",
) -> None:
    job_id = task.job_id
    garments = task.request.valid_garments()
    if not garments:
        await store.mark_error(job_id, "At least one garment is required")
        return

    if await store.mark_processing(job_id) is None:
        return
    started = now_ms()
    log_latency(job_id, "async_fal_start", 0, model=model, garments=len(garments))

    try:
        result = await provider.generate(task.request)
    except Exception as exc:
        message = str(exc) or type(exc).__name__
        log_latency(job_id, "async_fal_error", now_ms() - started, error=message)
        logger.error("Job %s failed: %s", job_id, message)
        await store.mark_error(job_id, message)
        await _record(metrics, task, model, "error", now_ms() - started)
        return

    duration = now_ms() - started
    log_latency(job_id, "async_fal_end", duration, model=model, success=True)
    if not result.image_url:
        await store.mark_error(job_id, "Provider returned no image")
        await _record(metrics, task, model, "error", duration)
        return

    await store.mark_done(job_id, result.image_url)
    await _record(metrics, task, model, "success", duration)
    logger.info("Job %s completed in %dms", job_id, duration)


async def _record(
    metrics: Optional[MetricsRepository],
    task: GenerationTask,
    model: str,
    status: str,
    duration_ms: int,
) -> None:
    if metrics is None or task.client_id is None:
        return
    try:
        await metrics.record_event(
            client_id=task.client_id,
            client_name=task.client_name or task.client_id,
            model=model,
            status=status,
            job_id=task.job_id,
            duration_ms=duration_ms,
        )
    except StoreUnavailable as exc:
        logger.warning("Could not record metrics for job %s: %s", task.job_id, exc)


def make_job_runner(
    store: JobStore,
    provider: ImageProvider,
    metrics: Optional[MetricsRepository] = None,
    model: str = "",
) -> Callable[[GenerationTask], Awaitable[None]]:
    async def runner(task: GenerationTask) -> None:
        await run_generation_job(task, store=store, provider=provider, metrics=metrics, model=model)

    return runner


def make_error_handler(store: JobStore) -> Callable[[GenerationTask, BaseException], Awaitable[None]]:
    """Convert a failure that escaped the worker into a terminal job state."""

    async def on_error(task: GenerationTask, exc: BaseException) -> None:
        job = await store.get_job(task.job_id)
        if job is None or job.status.is_terminal:
            return
        try:
            await store.mark_error(task.job_id, str(exc) or type(exc).__name__)
        except InvalidJobTransition:
            logger.warning("Job %s already terminal, leaving as is", task.job_id)

    return on_error
