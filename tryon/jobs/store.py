"""Job store: owns job state transitions on top of the key-value store.

Jobs live under ``job:{id}`` and expire after the retention window. Every
mutation rewrites the whole record and resets the TTL, since the backing
store is a volatile cache rather than durable storage.
"""

import logging
from typing import Any, Callable, Dict, Optional

from tryon.jobs.models import JobRecord
from tryon.latency import now_ms
from tryon.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)

JOB_PREFIX = "job:"


class JobStore:
    def __init__(
        self,
        kv: KeyValueStore,
        ttl_seconds: int = 3600,
        clock: Callable[[], int] = now_ms,
    ):
        self._kv = kv
        self._ttl = ttl_seconds
        self._clock = clock

    @staticmethod
    def _key(job_id: str) -> str:
        return f"{JOB_PREFIX}{job_id}"

    async def _save(self, job: JobRecord) -> None:
        await self._kv.set(self._key(job.id), job.model_dump(mode="json"), ttl=self._ttl)

    async def create_job(
        self,
        job_id: str,
        client_id: Optional[str] = None,
        garments_count: Optional[int] = None,
    ) -> JobRecord:
        job = JobRecord(
            id=job_id,
            created_at=self._clock(),
            client_id=client_id,
            garments_count=garments_count,
        )
        await self._save(job)
        logger.info("Created job %s", job_id)
        return job

    async def get_job(self, job_id: str) -> Optional[JobRecord]:
        data = await self._kv.get(self._key(job_id))
        if data is None:
            return None
        return JobRecord.model_validate(data)

    async def mark_processing(self, job_id: str) -> Optional[JobRecord]:
        job = await self.get_job(job_id)
        if job is None:
            logger.warning("Job %s not found for mark_processing", job_id)
            return None
        job.processing(self._clock())
        await self._save(job)
        logger.info("Job %s -> processing", job_id)
        return job

    async def mark_done(self, job_id: str, image_url: str) -> Optional[JobRecord]:
        job = await self.get_job(job_id)
        if job is None:
            logger.warning("Job %s not found for mark_done", job_id)
            return None
        job.done(image_url, self._clock())
        await self._save(job)
        provider_ms = job.ended_at - job.started_at if job.started_at else None
        logger.info(
            "Job %s -> done | provider: %sms | total: %sms",
            job_id, provider_ms, job.completed_at - job.created_at,
        )
        return job

    async def mark_error(self, job_id: str, message: str) -> Optional[JobRecord]:
        job = await self.get_job(job_id)
        if job is None:
            logger.warning("Job %s not found for mark_error", job_id)
            return None
        job.failed(message, self._clock())
        await self._save(job)
        logger.info("Job %s -> error: %s", job_id, job.error)
        return job


def to_status_response(job: JobRecord) -> Dict[str, Any]:
    """Shape a job the way polling clients expect it."""
    return {
        "status": job.status.value,
        "image_url": job.image_url,
        "error": job.error,
        "timestamps": {
            "created_at": job.created_at,
            "fal_start": job.started_at,
            "fal_end": job.ended_at,
            "completed_at": job.completed_at,
        },
    }


def is_final(job: JobRecord) -> bool:
    return job.status.is_terminal
