"""Job record data model for async generation."""

from enum import Enum
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel

from tryon.errors import InvalidJobTransition


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.ERROR)


_ALLOWED: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.PROCESSING, JobStatus.ERROR}),
    JobStatus.PROCESSING: frozenset({JobStatus.DONE, JobStatus.ERROR}),
    JobStatus.DONE: frozenset(),
    JobStatus.ERROR: frozenset(),
}


class JobRecord(BaseModel):
    """Tracks the lifecycle of one generation job.

    Timestamps are integer milliseconds since the epoch and stay null until
    the corresponding phase is reached.
    """
    id: str
    status: JobStatus = JobStatus.QUEUED
    created_at: int
    started_at: Optional[int] = None
    ended_at: Optional[int] = None
    completed_at: Optional[int] = None
    image_url: Optional[str] = None
    error: Optional[str] = None
    client_id: Optional[str] = None
    garments_count: Optional[int] = None

    def _transition(self, target: JobStatus) -> None:
        if target not in _ALLOWED[self.status]:
            raise InvalidJobTransition(self.id, self.status.value, target.value)
        self.status = target

    def processing(self, now: int) -> None:
        self._transition(JobStatus.PROCESSING)
        self.started_at = now

    def done(self, image_url: str, now: int) -> None:
        if not image_url:
            raise ValueError("A finished job needs a non-empty image_url")
        self._transition(JobStatus.DONE)
        self.ended_at = now
        self.completed_at = now
        self.image_url = image_url
        self.error = None

    def failed(self, message: str, now: int) -> None:
        self._transition(JobStatus.ERROR)
        self.ended_at = now
        self.completed_at = now
        self.error = message or "Unknown error"
        self.image_url = None
