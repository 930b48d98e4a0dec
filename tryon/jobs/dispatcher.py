"""Job dispatcher interface and the unit of background work."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from tryon.providers.base import GenerationRequest


@dataclass
class GenerationTask:
    """Everything a background worker needs to drive one job to a terminal state."""
    job_id: str
    request: GenerationRequest
    client_id: Optional[str] = None
    client_name: Optional[str] = None


class JobDispatcher(ABC):
    """Abstract interface for background job dispatching."""

    @abstractmethod
    async def submit(self, task: GenerationTask) -> str:
        """Hand a task to the background workers. Returns the job id."""
        ...

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @property
    @abstractmethod
    def running(self) -> bool:
        ...
