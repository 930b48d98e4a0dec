"""Exception types shared across the service."""


class StoreUnavailable(Exception):
    """Raised when the key-value backend cannot be reached."""


class ProviderError(Exception):
    """Raised for any failure reported by (or while talking to) the image provider."""


class ProviderTimeout(ProviderError):
    """Raised when the provider did not produce a result within the polling ceiling."""


class InvalidImage(ValueError):
    """Raised when an input cannot be decoded as an image."""


class InvalidJobTransition(Exception):
    def __init__(self, job_id: str, current: str, target: str) -> None:
        super().__init__(f"Job {job_id} cannot move from '{current}' to '{target}'")
        self.job_id = job_id
        self.current = current
        self.target = target


class QueueFull(Exception):
    """Raised when the background work queue is at capacity."""
