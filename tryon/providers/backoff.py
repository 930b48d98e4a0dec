"""Capped exponential backoff for provider result polling."""

from dataclasses import dataclass
from typing import Iterator


@dataclass(frozen=True)
class BackoffPolicy:
    initial: float = 1.0
    multiplier: float = 1.5
    max_interval: float = 3.0

    def __post_init__(self):
        if self.initial <= 0 or self.multiplier < 1 or self.max_interval < self.initial:
            raise ValueError(
                "BackoffPolicy needs initial > 0, multiplier >= 1 and max_interval >= initial"
            )

    def interval(self, attempt: int) -> float:
        """Delay before poll number ``attempt`` (0-based)."""
        return min(self.initial * (self.multiplier ** attempt), self.max_interval)

    def delays(self, max_wait: float) -> Iterator[float]:
        """Yield successive delays until their sum would exceed ``max_wait``."""
        waited = 0.0
        attempt = 0
        while True:
            delay = self.interval(attempt)
            if waited + delay > max_wait:
                return
            waited += delay
            attempt += 1
            yield delay
