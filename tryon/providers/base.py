"""Provider interface and request/result types."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class GenerationRequest:
    """One try-on generation: a person image plus 1..N garment images.

    Images may be data URLs, raw base64 or http(s) URLs.
    """
    user_image: str
    garments: List[str] = field(default_factory=list)
    prompt: Optional[str] = None
    # Overrides the provider's own polling ceiling when lower
    max_wait_seconds: Optional[float] = None

    def valid_garments(self) -> List[str]:
        return [g for g in self.garments if g]


@dataclass
class GenerationResult:
    image_url: str
    request_id: Optional[str] = None
    duration_ms: Optional[int] = None


class ImageProvider(ABC):
    """Abstract interface to the external image-generation service."""

    name: str = "provider"

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Run one generation to completion. Raises ProviderError on failure."""
        ...

    @abstractmethod
    async def upload(self, data: bytes, content_type: str) -> str:
        """Host raw image bytes on the provider's CDN. Returns the public URL."""
        ...

    async def close(self) -> None:
        return None
