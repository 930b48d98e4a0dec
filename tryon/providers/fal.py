"""fal.ai queue API client.

Submits a try-on edit to ``{queue_url}/{model}``. fal either answers with the
result directly or with a queue handle (``request_id``, ``status_url``,
``response_url``) that we poll until it completes, fails, or the polling
ceiling is reached. The HTTP work is blocking (``requests``) and runs in the
event loop's default executor on a shared keep-alive session.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter

from tryon.errors import ProviderError, ProviderTimeout
from tryon.images import MIME_EXTENSIONS, ensure_data_url
from tryon.latency import now_ms
from tryon.providers.backoff import BackoffPolicy
from tryon.providers.base import GenerationRequest, GenerationResult, ImageProvider

logger = logging.getLogger(__name__)

_PROMPT_TAIL = (
    "DO NOT MODIFY the structure, shape, pose, face, or proportions of the original image. "
    "KEEP THE ORIGINAL IMAGE EXACTLY AS IT IS, only incorporating the clothing {noun} onto the person."
)


def build_prompt(garment_count: int) -> str:
    if garment_count == 1:
        return (
            "Add the clothing garment from Figure 2 onto the person in Figure 1. "
            + _PROMPT_TAIL.format(noun="garment")
        )
    figures = " and ".join(f"Figure {i + 2}" for i in range(garment_count))
    return (
        f"Add the clothing garments from {figures} onto the person in Figure 1. "
        + _PROMPT_TAIL.format(noun="garments")
    )


def extract_image_url(data: Any) -> Optional[str]:
    """Find the result image URL in any of the payload shapes fal returns."""
    if not isinstance(data, dict):
        return None
    image = data.get("image")
    if isinstance(image, dict) and image.get("url"):
        return image["url"]
    output = data.get("output")
    if isinstance(output, dict) and output.get("url"):
        return output["url"]
    images = data.get("images")
    if isinstance(images, list) and images and isinstance(images[0], dict) and images[0].get("url"):
        return images[0]["url"]
    nested = data.get("data")
    if isinstance(nested, dict):
        nested_image = nested.get("image")
        if isinstance(nested_image, dict) and nested_image.get("url"):
            return nested_image["url"]
    if isinstance(data.get("url"), str) and data["url"]:
        return data["url"]
    if isinstance(output, str) and output:
        return output
    return None


def make_session(pool_size: int = 50) -> requests.Session:
    """Keep-alive session shared by all provider calls."""
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=10, pool_maxsize=pool_size)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


class FalProvider(ImageProvider):
    name = "fal"

    def __init__(
        self,
        settings,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._settings = settings
        self._session = session or make_session()
        self._sleep = sleep
        self._monotonic = monotonic
        self._backoff = BackoffPolicy(
            initial=settings.poll_initial_interval,
            multiplier=settings.poll_multiplier,
            max_interval=settings.poll_max_interval,
        )

    @property
    def model(self) -> str:
        return self._settings.fal_model

    def _headers(self) -> Dict[str, str]:
        key = self._settings.fal_key.strip()
        if not key:
            raise ProviderError("FAL_KEY not configured")
        return {"Authorization": f"Key {key}"}

    def _json(self, resp: requests.Response, what: str) -> Dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderError(f"Malformed {what} response from provider") from exc
        if not isinstance(data, dict):
            raise ProviderError(
                f"Malformed {what} response from provider: expected an object, got {type(data).__name__}"
            )
        return data

    def build_arguments(self, request: GenerationRequest) -> Dict[str, Any]:
        garments = request.valid_garments()
        image_urls: List[str] = [ensure_data_url(request.user_image)]
        image_urls.extend(ensure_data_url(g) for g in garments)
        return {
            "prompt": request.prompt or build_prompt(len(garments)),
            "image_urls": image_urls,
            "image_size": self._settings.fal_image_size,
            "num_images": 1,
            "enable_safety_checker": True,
        }

    def _max_wait(self, request: GenerationRequest) -> float:
        ceiling = self._settings.provider_max_wait_seconds
        if request.max_wait_seconds is not None:
            return min(ceiling, request.max_wait_seconds)
        return ceiling

    def _generate_sync(self, request: GenerationRequest) -> GenerationResult:
        headers = self._headers()
        started = now_ms()
        started_mono = self._monotonic()
        timeout = self._settings.fal_request_timeout_seconds
        try:
            resp = self._session.post(
                f"{self._settings.fal_queue_url.rstrip('/')}/{self.model}",
                json=self.build_arguments(request),
                headers=headers,
                timeout=timeout,
            )
        except requests.RequestException as exc:
            raise ProviderError(f"Provider request failed: {exc}") from exc
        if not resp.ok:
            raise ProviderError(f"FAL API error: {resp.status_code} - {resp.text[:500]}")

        data = self._json(resp, "submit")
        request_id = data.get("request_id")
        if request_id and data.get("status_url") and data.get("response_url"):
            logger.info("Provider request queued, id=%s", request_id)
            data = self._poll(
                request_id, data["status_url"], data["response_url"], headers,
                max_wait=max(0.0, self._max_wait(request) - (self._monotonic() - started_mono)),
            )

        url = extract_image_url(data)
        if not url:
            raise ProviderError(f"Unexpected provider response format: {str(data)[:200]}")
        return GenerationResult(image_url=url, request_id=request_id, duration_ms=now_ms() - started)

    def _poll(
        self,
        request_id: str,
        status_url: str,
        response_url: str,
        headers: Dict[str, str],
        max_wait: float,
    ) -> Dict[str, Any]:
        timeout = self._settings.fal_request_timeout_seconds
        deadline = self._monotonic() + max_wait
        for attempt, delay in enumerate(self._backoff.delays(max_wait)):
            self._sleep(delay)
            if self._monotonic() > deadline:
                break
            try:
                status_resp = self._session.get(status_url, headers=headers, timeout=timeout)
            except requests.RequestException as exc:
                logger.warning("Status check %d for %s failed: %s", attempt + 1, request_id, exc)
                continue
            if not status_resp.ok:
                logger.info(
                    "Status check %d for %s returned %s, polling again",
                    attempt + 1, request_id, status_resp.status_code,
                )
                continue

            status = self._json(status_resp, "status")
            state = status.get("status")
            logger.debug("Provider poll %d for %s: %s", attempt + 1, request_id, state)
            if state == "COMPLETED":
                try:
                    result_resp = self._session.get(response_url, headers=headers, timeout=timeout)
                except requests.RequestException as exc:
                    raise ProviderError(f"Fetching provider result failed: {exc}") from exc
                if not result_resp.ok:
                    raise ProviderError(
                        f"Fetching provider result failed: {result_resp.status_code}"
                    )
                return self._json(result_resp, "result")
            if state == "FAILED":
                raise ProviderError(
                    f"FAL generation failed: {status.get('error') or 'Unknown error'}"
                )
            # IN_QUEUE / IN_PROGRESS: keep waiting

        raise ProviderTimeout(f"FAL generation timeout after {max_wait:.0f}s")

    def _upload_sync(self, data: bytes, content_type: str) -> str:
        headers = self._headers()
        timeout = self._settings.fal_request_timeout_seconds
        ext = MIME_EXTENSIONS.get(content_type, "bin")
        try:
            init = self._session.post(
                self._settings.fal_storage_url,
                json={"content_type": content_type, "file_name": f"upload-{now_ms()}.{ext}"},
                headers=headers,
                timeout=timeout,
            )
            if not init.ok:
                raise ProviderError(f"Storage upload initiation failed: {init.status_code}")
            target = self._json(init, "upload initiation")
            upload_url, file_url = target.get("upload_url"), target.get("file_url")
            if not upload_url or not file_url:
                raise ProviderError("Storage upload initiation returned no URLs")
            put = self._session.put(
                upload_url,
                data=data,
                headers={"Content-Type": content_type},
                timeout=timeout,
            )
        except requests.RequestException as exc:
            raise ProviderError(f"Storage upload failed: {exc}") from exc
        if not put.ok:
            raise ProviderError(f"Storage upload failed: {put.status_code}")
        return file_url

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._generate_sync, request)

    async def upload(self, data: bytes, content_type: str) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._upload_sync, data, content_type)

    async def close(self) -> None:
        self._session.close()
