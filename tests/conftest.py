"""Pytest fixtures: app over the in-memory store with a fake provider."""
import asyncio
import base64
import io
import time
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from tryon.config import ClientSeed, Settings
from tryon.errors import StoreUnavailable
from tryon.main import create_app
from tryon.providers.base import GenerationRequest, GenerationResult, ImageProvider
from tryon.storage.kv import InMemoryKeyValueStore

API_KEY = "test_key_001"
INACTIVE_KEY = "test_key_off"
ADMIN_KEY = "admin-test-key"
ADMIN_PASSWORD = "admin-test-password"
RESULT_URL = "https://cdn.example.com/result.png"


class FakeProvider(ImageProvider):
    """Records calls; optionally blocks on a threading.Event or raises."""

    name = "fake"

    def __init__(self):
        self.calls = []
        self.uploads = []
        self.error: Optional[Exception] = None
        self.gate = None
        self.delay = 0.0
        self.image_url = RESULT_URL

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        self.calls.append(request)
        if self.gate is not None:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.gate.wait, 5)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return GenerationResult(image_url=self.image_url, request_id="req-1", duration_ms=5)

    async def upload(self, data: bytes, content_type: str) -> str:
        self.uploads.append((data, content_type))
        return "https://cdn.example.com/uploaded.png"


class FlakyStore(InMemoryKeyValueStore):
    """In-memory store that can be switched off to simulate an outage."""

    def __init__(self, clock=time.monotonic):
        super().__init__(clock=clock)
        self.down = False

    def _check(self):
        if self.down:
            raise StoreUnavailable("store is down")

    async def get(self, key):
        self._check()
        return await super().get(key)

    async def set(self, key, value, ttl=None):
        self._check()
        await super().set(key, value, ttl)

    async def delete(self, key):
        self._check()
        return await super().delete(key)

    async def list_append(self, key, item, max_len=None):
        self._check()
        await super().list_append(key, item, max_len)

    async def list_items(self, key):
        self._check()
        return await super().list_items(key)

    async def list_remove(self, key, item):
        self._check()
        return await super().list_remove(key, item)

    async def ping(self):
        self._check()
        return True


def png_base64(size=(4, 4)) -> str:
    buf = io.BytesIO()
    Image.new("RGB", size, (200, 30, 30)).save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode("ascii")


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        fal_key="fal-test-key",
        admin_key=ADMIN_KEY,
        admin_password=ADMIN_PASSWORD,
        queue_workers=2,
        queue_maxsize=10,
        sync_timeout_seconds=2,
        seed_clients=[
            ClientSeed(id="client_001", name="Demo Company", api_key=API_KEY),
            ClientSeed(id="client_002", name="Dormant Co", api_key=INACTIVE_KEY, active=False),
        ],
    )


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def app(settings, store, provider):
    return create_app(settings, store=store, provider=provider)


@pytest.fixture
def client(app):
    """TestClient; the lifespan wires the store, repositories and job queue."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_headers():
    return {"x-admin-key": ADMIN_KEY}


@pytest.fixture
def image_b64():
    return png_base64()


@pytest.fixture
def generate_body(image_b64):
    return {"apiKey": API_KEY, "userImage": image_b64, "garments": [image_b64]}


def wait_for_status(client: TestClient, job_id: str, wanted: str, timeout: float = 5.0) -> dict:
    """Poll the status endpoint the way the widget does, until ``wanted`` shows up."""
    deadline = time.monotonic() + timeout
    body = {}
    while time.monotonic() < deadline:
        r = client.get(f"/api/jobs/{job_id}/status")
        assert r.status_code == 200, r.text
        body = r.json()
        if body["status"] == wanted:
            return body
        time.sleep(0.02)
    raise AssertionError(f"job {job_id} never reached {wanted!r}, last: {body}")
