import threading

from fastapi.testclient import TestClient

from conftest import API_KEY, INACTIVE_KEY, RESULT_URL, wait_for_status
from tryon.errors import ProviderError
from tryon.main import create_app


def test_submit_returns_queued_job(client, generate_body):
    r = client.post("/api/jobs/submit", json=generate_body)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["job_id"].startswith("job_")
    assert body["status"] == "queued"
    assert body["poll_url"] == f"/api/jobs/{body['job_id']}/status"
    assert isinstance(body["timestamps"]["created_at"], int)
    assert "response_time_ms" in body["_meta"]


def test_job_goes_processing_then_done(client, provider, generate_body):
    provider.gate = threading.Event()
    job_id = client.post("/api/jobs/submit", json=generate_body).json()["job_id"]

    processing = wait_for_status(client, job_id, "processing")
    assert processing["image_url"] is None
    assert processing["timestamps"]["fal_start"] is not None
    assert processing["timestamps"]["completed_at"] is None

    provider.gate.set()
    done = wait_for_status(client, job_id, "done")
    assert done["image_url"] == RESULT_URL
    assert done["error"] is None
    ts = done["timestamps"]
    assert ts["created_at"] <= ts["fal_start"] <= ts["fal_end"] <= ts["completed_at"]
    assert len(provider.calls) == 1
    assert len(provider.calls[0].garments) == 1


def test_provider_failure_becomes_error_status(client, provider, generate_body):
    provider.error = ProviderError("FAL API error: 500 - upstream down")
    job_id = client.post("/api/jobs/submit", json=generate_body).json()["job_id"]

    body = wait_for_status(client, job_id, "error")
    assert "upstream down" in body["error"]
    assert body["image_url"] is None


def test_url_inputs_are_accepted(client, provider):
    provider.gate = None
    r = client.post(
        "/api/jobs/submit",
        json={
            "apiKey": API_KEY,
            "userImageUrl": "https://cdn.example.com/me.jpg",
            "garmentUrls": ["https://cdn.example.com/shirt.png", "https://cdn.example.com/hat.png"],
        },
    )
    assert r.status_code == 200
    wait_for_status(client, r.json()["job_id"], "done")
    assert provider.calls[0].user_image == "https://cdn.example.com/me.jpg"
    assert len(provider.calls[0].garments) == 2


def test_no_garments_rejected(client, provider, image_b64):
    r = client.post("/api/jobs/submit", json={"apiKey": API_KEY, "userImage": image_b64, "garments": []})
    assert r.status_code == 400
    assert r.json()["error"] == "At least one garment is required"
    assert provider.calls == []


def test_too_many_garments_rejected(client, provider, image_b64):
    body = {"apiKey": API_KEY, "userImage": image_b64, "garments": [image_b64] * 5}
    r = client.post("/api/jobs/submit", json=body)
    assert r.status_code == 400
    assert r.json()["error"] == "Maximum 4 garments allowed"
    assert provider.calls == []


def test_missing_user_image(client, image_b64):
    r = client.post("/api/jobs/submit", json={"apiKey": API_KEY, "garments": [image_b64]})
    assert r.status_code == 400
    assert r.json()["error"] == "Missing userImage or userImageUrl"


def test_missing_api_key(client, generate_body):
    generate_body.pop("apiKey")
    r = client.post("/api/jobs/submit", json=generate_body)
    assert r.status_code == 400
    assert r.json()["error"] == "Missing apiKey"


def test_unknown_and_inactive_keys_rejected(client, provider, generate_body):
    for key in ("nope", INACTIVE_KEY):
        generate_body["apiKey"] = key
        r = client.post("/api/jobs/submit", json=generate_body)
        assert r.status_code == 401
        assert r.json()["error"] == "Invalid or inactive API key"
    assert provider.calls == []


def test_unknown_job_is_404(client):
    r = client.get("/api/jobs/job_doesnotexist/status")
    assert r.status_code == 404
    assert r.json() == {"error": "Job not found", "job_id": "job_doesnotexist"}
    assert r.headers["cache-control"] == "no-store, no-cache, must-revalidate"


def test_cache_headers_follow_job_state(client, provider, generate_body):
    provider.gate = threading.Event()
    job_id = client.post("/api/jobs/submit", json=generate_body).json()["job_id"]

    r = client.get(f"/api/jobs/{job_id}/status")
    assert r.headers["cache-control"] == "no-store, no-cache, must-revalidate"

    provider.gate.set()
    wait_for_status(client, job_id, "done")
    r = client.get(f"/api/jobs/{job_id}/status")
    assert r.headers["cache-control"] == "public, max-age=60"


def test_submit_when_store_down_is_503_without_job(client, store, provider, generate_body):
    store.down = True
    r = client.post("/api/jobs/submit", json=generate_body)
    assert r.status_code == 503
    assert "job_id" not in r.json()
    assert provider.calls == []


def test_status_when_store_down_is_503(client, store):
    store.down = True
    r = client.get("/api/jobs/job_1/status")
    assert r.status_code == 503
    assert r.json()["error"] == "Service temporarily unavailable"


def test_jobs_health(client, store):
    r = client.get("/api/jobs/health")
    assert r.status_code == 200
    assert r.json()["connected"] is True
    assert r.json()["workers_running"] is True

    store.down = True
    r = client.get("/api/jobs/health")
    assert r.status_code == 503
    assert r.json()["connected"] is False


def test_full_queue_rejects_and_fails_the_job(settings, store, provider, generate_body):
    settings.queue_maxsize = 1
    settings.queue_workers = 1
    provider.gate = threading.Event()
    app = create_app(settings, store=store, provider=provider)

    with TestClient(app) as c:
        try:
            first = c.post("/api/jobs/submit", json=generate_body)
            wait_for_status(c, first.json()["job_id"], "processing")

            # The worker is busy, so one more job fits in the queue
            responses = [c.post("/api/jobs/submit", json=generate_body) for _ in range(3)]
            accepted = [first] + [r for r in responses if r.status_code == 200]
            rejected = [r for r in responses if r.status_code == 503]
            assert len(accepted) == 2
            assert len(rejected) == 2

            body = rejected[0].json()
            assert body["error"] == "Too many pending generations, try again shortly"
            status = c.get(f"/api/jobs/{body['job_id']}/status").json()
            assert status["status"] == "error"
            assert "full" in status["error"]
            assert status["image_url"] is None
        finally:
            provider.gate.set()

        for r in accepted:
            wait_for_status(c, r.json()["job_id"], "done")
