"""Async job API: submit a generation, poll its status."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from tryon.api.deps import get_clients, get_dispatcher, get_job_store, get_kv, get_settings
from tryon.api.schemas import GeneratePayload, authenticate
from tryon.clients.repository import ClientRepository
from tryon.config import Settings
from tryon.errors import QueueFull, StoreUnavailable
from tryon.jobs.dispatcher import GenerationTask, JobDispatcher
from tryon.jobs.store import JobStore, is_final, to_status_response
from tryon.latency import log_latency, now_ms
from tryon.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)

router = APIRouter()

CACHE_FINAL = "public, max-age=60"
CACHE_IN_FLUX = "no-store, no-cache, must-revalidate"


def new_job_id() -> str:
    return f"job_{uuid.uuid4().hex}"


@router.post("/jobs/submit")
async def submit_job(
    payload: GeneratePayload,
    settings: Settings = Depends(get_settings),
    store: JobStore = Depends(get_job_store),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
    clients: ClientRepository = Depends(get_clients),
):
    """Create a queued job and hand it to the background workers.

    Responds immediately; the widget polls ``poll_url`` for the outcome.
    """
    started = now_ms()
    if not payload.api_key:
        raise HTTPException(status_code=400, detail="Missing apiKey")
    request = payload.to_generation_request(settings.max_garments)
    client = await authenticate(clients, payload.api_key)

    job_id = new_job_id()
    # A store failure here propagates as 503: never hand out an id that does not exist
    job = await store.create_job(job_id, client_id=client.id, garments_count=len(request.garments))
    log_latency(
        job_id, "job_created", now_ms() - started,
        client_id=client.id, garments=len(request.garments),
    )

    try:
        await dispatcher.submit(
            GenerationTask(job_id=job_id, request=request, client_id=client.id, client_name=client.name)
        )
    except QueueFull as exc:
        logger.warning("Rejected job %s: %s", job_id, exc)
        await store.mark_error(job_id, str(exc))
        return JSONResponse(
            {"error": "Too many pending generations, try again shortly", "job_id": job_id},
            status_code=503,
        )

    response_time = now_ms() - started
    log_latency(job_id, "job_submit_response", response_time)
    return {
        "job_id": job_id,
        "status": job.status.value,
        "poll_url": f"/api/jobs/{job_id}/status",
        "timestamps": {"created_at": job.created_at},
        "_meta": {"response_time_ms": response_time},
    }


@router.get("/jobs/health")
async def jobs_health(
    kv: KeyValueStore = Depends(get_kv),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_settings),
):
    """Check that the job backend is reachable and the workers are up."""
    body = {"backend": settings.kv_backend, "connected": False, "workers_running": dispatcher.running}
    try:
        body["connected"] = await kv.ping()
    except StoreUnavailable as exc:
        body["message"] = "Key-value store connection failed"
        body["error"] = str(exc)
        return JSONResponse(body, status_code=503)
    body["message"] = "Async jobs system operational"
    return body


@router.get("/jobs/{job_id}/status")
async def get_job_status(job_id: str, store: JobStore = Depends(get_job_store)):
    """Return the job's current state.

    Finished jobs may be cached briefly; jobs still in flux must not be.
    """
    job = await store.get_job(job_id)
    if job is None:
        return JSONResponse(
            {"error": "Job not found", "job_id": job_id},
            status_code=404,
            headers={"Cache-Control": CACHE_IN_FLUX},
        )
    cache = CACHE_FINAL if is_final(job) else CACHE_IN_FLUX
    return JSONResponse(to_status_response(job), headers={"Cache-Control": cache})
