"""Synchronous generation and image pre-upload."""

import asyncio
import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from tryon.api.deps import get_clients, get_metrics, get_provider, get_settings
from tryon.api.schemas import GeneratePayload, UploadPayload, authenticate
from tryon.clients.repository import ClientRecord, ClientRepository
from tryon.config import Settings
from tryon.errors import InvalidImage, ProviderError, StoreUnavailable
from tryon.images import decode_data_url, validate_image
from tryon.latency import log_latency, now_ms
from tryon.metrics.repository import MetricsRepository
from tryon.providers.base import ImageProvider

logger = logging.getLogger(__name__)

router = APIRouter()


async def _record_generation(
    metrics: MetricsRepository,
    client: ClientRecord,
    model: str,
    status: str,
    duration_ms: int,
) -> None:
    # Metrics must never fail the generation itself
    try:
        await metrics.record_event(
            client_id=client.id,
            client_name=client.name,
            model=model,
            status=status,
            duration_ms=duration_ms,
        )
    except StoreUnavailable as exc:
        logger.warning("Could not record metrics for %s: %s", client.id, exc)


@router.post("/images/generate")
async def generate_image(
    payload: GeneratePayload,
    settings: Settings = Depends(get_settings),
    provider: ImageProvider = Depends(get_provider),
    clients: ClientRepository = Depends(get_clients),
    metrics: MetricsRepository = Depends(get_metrics),
):
    """Run one generation inside this request, bounded by ``sync_timeout_seconds``."""
    received = now_ms()
    correlation_id = payload.request_id or uuid.uuid4().hex[:8]
    log_latency(
        correlation_id, "be_request_received", 0,
        fe_click_ts=payload.fe_click_ts,
        network_latency_up_ms=received - payload.fe_click_ts if payload.fe_click_ts else None,
    )

    if not payload.api_key:
        raise HTTPException(status_code=400, detail="Missing apiKey")
    request = payload.to_generation_request(settings.max_garments)
    # Provider polling ends at the same ceiling as this request
    request.max_wait_seconds = settings.sync_timeout_seconds
    client = await authenticate(clients, payload.api_key)

    provider_start = now_ms()
    log_latency(
        correlation_id, "be_fal_request_sent", provider_start - received,
        garments_count=len(request.garments),
    )
    try:
        result = await asyncio.wait_for(
            provider.generate(request), timeout=settings.sync_timeout_seconds
        )
    except asyncio.TimeoutError:
        elapsed = now_ms() - provider_start
        log_latency(correlation_id, "be_request_error", now_ms() - received, error="timeout")
        await _record_generation(metrics, client, settings.fal_model, "error", elapsed)
        return JSONResponse(
            {
                "success": False,
                "error": f"Generation timed out after {settings.sync_timeout_seconds:.0f}s",
            },
            status_code=504,
        )
    except Exception as exc:
        # Anything escaping generate counts as a provider failure
        message = str(exc) or type(exc).__name__
        elapsed = now_ms() - provider_start
        if isinstance(exc, ProviderError):
            logger.error("Provider call failed for %s: %s", client.id, exc)
        else:
            logger.exception("Unexpected provider failure for %s", client.id)
        log_latency(correlation_id, "be_request_error", now_ms() - received, error=message)
        await _record_generation(metrics, client, settings.fal_model, "error", elapsed)
        return JSONResponse(
            {
                "success": False,
                "error": f"Generation failed: {message}",
                "details": "Provider error - please try again",
            },
            status_code=502,
        )

    provider_ms = now_ms() - provider_start
    log_latency(correlation_id, "be_fal_response_received", provider_ms, success=True)
    await _record_generation(metrics, client, settings.fal_model, "success", provider_ms)

    sent = now_ms()
    total = sent - received
    log_latency(
        correlation_id, "be_response_sent", total,
        backend_overhead_ms=total - provider_ms, fal_duration_ms=provider_ms,
    )
    return {
        "success": True,
        "resultImage": result.image_url,
        "metadata": {
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "inputsCount": {"garments": len(request.garments)},
            "timings": {
                "requestId": correlation_id,
                "be_received_ts": received,
                "be_response_sent_ts": sent,
                "total_backend_ms": total,
                "fal_duration_ms": provider_ms,
                "backend_overhead_ms": total - provider_ms,
            },
        },
    }


@router.post("/images/upload")
async def upload_image(
    payload: UploadPayload,
    provider: ImageProvider = Depends(get_provider),
    clients: ClientRepository = Depends(get_clients),
):
    """Host an image on the provider CDN so later generations can pass a URL."""
    started = now_ms()
    if not payload.api_key:
        raise HTTPException(status_code=400, detail="Missing apiKey")
    if not payload.image:
        raise HTTPException(status_code=400, detail="Missing image")
    client = await authenticate(clients, payload.api_key)

    try:
        mime, data = decode_data_url(payload.image)
        validate_image(data)
    except InvalidImage as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    try:
        url = await provider.upload(data, mime)
    except ProviderError as exc:
        logger.error("Upload failed for %s: %s", client.id, exc)
        return JSONResponse({"error": "Upload failed", "message": str(exc)}, status_code=502)

    upload_time = now_ms() - started
    logger.info("Upload completed in %dms for client %s", upload_time, client.name)
    return {"success": True, "url": url, "uploadTime": upload_time}
