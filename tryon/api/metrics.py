"""Usage metrics: dashboard reads, event ingestion, analytics."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from tryon.api.deps import get_clients, get_metrics, get_settings
from tryon.api.schemas import IngestEvent
from tryon.auth.admin import is_admin, require_admin
from tryon.clients.repository import ClientRepository
from tryon.config import Settings
from tryon.metrics.analytics import build_analytics
from tryon.metrics.repository import MetricsRepository, parse_timestamp

router = APIRouter()


@router.get("/metrics")
async def get_usage_metrics(
    request: Request,
    x_admin_key: Optional[str] = Header(None),
    x_client_key: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
    clients: ClientRepository = Depends(get_clients),
    metrics: MetricsRepository = Depends(get_metrics),
):
    """All clients for admins, a single client for ``x-client-key``."""
    if is_admin(request, settings, x_admin_key):
        data = await metrics.all_metrics(await clients.list_clients())
        return {"success": True, "data": data}

    if x_client_key:
        client = await clients.get_by_api_key(x_client_key)
        if client is None:
            raise HTTPException(status_code=404, detail="Client not found")
        return {"success": True, "data": await metrics.client_metrics(client)}

    raise HTTPException(
        status_code=401,
        detail="Missing authentication. Provide x-admin-key or x-client-key header",
    )


@router.post("/ingest")
async def ingest_event(
    body: IngestEvent,
    x_client_key: Optional[str] = Header(None),
    clients: ClientRepository = Depends(get_clients),
    metrics: MetricsRepository = Depends(get_metrics),
):
    """Record an event reported by a widget or a client backend."""
    if not x_client_key:
        raise HTTPException(status_code=401, detail="Missing x-client-key header")
    if not body.type or not body.timestamp:
        raise HTTPException(status_code=400, detail="Missing required fields: type, timestamp")
    when = parse_timestamp(body.timestamp)
    if when is None:
        raise HTTPException(
            status_code=400,
            detail="Invalid timestamp: expected ISO-8601 or epoch milliseconds",
        )
    client = await clients.validate_api_key(x_client_key)
    if client is None:
        raise HTTPException(status_code=401, detail="Invalid or inactive client key")

    event = await metrics.record_event(
        client_id=client.id,
        client_name=client.name,
        model=body.model,
        type=body.type,
        timestamp=when.isoformat(),
    )
    return {"success": True, "message": "Event recorded", "event_id": event.id}


@router.get("/ingest")
async def ingest_info():
    return {
        "status": "ok",
        "endpoint": "ingest",
        "description": "POST events with x-client-key header",
    }


@router.get("/admin/analytics", dependencies=[Depends(require_admin)])
async def analytics(
    clients: Optional[str] = None,
    period: str = "6M",
    repo: ClientRepository = Depends(get_clients),
    metrics: MetricsRepository = Depends(get_metrics),
):
    if not clients:
        raise HTTPException(status_code=400, detail="Missing clients parameter")
    wanted = [k.strip() for k in clients.split(",") if k.strip()]
    events_by_client = {}
    for api_key in wanted:
        client = await repo.get_by_api_key(api_key)
        if client is not None:
            events_by_client[client.name] = await metrics.events_for(client.id)
    return build_analytics(events_by_client, period=period)
