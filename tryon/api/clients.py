"""Client management (admin only)."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from tryon.api.deps import get_clients, get_metrics, get_settings
from tryon.api.schemas import ClientCreate
from tryon.auth.admin import require_admin
from tryon.clients.repository import ClientRepository
from tryon.config import Settings
from tryon.metrics.repository import MetricsRepository

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("/clients")
async def list_clients(
    settings: Settings = Depends(get_settings),
    clients: ClientRepository = Depends(get_clients),
    metrics: MetricsRepository = Depends(get_metrics),
):
    out = []
    for client in await clients.list_clients():
        usage = await metrics.client_metrics(client)
        out.append({
            "id": client.id,
            "name": client.name,
            "email": client.email,
            "api_key": client.api_key,
            "active": client.active,
            "created_at": client.created_at,
            "usage_count": usage["total_generations"],
            "limit": settings.client_usage_limit,
            "last_generation": usage["last_generation"],
        })
    return {"success": True, "clients": out}


@router.post("/clients")
async def create_client(
    body: ClientCreate,
    settings: Settings = Depends(get_settings),
    clients: ClientRepository = Depends(get_clients),
):
    if not body.name:
        raise HTTPException(status_code=400, detail="Missing required field: name")
    client = await clients.register(name=body.name, email=body.email)
    return {
        "success": True,
        "message": "Client registered",
        "client": {
            "id": client.id,
            "name": client.name,
            "email": client.email,
            "api_key": client.api_key,
            "created_at": client.created_at,
            "usage_count": 0,
            "limit": settings.client_usage_limit,
        },
    }


@router.delete("/clients")
async def delete_client(
    clientKey: Optional[str] = None,
    clients: ClientRepository = Depends(get_clients),
    metrics: MetricsRepository = Depends(get_metrics),
):
    if not clientKey:
        raise HTTPException(status_code=400, detail="Missing clientKey query parameter")
    client = await clients.delete(clientKey)
    if client is None:
        raise HTTPException(status_code=404, detail="Client not found")
    await metrics.clear(client.id)
    return {"success": True, "message": "Client deleted"}
