"""Health check endpoint (also used as a warm-up ping)."""

import platform
import sys
import time

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from tryon.api.deps import get_provider, get_settings
from tryon.config import Settings
from tryon.providers.base import ImageProvider

router = APIRouter()

_STARTED = time.monotonic()


@router.get("/health")
async def health_check(
    settings: Settings = Depends(get_settings),
    provider: ImageProvider = Depends(get_provider),
):
    """Service liveness; never calls external services."""
    started = time.perf_counter()
    checks = {
        "uptime_seconds": round(time.monotonic() - _STARTED, 1),
        "provider": provider.name,
        "fal_configured": settings.fal_configured(),
        "kv_backend": settings.kv_backend,
        "python_version": sys.version.split()[0],
        "platform": platform.platform(),
    }
    return JSONResponse(
        {
            "status": "healthy",
            "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
            "checks": checks,
        },
        headers={"Cache-Control": "no-store, no-cache, must-revalidate"},
    )


@router.head("/health")
async def health_ping():
    return Response(status_code=200)
