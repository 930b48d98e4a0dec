"""Aggregate all API routers under /api."""

from fastapi import APIRouter

from tryon.api.auth import router as auth_router
from tryon.api.clients import router as clients_router
from tryon.api.health import router as health_router
from tryon.api.images import router as images_router
from tryon.api.jobs import router as jobs_router
from tryon.api.metrics import router as metrics_router

api_router = APIRouter(prefix="/api")
api_router.include_router(health_router, tags=["health"])
api_router.include_router(jobs_router, tags=["jobs"])
api_router.include_router(images_router, tags=["images"])
api_router.include_router(metrics_router, tags=["metrics"])
api_router.include_router(clients_router, tags=["clients"])
api_router.include_router(auth_router, tags=["auth"])
