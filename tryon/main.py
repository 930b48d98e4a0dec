"""TryOn backend - FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tryon.api.router import api_router
from tryon.clients.repository import ClientRepository
from tryon.config import Settings, settings as default_settings
from tryon.errors import StoreUnavailable
from tryon.jobs.in_process_queue import InProcessQueue
from tryon.jobs.store import JobStore
from tryon.jobs.worker import make_error_handler, make_job_runner
from tryon.logging_config import setup_logging
from tryon.metrics.repository import MetricsRepository
from tryon.providers.base import ImageProvider
from tryon.providers.fal import FalProvider
from tryon.storage.kv import KeyValueStore, build_store

logger = logging.getLogger(__name__)


def _error_response(status_code: int, detail, headers=None) -> JSONResponse:
    body = dict(detail) if isinstance(detail, dict) else {"error": detail}
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    loc = [str(part) for part in first.get("loc", ()) if part != "body"]
    field = loc[-1] if loc else "body"
    return f"Invalid field '{field}': {first.get('msg', 'invalid value')}"


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return _error_response(exc.status_code, exc.detail, getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return _error_response(400, _validation_message(exc))

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable(request: Request, exc: StoreUnavailable):
        logger.error("Key-value store unavailable on %s: %s", request.url.path, exc)
        return _error_response(503, "Service temporarily unavailable")


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[KeyValueStore] = None,
    provider: Optional[ImageProvider] = None,
) -> FastAPI:
    """Build the application. ``store`` and ``provider`` override the configured ones."""
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting TryOn backend")
        logger.info("KV backend: %s", settings.kv_backend)
        logger.info("Provider model: %s", settings.fal_model)
        if not settings.fal_configured() and provider is None:
            logger.warning("FAL_KEY not configured; generations will fail")

        kv = store or build_store(settings)
        image_provider = provider or FalProvider(settings)
        job_store = JobStore(kv, ttl_seconds=settings.job_ttl_seconds)
        clients = ClientRepository(kv)
        metrics = MetricsRepository(
            kv,
            history_limit=settings.metrics_history_limit,
            recent_limit=settings.metrics_recent_limit,
        )

        seeded = await clients.seed(settings.seed_clients)
        if seeded:
            logger.info("Seeded %d client(s)", seeded)

        dispatcher = InProcessQueue(
            worker_fn=make_job_runner(job_store, image_provider, metrics, model=settings.fal_model),
            on_error=make_error_handler(job_store),
            maxsize=settings.queue_maxsize,
            workers=settings.queue_workers,
        )
        await dispatcher.start()

        # Wire collaborators for the route dependencies
        app.state.kv = kv
        app.state.provider = image_provider
        app.state.job_store = job_store
        app.state.clients = clients
        app.state.metrics = metrics
        app.state.dispatcher = dispatcher

        yield

        logger.info("Shutting down TryOn backend")
        await dispatcher.stop()
        await image_provider.close()
        await kv.close()

    app = FastAPI(
        title="TryOn Backend",
        description="Backend-for-frontend for the virtual try-on widget",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list(),
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "x-client-key", "x-admin-key"],
        max_age=86400,
    )
    app.state.settings = settings
    install_exception_handlers(app)
    app.include_router(api_router)
    return app


setup_logging(level=default_settings.log_level)
app = create_app()
