"""FastAPI dependencies resolving collaborators wired onto ``app.state``."""

from fastapi import Request

from tryon.clients.repository import ClientRepository
from tryon.config import Settings
from tryon.jobs.dispatcher import JobDispatcher
from tryon.jobs.store import JobStore
from tryon.metrics.repository import MetricsRepository
from tryon.providers.base import ImageProvider
from tryon.storage.kv import KeyValueStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_kv(request: Request) -> KeyValueStore:
    return request.app.state.kv


def get_job_store(request: Request) -> JobStore:
    return request.app.state.job_store


def get_dispatcher(request: Request) -> JobDispatcher:
    return request.app.state.dispatcher


def get_provider(request: Request) -> ImageProvider:
    return request.app.state.provider


def get_clients(request: Request) -> ClientRepository:
    return request.app.state.clients


def get_metrics(request: Request) -> MetricsRepository:
    return request.app.state.metrics
