"""Application configuration via environment variables."""

from typing import List

from pydantic import BaseModel
from pydantic_settings import BaseSettings


class ClientSeed(BaseModel):
    """A client registered at startup (SEED_CLIENTS, JSON list)."""
    id: str
    name: str
    api_key: str
    active: bool = True


class Settings(BaseSettings):
    # Key-value store
    kv_backend: str = "memory"  # "memory" or "redis"
    redis_url: str = "redis://localhost:6379/0"
    job_ttl_seconds: int = 3600

    # fal.ai provider
    fal_key: str = ""
    fal_model: str = "fal-ai/bytedance/seedream/v4.5/edit"
    fal_queue_url: str = "https://queue.fal.run"
    fal_storage_url: str = "https://rest.alpha.fal.ai/storage/upload/initiate"
    fal_image_size: str = "auto_4K"
    fal_request_timeout_seconds: float = 60.0
    provider_max_wait_seconds: float = 180.0

    # Provider polling backoff
    poll_initial_interval: float = 1.0
    poll_multiplier: float = 1.5
    poll_max_interval: float = 3.0

    # Generation
    sync_timeout_seconds: float = 60.0
    max_garments: int = 4

    # Background queue
    queue_maxsize: int = 100
    queue_workers: int = 4

    # Metrics
    metrics_history_limit: int = 1000
    metrics_recent_limit: int = 50
    client_usage_limit: int = 5000

    # Admin access (empty disables the corresponding method)
    admin_key: str = ""
    admin_password: str = ""
    cookie_secure: bool = False  # set in production (HTTPS only)

    cors_origins: str = "*"
    seed_clients: List[ClientSeed] = []
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    def cors_origins_list(self) -> List[str]:
        if not self.cors_origins or self.cors_origins.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def fal_configured(self) -> bool:
        return bool(self.fal_key.strip())


settings = Settings()
