"""Per-client usage events.

Each client has an append-only event list under ``metrics:{client_id}``,
capped at ``history_limit`` entries (oldest dropped first).
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from tryon.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)

METRICS_PREFIX = "metrics:"
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string or epoch milliseconds. Returns None if neither."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) or (isinstance(value, str) and value.strip().isdigit()):
        try:
            return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        ts = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


class MetricEvent(BaseModel):
    id: str = Field(default_factory=lambda: f"evt_{uuid.uuid4().hex[:16]}")
    type: str = "generation"
    timestamp: str = Field(default_factory=_utc_now_iso)
    model: str = "unknown"
    client_id: str
    client_name: str = "Unknown"
    status: str = "success"
    job_id: Optional[str] = None
    duration_ms: Optional[int] = None

    def parsed_timestamp(self) -> datetime:
        """Event time in UTC; unreadable timestamps sort as the epoch."""
        return parse_timestamp(self.timestamp) or EPOCH


class MetricsRepository:
    def __init__(self, kv: KeyValueStore, history_limit: int = 1000, recent_limit: int = 50):
        self._kv = kv
        self._history_limit = history_limit
        self._recent_limit = recent_limit

    @staticmethod
    def _key(client_id: str) -> str:
        return f"{METRICS_PREFIX}{client_id}"

    async def record_event(
        self,
        client_id: str,
        client_name: str,
        model: str,
        status: str = "success",
        type: str = "generation",
        timestamp: Optional[str] = None,
        job_id: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> MetricEvent:
        fields: Dict[str, Any] = {
            "client_id": client_id,
            "client_name": client_name,
            "model": model,
            "status": status,
            "type": type,
            "job_id": job_id,
            "duration_ms": duration_ms,
        }
        if timestamp:
            fields["timestamp"] = timestamp
        event = MetricEvent(**fields)

        await self._kv.list_append(
            self._key(client_id), event.model_dump(), max_len=self._history_limit
        )
        logger.info("Recorded %s event %s for %s", event.type, event.id, client_id)
        return event

    async def events_for(self, client_id: str) -> List[MetricEvent]:
        """Events in insertion order."""
        raw = await self._kv.list_items(self._key(client_id))
        return [MetricEvent.model_validate(e) for e in raw]

    async def clear(self, client_id: str) -> None:
        await self._kv.delete(self._key(client_id))

    async def client_metrics(self, client) -> Dict[str, Any]:
        events = await self.events_for(client.id)
        generations = [e for e in events if e.type == "generation"]
        by_model: Dict[str, int] = {}
        for e in generations:
            by_model[e.model] = by_model.get(e.model, 0) + 1
        newest_first = sorted(events, key=lambda e: e.parsed_timestamp(), reverse=True)
        return {
            "client_key": client.api_key,
            "client_id": client.id,
            "client_name": client.name,
            "total_generations": len(generations),
            "last_generation": newest_first[0].timestamp if newest_first else None,
            "generations_by_model": by_model,
            "recent_events": [e.model_dump() for e in newest_first[: self._recent_limit]],
        }

    async def all_metrics(self, clients) -> Dict[str, Any]:
        per_client = [await self.client_metrics(c) for c in clients]
        per_client.sort(key=lambda m: m["total_generations"], reverse=True)
        by_model: Dict[str, int] = {}
        for m in per_client:
            for model, count in m["generations_by_model"].items():
                by_model[model] = by_model.get(model, 0) + count
        return {
            "clients": per_client,
            "totals": {
                "total_clients": len(per_client),
                "total_generations": sum(m["total_generations"] for m in per_client),
                "generations_by_model": by_model,
            },
        }
