"""Structured latency logging.

Each entry is a single JSON object on the ``tryon.latency`` logger so that
log drains can correlate phases of one request by ``request_id``.
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("tryon.latency")


def now_ms() -> int:
    """Wall-clock milliseconds since the epoch."""
    return int(time.time() * 1000)


def log_latency(request_id: str, phase: str, duration_ms: float = 0, **metadata: Any) -> None:
    entry = {
        "type": "latency",
        "request_id": request_id,
        "phase": phase,
        "duration_ms": round(duration_ms, 2),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if metadata:
        entry["metadata"] = metadata
    logger.info(json.dumps(entry, default=str))
