import asyncio
from datetime import datetime, timezone

import pytest

from tryon.clients.repository import ClientRecord, ClientRepository
from tryon.metrics.analytics import build_analytics
from tryon.metrics.repository import MetricEvent, MetricsRepository, parse_timestamp
from tryon.storage.kv import InMemoryKeyValueStore

pytestmark = pytest.mark.anyio


@pytest.fixture
def repo():
    return MetricsRepository(InMemoryKeyValueStore(), history_limit=3, recent_limit=2)


async def test_history_keeps_newest_events(repo):
    for i in range(5):
        await repo.record_event("client_001", "Demo", model="m", job_id=f"job_{i}")
    events = await repo.events_for("client_001")
    assert [e.job_id for e in events] == ["job_2", "job_3", "job_4"]


async def test_client_metrics_summary(repo):
    client = ClientRecord(id="client_001", name="Demo", api_key="k1")
    await repo.record_event("client_001", "Demo", model="a", timestamp="2026-01-01T10:00:00+00:00")
    await repo.record_event("client_001", "Demo", model="b", timestamp="2026-01-03T10:00:00Z")
    await repo.record_event("client_001", "Demo", model="a", type="page_view",
                            timestamp="2026-01-02T10:00:00+00:00")

    summary = await repo.client_metrics(client)
    assert summary["total_generations"] == 2
    assert summary["generations_by_model"] == {"a": 1, "b": 1}
    assert summary["last_generation"] == "2026-01-03T10:00:00Z"
    assert len(summary["recent_events"]) == 2


async def test_clear(repo):
    await repo.record_event("client_001", "Demo", model="m")
    await repo.clear("client_001")
    assert await repo.events_for("client_001") == []


def event(ts, type="generation"):
    return MetricEvent(client_id="c", timestamp=ts, type=type)


def test_analytics_buckets_by_month_and_hour():
    now = datetime(2026, 3, 15, tzinfo=timezone.utc)
    data = build_analytics(
        {
            "Acme": [event("2026-03-01T09:00:00+00:00"), event("2026-02-10T09:30:00+00:00")],
            "Globex": [event("2026-03-02T17:00:00+00:00"), event("2025-01-01T00:00:00+00:00", "page_view")],
        },
        period="3M",
        now=now,
    )
    assert [row["month"] for row in data["time_series"]] == ["2026-01", "2026-02", "2026-03"]
    assert data["time_series"][2] == {"month": "2026-03", "Acme": 1, "Globex": 1}
    assert data["hourly"][9]["count"] == 2
    assert data["ranking"][0] == {"client": "Acme", "count": 2}
    assert data["total_generations"] == 3
    # Feb had 1, Mar had 2
    assert data["growth_rate"] == 100.0


def test_analytics_handles_no_events():
    data = build_analytics({}, period="1M", now=datetime(2026, 1, 5, tzinfo=timezone.utc))
    assert data["total_generations"] == 0
    assert data["growth_rate"] == 0.0
    assert data["distribution"] == []


async def test_unreadable_stored_timestamp_sorts_as_epoch():
    kv = InMemoryKeyValueStore()
    repo = MetricsRepository(kv)
    await kv.list_append("metrics:client_001", {"client_id": "client_001", "timestamp": "1733500000000x"})
    await repo.record_event("client_001", "Demo", model="m", timestamp="2026-01-01T00:00:00+00:00")

    summary = await repo.client_metrics(ClientRecord(id="client_001", name="Demo", api_key="k1"))
    assert summary["total_generations"] == 2
    assert summary["last_generation"] == "2026-01-01T00:00:00+00:00"
    assert summary["recent_events"][-1]["timestamp"] == "1733500000000x"


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2026-01-03T10:00:00Z", datetime(2026, 1, 3, 10, tzinfo=timezone.utc)),
        ("2026-01-03T10:00:00", datetime(2026, 1, 3, 10, tzinfo=timezone.utc)),
        ("1733500000000", datetime(2024, 12, 6, 15, 46, 40, tzinfo=timezone.utc)),
        (1733500000000, datetime(2024, 12, 6, 15, 46, 40, tzinfo=timezone.utc)),
        ("garbage", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_timestamp(value, expected):
    assert parse_timestamp(value) == expected


class YieldingStore(InMemoryKeyValueStore):
    """Gives up the loop after every read, like a networked backend."""

    async def get(self, key):
        value = await super().get(key)
        await asyncio.sleep(0)
        return value

    async def list_items(self, key):
        items = await super().list_items(key)
        await asyncio.sleep(0)
        return items


async def test_concurrent_events_are_all_kept():
    repo = MetricsRepository(YieldingStore(), history_limit=10)
    await asyncio.gather(*(repo.record_event("c1", "Demo", model="m", job_id=f"job_{i}") for i in range(4)))
    events = await repo.events_for("c1")
    assert sorted(e.job_id for e in events) == ["job_0", "job_1", "job_2", "job_3"]


async def test_concurrent_registrations_all_indexed():
    clients = ClientRepository(YieldingStore())
    await asyncio.gather(*(clients.register(name=f"Client {i}") for i in range(4)))
    assert len(await clients.list_clients()) == 4
