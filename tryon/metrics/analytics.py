"""Dashboard analytics computed from per-client event lists."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from tryon.metrics.repository import MetricEvent

PERIOD_MONTHS = {
    "1M": 1,
    "3M": 3,
    "6M": 6,
    "1Y": 12,
    "ALL": 24,
}

# Estimated revenue per generation, USD
REVENUE_PER_GENERATION = 0.04


def _month_keys(months: int, now: datetime) -> List[str]:
    keys = []
    year, month = now.year, now.month
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def build_analytics(
    events_by_client: Dict[str, List[MetricEvent]],
    period: str = "6M",
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Aggregate generation events keyed by client display name."""
    now = now or datetime.now(timezone.utc)
    months = PERIOD_MONTHS.get(period, 6)
    month_keys = _month_keys(months, now)
    series = {key: {"month": key} for key in month_keys}
    hourly = [{"hour": h, "count": 0} for h in range(24)]
    ranking = []

    for name, events in events_by_client.items():
        generations = [e for e in events if e.type == "generation"]
        ranking.append({"client": name, "count": len(generations)})
        for event in generations:
            ts = event.parsed_timestamp().astimezone(timezone.utc)
            key = f"{ts.year:04d}-{ts.month:02d}"
            if key in series:
                series[key][name] = series[key].get(name, 0) + 1
                hourly[ts.hour]["count"] += 1

    ranking.sort(key=lambda r: r["count"], reverse=True)
    total = sum(r["count"] for r in ranking)
    distribution = [
        {
            "client": r["client"],
            "count": r["count"],
            "percentage": round(100.0 * r["count"] / total, 1) if total else 0.0,
        }
        for r in ranking
    ]

    time_series = [series[key] for key in month_keys]

    def month_total(row: Dict[str, Any]) -> int:
        return sum(v for k, v in row.items() if k != "month")

    last = month_total(time_series[-1]) if time_series else 0
    prev = month_total(time_series[-2]) if len(time_series) > 1 else 0
    growth = round((last - prev) / prev * 100, 1) if prev else 0.0

    return {
        "time_series": time_series,
        "hourly": hourly,
        "ranking": ranking,
        "distribution": distribution,
        "total_generations": total,
        "avg_daily": round(total / (months * 30)),
        "avg_revenue": round(total * REVENUE_PER_GENERATION, 2),
        "growth_rate": growth,
    }
