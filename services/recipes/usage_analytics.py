# services/recipes/usage_analytics.py
"""
AI usage analytics: period resolution and aggregation over `ai_usage` rows.

Aggregation is a pure function over already-fetched rows so the totals,
per-model and per-day passes can be exercised without a database.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional

from shared.exceptions import ValidationFailed

PERIOD_DURATIONS = {
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "year": timedelta(days=365),
}

DEFAULT_PERIOD = "month"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_period(
    period: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> tuple[datetime, datetime]:
    """Turn a named period or custom bounds into a UTC (start, end) range"""
    if period == "custom":
        if start_date is None or end_date is None:
            raise ValidationFailed("Custom period requires both start_date and end_date")
        start, end = _as_utc(start_date), _as_utc(end_date)
        if start >= end:
            raise ValidationFailed("Start date must be before end date")
        return start, end

    duration = PERIOD_DURATIONS.get(period)
    if duration is None:
        raise ValidationFailed(f"Invalid period: {period}")

    end = _as_utc(now) if now else datetime.now(timezone.utc)
    return end - duration, end


def _to_float(value: Any) -> float:
    # NUMERIC columns come back from asyncpg as Decimal
    return float(value) if value is not None else 0.0


def aggregate_usage(rows: Iterable[dict[str, Any]]) -> dict[str, Any]:
    """
    Aggregate usage rows into totals, per-model and per-day buckets.

    Rows need `model`, `input_tokens`, `output_tokens`, `cost` (may be None)
    and `created_at`. Days are keyed by the UTC ISO date and returned in
    ascending order.
    """
    total_generations = 0
    total_input_tokens = 0
    total_output_tokens = 0
    total_cost = 0.0
    models_used: dict[str, dict[str, Any]] = {}
    daily: dict[str, dict[str, Any]] = {}

    for row in rows:
        cost = _to_float(row.get("cost"))
        total_generations += 1
        total_input_tokens += row.get("input_tokens") or 0
        total_output_tokens += row.get("output_tokens") or 0
        total_cost += cost

        model_bucket = models_used.setdefault(row["model"], {"generations": 0, "cost": 0.0})
        model_bucket["generations"] += 1
        model_bucket["cost"] += cost

        day = _as_utc(row["created_at"]).date().isoformat()
        day_bucket = daily.setdefault(day, {"date": day, "generations": 0, "cost": 0.0})
        day_bucket["generations"] += 1
        day_bucket["cost"] += cost

    for bucket in models_used.values():
        bucket["cost"] = round(bucket["cost"], 4)
    for bucket in daily.values():
        bucket["cost"] = round(bucket["cost"], 4)

    return {
        "total_generations": total_generations,
        "total_input_tokens": total_input_tokens,
        "total_output_tokens": total_output_tokens,
        "total_cost": round(total_cost, 4),
        "models_used": models_used,
        "daily_breakdown": [daily[day] for day in sorted(daily)],
    }
