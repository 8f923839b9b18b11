from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from services.recipes.usage_analytics import aggregate_usage, resolve_period
from shared.exceptions import ValidationFailed

NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


def _row(model, created_at, cost, input_tokens=100, output_tokens=200):
    return {
        "model": model,
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "cost": cost,
        "created_at": created_at,
    }


@pytest.mark.parametrize(
    "period,days", [("day", 1), ("week", 7), ("month", 30), ("year", 365)]
)
def test_named_periods_subtract_fixed_durations(period, days):
    start, end = resolve_period(period, now=NOW)

    assert end == NOW
    assert end - start == timedelta(days=days)


def test_custom_period_requires_both_bounds():
    with pytest.raises(ValidationFailed, match="both start_date and end_date"):
        resolve_period("custom", start_date=NOW)

    with pytest.raises(ValidationFailed):
        resolve_period("custom", end_date=NOW)


@pytest.mark.parametrize("offset", [timedelta(0), timedelta(days=1)])
def test_custom_period_requires_start_before_end(offset):
    with pytest.raises(ValidationFailed, match="Start date must be before end date"):
        resolve_period("custom", start_date=NOW + offset, end_date=NOW)


def test_custom_period_treats_naive_dates_as_utc():
    start, end = resolve_period(
        "custom", start_date=datetime(2025, 1, 1), end_date=datetime(2025, 1, 31)
    )

    assert start.tzinfo is not None
    assert (end - start).days == 30


def test_aggregate_usage_with_no_rows():
    result = aggregate_usage([])

    assert result == {
        "total_generations": 0,
        "total_input_tokens": 0,
        "total_output_tokens": 0,
        "total_cost": 0,
        "models_used": {},
        "daily_breakdown": [],
    }


def test_aggregate_usage_totals_models_and_days():
    rows = [
        _row("gpt-4o-mini", NOW, Decimal("0.0006")),
        _row("gpt-4o", NOW - timedelta(days=2), Decimal("0.0125")),
        _row("gpt-4o-mini", NOW - timedelta(days=2, hours=1), None),
    ]

    result = aggregate_usage(rows)

    assert result["total_generations"] == 3
    assert result["total_input_tokens"] == 300
    assert result["total_output_tokens"] == 600
    assert result["total_cost"] == 0.0131
    assert result["models_used"] == {
        "gpt-4o-mini": {"generations": 2, "cost": 0.0006},
        "gpt-4o": {"generations": 1, "cost": 0.0125},
    }
    assert [day["date"] for day in result["daily_breakdown"]] == ["2025-03-13", "2025-03-15"]
    assert result["daily_breakdown"][0] == {"date": "2025-03-13", "generations": 2, "cost": 0.0125}


def test_daily_breakdown_is_sorted_ascending_regardless_of_row_order():
    rows = [_row("gpt-4", NOW - timedelta(days=offset), 0.01) for offset in (0, 5, 3, 1)]

    dates = [day["date"] for day in aggregate_usage(rows)["daily_breakdown"]]

    assert dates == sorted(dates)
    assert len(dates) == 4


def test_daily_buckets_use_utc_date():
    warsaw = timezone(timedelta(hours=1))
    row = _row("gpt-4", datetime(2025, 3, 15, 0, 30, tzinfo=warsaw), 0.01)

    assert aggregate_usage([row])["daily_breakdown"][0]["date"] == "2025-03-14"
