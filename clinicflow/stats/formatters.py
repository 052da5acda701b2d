"""Display formatting for dashboard values."""

from __future__ import annotations

from datetime import timedelta

from clinicflow.models.enums import Trend
from clinicflow.schemas.stats import AverageResult, PeriodComparison


def format_wait(value: timedelta | int | None) -> str:
    """Format a wait as whole minutes: timedelta(minutes=12, seconds=40) -> "12 min"."""
    if value is None:
        return "-"
    if isinstance(value, timedelta):
        minutes = int(value.total_seconds() // 60)
    else:
        minutes = value
    if minutes >= 60:
        hours, rest = divmod(minutes, 60)
        return f"{hours} h {rest} min" if rest else f"{hours} h"
    return f"{minutes} min"


def format_average(result: AverageResult) -> str:
    """Format an average: "12.5 min", or "no data" for an empty sample."""
    if result.no_data:
        return "no data"
    return f"{result.minutes:g} min"


def format_percentage(value: int | float | None) -> str:
    """Format an already-scaled percentage: 66.7 -> "67%"."""
    if value is None:
        return "-"
    return f"{round(value)}%"


def format_delta(comparison: PeriodComparison) -> str:
    """Arrowed change label: "↑ 8%", "↓ 3%", "0%", or "new"."""
    if comparison.trend == Trend.NEW:
        return "new"
    pct = abs(comparison.change_pct or 0.0)
    if comparison.trend == Trend.UP:
        return f"↑ {pct:g}%"
    if comparison.trend == Trend.DOWN:
        return f"↓ {pct:g}%"
    return "0%"
