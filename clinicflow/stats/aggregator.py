"""Statistics rollups over appointment collections.

Pure Python, no I/O. Implements:
- Status counts and completion rate
- Average wait (check-in to exam start) and average exam duration
- Gap-free buckets by hour of day, day of week, or ISO week
- Period-over-period comparison

Empty inputs never raise: averages come back with ``no_data`` set, and a
comparison against an empty previous period is reported as NEW.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, date, datetime, timedelta, tzinfo

from clinicflow.models.enums import AppointmentState, Granularity, Priority, Trend
from clinicflow.schemas.appointment import Appointment, as_utc
from clinicflow.schemas.queue import QueueEntry
from clinicflow.schemas.stats import (
    AverageResult,
    Bucket,
    PeriodComparison,
    StatsSummary,
    StatsWindow,
    StatusCounts,
)
from clinicflow.tracking.wait_time import annotate_queue, exam_duration, realized_wait

logger = logging.getLogger(__name__)

_DAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


def in_window(appointments: Iterable[Appointment], window: StatsWindow) -> list[Appointment]:
    """Appointments whose scheduled time falls inside ``[start, end)``."""
    return [a for a in appointments if window.contains(a.scheduled_time)]


def counts(appointments: Iterable[Appointment]) -> StatusCounts:
    """Count appointments per lifecycle state.

    ``total == completed + cancelled + other`` always holds.
    """
    by_state = Counter(a.state for a in appointments)
    return StatusCounts(
        total=sum(by_state.values()),
        scheduled=by_state[AppointmentState.SCHEDULED],
        confirmed=by_state[AppointmentState.CONFIRMED],
        checked_in=by_state[AppointmentState.CHECKED_IN],
        in_progress=by_state[AppointmentState.IN_PROGRESS],
        completed=by_state[AppointmentState.COMPLETED],
        cancelled=by_state[AppointmentState.CANCELLED],
    )


def _mean_minutes(samples: Sequence[timedelta]) -> AverageResult:
    if not samples:
        return AverageResult(minutes=0.0, samples=0, no_data=True)
    total_seconds = sum(s.total_seconds() for s in samples)
    return AverageResult(
        minutes=round(total_seconds / len(samples) / 60, 1),
        samples=len(samples),
        no_data=False,
    )


def average_wait(appointments: Iterable[Appointment]) -> AverageResult:
    """Mean check-in-to-exam wait over appointments that reached the exam room."""
    samples = [w for w in (realized_wait(a) for a in appointments) if w is not None]
    return _mean_minutes(samples)


def average_exam_duration(appointments: Iterable[Appointment]) -> AverageResult:
    """Mean exam duration over completed appointments."""
    samples = [d for d in (exam_duration(a) for a in appointments) if d is not None]
    return _mean_minutes(samples)


def _iso_weeks(first: date, last: date) -> list[tuple[int, int]]:
    """Every (iso_year, iso_week) from the week containing ``first`` to the one containing ``last``."""
    monday = first - timedelta(days=first.weekday())
    weeks: list[tuple[int, int]] = []
    while monday <= last:
        iso = monday.isocalendar()
        weeks.append((iso.year, iso.week))
        monday += timedelta(days=7)
    return weeks


def bucketize(
    appointments: Iterable[Appointment],
    granularity: Granularity,
    window: StatsWindow | None = None,
    tz: tzinfo | None = None,
    moment: Callable[[Appointment], datetime | None] | None = None,
) -> list[Bucket]:
    """Group appointment counts into fixed, gap-free buckets.

    Args:
        appointments: Appointments to count.
        granularity: HOUR (0–23), DAY (Monday=0 … Sunday=6) or WEEK (ISO week).
        window: Restricts counting to the window; for WEEK it also fixes the
            bucket range. Without a window, WEEK buckets span the data.
        tz: Local clinic timezone used to read hours and days. Timestamps are
            used as-is when omitted.
        moment: Which timestamp to bucket by (defaults to ``scheduled_time``).

    Returns:
        Buckets in ascending key order, empty ones included with count 0.
    """
    pick = moment or (lambda a: a.scheduled_time)

    stamps: list[datetime] = []
    for appointment in appointments:
        stamp = pick(appointment)
        if stamp is None:
            continue
        if window is not None and not window.contains(stamp):
            continue
        stamps.append(stamp.astimezone(tz) if tz is not None else stamp)

    if granularity == Granularity.HOUR:
        tally = Counter(s.hour for s in stamps)
        return [Bucket(key=h, label=f"{h:02d}:00", count=tally[h]) for h in range(24)]

    if granularity == Granularity.DAY:
        tally = Counter(s.weekday() for s in stamps)
        return [Bucket(key=d, label=_DAY_LABELS[d], count=tally[d]) for d in range(7)]

    tally = Counter((s.isocalendar().year, s.isocalendar().week) for s in stamps)
    if window is not None:
        start = window.start.astimezone(tz) if tz is not None else window.start
        end = window.end.astimezone(tz) if tz is not None else window.end
        weeks = _iso_weeks(start.date(), (end - timedelta(microseconds=1)).date())
    elif stamps:
        weeks = _iso_weeks(min(stamps).date(), max(stamps).date())
    else:
        weeks = []
    return [
        Bucket(key=year * 100 + week, label=f"{year}-W{week:02d}", count=tally[(year, week)])
        for year, week in weeks
    ]


def compare_periods(current: int, previous: int) -> PeriodComparison:
    """Percentage change from ``previous`` to ``current``.

    0 → 0 is a flat 0%; 0 → n is reported as NEW with no percentage.
    """
    if current < 0 or previous < 0:
        msg = f"Counts must be non-negative (current={current}, previous={previous})"
        raise ValueError(msg)

    if previous == 0:
        if current == 0:
            return PeriodComparison(current=0, previous=0, change_pct=0.0, trend=Trend.FLAT)
        return PeriodComparison(current=current, previous=0, change_pct=None, trend=Trend.NEW)

    change = round((current - previous) / previous * 100, 1)
    if change > 0:
        trend = Trend.UP
    elif change < 0:
        trend = Trend.DOWN
    else:
        trend = Trend.FLAT
    return PeriodComparison(current=current, previous=previous, change_pct=change, trend=trend)


def summarize(
    queue_snapshot: Sequence[QueueEntry],
    history: Iterable[Appointment],
    window: StatsWindow | None = None,
    now: datetime | None = None,
    threshold_minutes: int | None = None,
    tz: tzinfo | None = None,
) -> StatsSummary:
    """Build the dashboard rollup from a queue snapshot and appointment history.

    Both inputs are treated as read-only. ``history`` also serves as the
    lookup for the queued appointments' timestamps.
    """
    now = as_utc(now) if now is not None else datetime.now(UTC)
    history = list(history)
    selected = in_window(history, window) if window is not None else history
    granularity = window.granularity if window is not None else Granularity.HOUR

    lookup = {a.id: a for a in history}
    rows = annotate_queue(queue_snapshot, lookup, now, threshold_minutes)
    waits = [r.wait_minutes for r in rows if r.wait_minutes is not None]

    summary = StatsSummary(
        window=window,
        generated_at=now,
        counts=counts(selected),
        average_wait=average_wait(selected),
        average_exam_duration=average_exam_duration(selected),
        buckets=bucketize(selected, granularity, window=window, tz=tz),
        queue_length=len(queue_snapshot),
        urgent_waiting=sum(1 for e in queue_snapshot if e.priority == Priority.URGENT),
        longest_wait_minutes=max(waits) if waits else None,
        overdue=sum(1 for r in rows if r.overdue),
    )

    logger.debug(
        "Stats summary: total=%d completed=%d queue=%d overdue=%d",
        summary.counts.total,
        summary.counts.completed,
        summary.queue_length,
        summary.overdue,
    )
    return summary
