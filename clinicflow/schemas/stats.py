"""Pydantic schemas for statistics requests and results.

Pure data classes, no business logic. Returned by the aggregator functions.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from clinicflow.models.enums import Granularity, Trend
from clinicflow.schemas.appointment import as_utc


class StatsWindow(BaseModel):
    """Aggregation window: ``[start, end)`` plus bucket granularity. Never persisted."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    granularity: Granularity = Granularity.DAY

    @field_validator("start", "end")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    @model_validator(mode="after")
    def check_bounds(self) -> StatsWindow:
        if self.end <= self.start:
            msg = f"Window end ({self.end.isoformat()}) must be after start ({self.start.isoformat()})"
            raise ValueError(msg)
        return self

    def contains(self, moment: datetime) -> bool:
        return self.start <= as_utc(moment) < self.end


class StatusCounts(BaseModel):
    """Appointment counts by lifecycle state."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    scheduled: int = 0
    confirmed: int = 0
    checked_in: int = 0
    in_progress: int = 0
    completed: int = 0
    cancelled: int = 0

    @property
    def other(self) -> int:
        """Everything that is neither completed nor cancelled."""
        return self.scheduled + self.confirmed + self.checked_in + self.in_progress

    @property
    def completion_rate(self) -> int:
        """Completed share of the total as a rounded integer percent."""
        if self.total == 0:
            return 0
        return round(self.completed / self.total * 100)


class AverageResult(BaseModel):
    """Mean of a set of duration samples, in minutes.

    ``no_data`` is set (and ``minutes`` is 0) when there were no samples.
    """

    model_config = ConfigDict(frozen=True)

    minutes: float = 0.0
    samples: int = 0
    no_data: bool = True


class Bucket(BaseModel):
    """One chart bucket. Empty buckets are present with count 0."""

    model_config = ConfigDict(frozen=True)

    key: int
    label: str
    count: int = 0


class PeriodComparison(BaseModel):
    """Percentage change between two period counts."""

    model_config = ConfigDict(frozen=True)

    current: int
    previous: int
    change_pct: float | None = Field(default=0.0, description="None when the previous period was empty")
    trend: Trend = Trend.FLAT

    @property
    def is_new(self) -> bool:
        return self.trend == Trend.NEW


class StatsSummary(BaseModel):
    """Dashboard rollup for one window."""

    model_config = ConfigDict(frozen=True)

    window: StatsWindow | None = None
    generated_at: datetime
    counts: StatusCounts
    average_wait: AverageResult
    average_exam_duration: AverageResult
    buckets: list[Bucket] = Field(default_factory=list)
    queue_length: int = 0
    urgent_waiting: int = 0
    longest_wait_minutes: int | None = None
    overdue: int = 0
