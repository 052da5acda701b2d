"""Statistics rollups: counts, averages, buckets, period comparison."""

from clinicflow.stats.aggregator import (
    average_exam_duration,
    average_wait,
    bucketize,
    compare_periods,
    counts,
    in_window,
    summarize,
)

__all__ = [
    "average_exam_duration",
    "average_wait",
    "bucketize",
    "compare_periods",
    "counts",
    "in_window",
    "summarize",
]
