"""Wait-time derivations: pure functions of timestamps."""

from clinicflow.tracking.wait_time import (
    annotate_queue,
    current_wait,
    exam_duration,
    is_over_threshold,
    realized_wait,
    wait_minutes,
)

__all__ = [
    "annotate_queue",
    "current_wait",
    "exam_duration",
    "is_over_threshold",
    "realized_wait",
    "wait_minutes",
]
