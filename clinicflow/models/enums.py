"""Domain enums used across schemas, the state machine and statistics.

All enums use str mixin for JSON serialization.
"""

from __future__ import annotations

from enum import Enum


class AppointmentState(str, Enum):
    """Canonical appointment lifecycle states."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"  # also reported upstream as "arrived" / "waiting"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TransitionEvent(str, Enum):
    """Events that drive an appointment through its lifecycle."""

    CONFIRM = "confirm"
    CHECK_IN = "check_in"
    START_EXAM = "start_exam"
    COMPLETE = "complete"
    CANCEL = "cancel"


class Priority(str, Enum):
    """Triage classification."""

    NORMAL = "normal"
    URGENT = "urgent"


class QueueSignal(str, Enum):
    """Queue maintenance requested by a successful transition."""

    ENQUEUE = "queue-enqueue"
    REMOVE = "queue-remove"


class Granularity(str, Enum):
    """Bucket size for throughput statistics."""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"


class Trend(str, Enum):
    """Direction of a period-over-period comparison."""

    UP = "up"
    DOWN = "down"
    FLAT = "flat"
    NEW = "new"  # previous period had no data
