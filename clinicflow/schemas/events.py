"""SystemEvent schema: informational events emitted by the clinic flow.

Subscribers (alert engine, notification adapters, audit sinks) consume these
asynchronously. Delivery format beyond this schema is up to the subscriber.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """All event types emitted by clinicflow."""

    # Lifecycle
    APPOINTMENT_REGISTERED = "appointment.registered"
    APPOINTMENT_TRANSITIONED = "appointment.transitioned"
    APPOINTMENT_REPRIORITIZED = "appointment.reprioritized"

    # Queue
    QUEUE_ENQUEUED = "queue.enqueued"
    QUEUE_REMOVED = "queue.removed"

    # Wait tracking
    WAIT_THRESHOLD_EXCEEDED = "wait.threshold_exceeded"

    # Statistics
    STATS_REFRESHED = "stats.refreshed"

    # Backend
    BACKEND_ERROR = "backend.error"

    # System
    SYSTEM_STARTUP = "system.startup"
    SYSTEM_SHUTDOWN = "system.shutdown"


class SystemEvent(BaseModel):
    """Immutable event record."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    appointment_id: int | str | None = None
    actor_id: str | None = None

    data: dict[str, Any] = Field(default_factory=dict)

    source_module: str | None = Field(default=None, description="Module that emitted this event")

    model_config = {"frozen": True}
