"""Queue entry and annotated queue row schemas."""

from __future__ import annotations

from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict

from clinicflow.models.enums import Priority
from clinicflow.schemas.appointment import AppointmentId


class QueueEntry(BaseModel):
    """Projection of an appointment while it waits to be seen.

    ``position`` is an arrival sequence number owned by the queue, never a
    display index.
    """

    model_config = ConfigDict(frozen=True)

    appointment_id: AppointmentId
    priority: Priority
    position: int
    enqueued_at: datetime


class QueueRow(BaseModel):
    """A queue entry with its display rank and derived wait fields."""

    model_config = ConfigDict(frozen=True)

    entry: QueueEntry
    rank: int  # 1-based, as shown on screen
    wait: timedelta | None = None
    wait_minutes: int | None = None
    overdue: bool = False
    doctor_id: AppointmentId | None = None
    patient_name: str | None = None
