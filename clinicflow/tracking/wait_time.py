"""Wait-time derivations.

Pure functions of an appointment and a caller-supplied ``now``. No state, no
side effects: callers may invoke these at any refresh cadence. A single
refresh pass should use a single ``now`` for every appointment it touches.

``None`` means "not applicable" (e.g. asking for the wait of a patient who has
not checked in yet).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta

from clinicflow.config import settings
from clinicflow.models.enums import AppointmentState
from clinicflow.schemas.appointment import Appointment, AppointmentId, as_utc
from clinicflow.schemas.queue import QueueEntry, QueueRow

_ZERO = timedelta(0)


def current_wait(appointment: Appointment, now: datetime) -> timedelta | None:
    """Time since check-in for an appointment still waiting to be seen."""
    if appointment.state != AppointmentState.CHECKED_IN or appointment.checked_in_at is None:
        return None
    # Clock skew between devices can put check-in slightly in the future
    return max(as_utc(now) - appointment.checked_in_at, _ZERO)


def realized_wait(appointment: Appointment) -> timedelta | None:
    """Check-in to exam start, for appointments that reached the exam room."""
    if appointment.checked_in_at is None or appointment.exam_started_at is None:
        return None
    return max(appointment.exam_started_at - appointment.checked_in_at, _ZERO)


def exam_duration(appointment: Appointment) -> timedelta | None:
    """Exam start to completion, for completed appointments."""
    if appointment.state != AppointmentState.COMPLETED:
        return None
    if appointment.exam_started_at is None or appointment.completed_at is None:
        return None
    return max(appointment.completed_at - appointment.exam_started_at, _ZERO)


def wait_minutes(appointment: Appointment, now: datetime) -> int | None:
    """Current wait in whole minutes, for display."""
    wait = current_wait(appointment, now)
    if wait is None:
        return None
    return int(wait.total_seconds() // 60)


def is_over_threshold(
    appointment: Appointment,
    now: datetime,
    threshold_minutes: int | None = None,
) -> bool:
    """True when a waiting appointment has waited strictly longer than the threshold.

    Defaults to ``settings.queue.wait_threshold_minutes`` (15).
    """
    if threshold_minutes is None:
        threshold_minutes = settings.queue.wait_threshold_minutes
    wait = current_wait(appointment, now)
    if wait is None:
        return False
    return wait > timedelta(minutes=threshold_minutes)


def annotate_queue(
    entries: Iterable[QueueEntry],
    appointments: Mapping[AppointmentId, Appointment],
    now: datetime,
    threshold_minutes: int | None = None,
) -> list[QueueRow]:
    """Attach rank and wait fields to an already ordered queue snapshot.

    Entries whose appointment is unknown are still listed, without wait data.
    """
    rows: list[QueueRow] = []
    for rank, entry in enumerate(entries, start=1):
        appointment = appointments.get(entry.appointment_id)
        if appointment is None:
            rows.append(QueueRow(entry=entry, rank=rank))
            continue
        rows.append(QueueRow(
            entry=entry,
            rank=rank,
            wait=current_wait(appointment, now),
            wait_minutes=wait_minutes(appointment, now),
            overdue=is_over_threshold(appointment, now, threshold_minutes),
            doctor_id=appointment.doctor_id,
            patient_name=appointment.patient_name,
        ))
    return rows
