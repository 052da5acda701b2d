"""Reproducible sample appointments for demos, empty-state screens and tests.

Records are produced by driving the real state machine, so every generated
appointment satisfies the lifecycle invariants. Nothing here is used by the
decision logic itself.
"""

from __future__ import annotations

import random
from datetime import UTC, date, datetime, time, timedelta, tzinfo

from clinicflow.lifecycle.fsm import AppointmentStateMachine
from clinicflow.models.enums import Priority, TransitionEvent
from clinicflow.schemas.appointment import Appointment

PATIENT_NAMES = (
    "Max", "Bella", "Luna", "Charlie", "Milo", "Daisy", "Rocky", "Coco",
    "Oliver", "Nala", "Leo", "Lola", "Simba", "Ruby", "Toby", "Mochi",
)
APPOINTMENT_TYPES = ("check-up", "vaccination", "sick visit", "surgery", "dental", "follow-up")
DOCTOR_IDS = (1, 2, 3)
ROOM_IDS = (101, 102, 103, 104)

SLOT_MINUTES = 20


def generate_appointments(
    day: date,
    count: int = 24,
    seed: int = 0,
    now: datetime | None = None,
    tz: tzinfo = UTC,
    opening: time = time(8, 0),
    urgent_rate: float = 0.15,
    cancel_rate: float = 0.1,
) -> list[Appointment]:
    """Build ``count`` appointments in consecutive slots on ``day``.

    Args:
        day: Clinic day to fill.
        count: Number of appointments.
        seed: Random seed; the same inputs always give the same records.
        now: Point in time the day has progressed to. Slots after ``now``
            stay scheduled/confirmed; earlier ones move through check-in,
            exam and completion. Defaults to the end of ``day``.
        tz: Clinic timezone for slot times.
        opening: First slot of the day.
        urgent_rate: Share of appointments triaged urgent.
        cancel_rate: Share of appointments cancelled before arrival.
    """
    rng = random.Random(seed)
    machine = AppointmentStateMachine()
    first_slot = datetime.combine(day, opening, tzinfo=tz)
    now = now or datetime.combine(day + timedelta(days=1), time(0, 0), tzinfo=tz)

    appointments: list[Appointment] = []
    for index in range(count):
        start = first_slot + timedelta(minutes=SLOT_MINUTES * index)
        appointment = Appointment(
            id=index + 1,
            scheduled_time=start,
            scheduled_end=start + timedelta(minutes=SLOT_MINUTES),
            priority=Priority.URGENT if rng.random() < urgent_rate else Priority.NORMAL,
            doctor_id=rng.choice(DOCTOR_IDS),
            room_id=rng.choice(ROOM_IDS),
            patient_name=rng.choice(PATIENT_NAMES),
            appointment_type=rng.choice(APPOINTMENT_TYPES),
        )
        appointments.append(_progress(machine, rng, appointment, now, cancel_rate))
    return appointments


def _progress(
    machine: AppointmentStateMachine,
    rng: random.Random,
    appointment: Appointment,
    now: datetime,
    cancel_rate: float,
) -> Appointment:
    start = appointment.scheduled_time

    if rng.random() < 0.7:
        appointment = machine.transition(appointment, TransitionEvent.CONFIRM, start - timedelta(days=1)).appointment

    if rng.random() < cancel_rate:
        cancelled_at = min(start - timedelta(hours=rng.randint(1, 6)), now)
        return machine.transition(appointment, TransitionEvent.CANCEL, cancelled_at).appointment

    arrival = start + timedelta(minutes=rng.randint(-10, 10))
    if arrival > now:
        return appointment
    appointment = machine.transition(appointment, TransitionEvent.CHECK_IN, arrival).appointment

    exam_start = arrival + timedelta(minutes=rng.randint(3, 25))
    if exam_start > now:
        return appointment
    appointment = machine.transition(appointment, TransitionEvent.START_EXAM, exam_start).appointment

    finished = exam_start + timedelta(minutes=rng.randint(10, 30))
    if finished > now:
        return appointment
    return machine.transition(appointment, TransitionEvent.COMPLETE, finished).appointment
