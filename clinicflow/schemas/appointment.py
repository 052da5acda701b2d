"""Appointment value object and transition result.

Appointments are immutable: every state change produces a new value via the
state machine. Inbound records may use snake_case or camelCase keys, and any
legacy status label; both are normalized on validation.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from clinicflow.lifecycle.states import ARRIVED_STATES, TERMINAL_STATES, normalize_priority, normalize_state
from clinicflow.models.enums import AppointmentState, Priority, QueueSignal, TransitionEvent

AppointmentId = int | str


def as_utc(moment: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones pass through."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


TIMESTAMP_FIELDS: tuple[str, ...] = (
    "confirmed_at",
    "checked_in_at",
    "exam_started_at",
    "completed_at",
    "cancelled_at",
)


class Appointment(BaseModel):
    """A single booked visit and its lifecycle timestamps."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    id: AppointmentId
    state: AppointmentState = Field(
        default=AppointmentState.SCHEDULED,
        validation_alias=AliasChoices("state", "status"),
    )
    priority: Priority = Priority.NORMAL

    # Booked slot
    scheduled_time: datetime
    scheduled_end: datetime | None = None

    # Lifecycle timestamps, each set once by its transition
    confirmed_at: datetime | None = None
    checked_in_at: datetime | None = None
    exam_started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None

    # Assignment (lookup only)
    doctor_id: AppointmentId | None = None
    room_id: AppointmentId | None = None

    # Carried through for display
    patient_name: str | None = None
    appointment_type: str | None = None
    notes: str | None = None

    @field_validator("state", mode="before")
    @classmethod
    def normalize_state_label(cls, v: Any) -> AppointmentState:
        return normalize_state(v)

    @field_validator("priority", mode="before")
    @classmethod
    def normalize_priority_label(cls, v: Any) -> Priority:
        return normalize_priority(v)

    @field_validator(
        "scheduled_time",
        "scheduled_end",
        *TIMESTAMP_FIELDS,
    )
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        """Naive timestamps from upstream are taken as UTC."""
        return as_utc(v) if v is not None else None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


def invariant_violations(appointment: Appointment) -> list[str]:
    """List lifecycle invariants the record breaks (empty when consistent).

    Used when loading upstream data, where records are logged rather than
    rejected.
    """
    problems: list[str] = []
    state = appointment.state

    if appointment.completed_at is not None and appointment.cancelled_at is not None:
        problems.append("both completed_at and cancelled_at are set")
    if appointment.completed_at is not None and state != AppointmentState.COMPLETED:
        problems.append(f"completed_at set while state is {state.value}")
    if appointment.cancelled_at is not None and state != AppointmentState.CANCELLED:
        problems.append(f"cancelled_at set while state is {state.value}")

    if state in ARRIVED_STATES and appointment.checked_in_at is None:
        problems.append(f"checked_in_at missing for state {state.value}")
    if state in (AppointmentState.SCHEDULED, AppointmentState.CONFIRMED) and appointment.checked_in_at is not None:
        problems.append(f"checked_in_at set while state is {state.value}")

    return problems


class TransitionResult(BaseModel):
    """Outcome of an accepted transition.

    ``signal`` tells the caller how the triage queue must follow; the state
    machine never touches the queue itself.
    """

    model_config = ConfigDict(frozen=True)

    appointment: Appointment
    previous_state: AppointmentState
    event: TransitionEvent
    timestamp_field: str
    signal: QueueSignal | None = None

    @property
    def changes(self) -> dict[str, Any]:
        """Fields that must be persisted for this transition."""
        stamped: datetime = getattr(self.appointment, self.timestamp_field)
        return {
            "state": self.appointment.state.value,
            self.timestamp_field: stamped.isoformat(),
        }
