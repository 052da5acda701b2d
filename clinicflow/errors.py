"""Error taxonomy for lifecycle, queue and backend failures.

All of these are local, recoverable conditions. Callers catch them and either
no-op, show a message, or retry with corrected input.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from clinicflow.models.enums import AppointmentState, TransitionEvent
    from clinicflow.schemas.appointment import Appointment


class ClinicFlowError(Exception):
    """Base class for every error raised by clinicflow."""


class InvalidTransition(ClinicFlowError):
    """An event is not legal from the appointment's current state."""

    def __init__(
        self,
        event: TransitionEvent,
        state: AppointmentState,
        appointment: Appointment | None = None,
    ) -> None:
        self.event = event
        self.state = state
        self.appointment = appointment
        super().__init__(f"Invalid transition: {state.value} --{event.value}--> ???")


class TerminalState(ClinicFlowError):
    """Any event submitted to a Completed or Cancelled appointment."""

    def __init__(
        self,
        event: TransitionEvent,
        state: AppointmentState,
        appointment: Appointment | None = None,
    ) -> None:
        self.event = event
        self.state = state
        self.appointment = appointment
        super().__init__(f"Appointment is terminal ({state.value}); rejected {event.value}")


class AlreadyQueued(ClinicFlowError):
    """Enqueue of an appointment id that is already in the queue."""

    def __init__(self, appointment_id: Any) -> None:
        self.appointment_id = appointment_id
        super().__init__(f"Appointment {appointment_id!r} is already queued")


class NotQueued(ClinicFlowError):
    """Remove or lookup of an appointment id that is not in the queue."""

    def __init__(self, appointment_id: Any) -> None:
        self.appointment_id = appointment_id
        super().__init__(f"Appointment {appointment_id!r} is not queued")


class BackendUnavailable(ClinicFlowError):
    """The clinic backend could not be reached or returned an error status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
