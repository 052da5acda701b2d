"""Appointment lifecycle, triage queue, wait tracking and clinic statistics."""

from clinicflow.errors import (
    AlreadyQueued,
    BackendUnavailable,
    ClinicFlowError,
    InvalidTransition,
    NotQueued,
    TerminalState,
)
from clinicflow.flow.coordinator import ClinicFlow
from clinicflow.lifecycle.fsm import AppointmentStateMachine
from clinicflow.models.enums import AppointmentState, Granularity, Priority, QueueSignal, TransitionEvent
from clinicflow.queue.triage import TriageQueue, triage_sort_key
from clinicflow.schemas.appointment import Appointment, TransitionResult
from clinicflow.schemas.queue import QueueEntry
from clinicflow.schemas.stats import StatsWindow

__all__ = [
    "AlreadyQueued",
    "Appointment",
    "AppointmentState",
    "AppointmentStateMachine",
    "BackendUnavailable",
    "ClinicFlow",
    "ClinicFlowError",
    "Granularity",
    "InvalidTransition",
    "NotQueued",
    "Priority",
    "QueueEntry",
    "QueueSignal",
    "StatsWindow",
    "TerminalState",
    "TransitionEvent",
    "TransitionResult",
    "TriageQueue",
    "triage_sort_key",
]
