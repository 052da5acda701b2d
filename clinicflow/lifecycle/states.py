"""Lifecycle state definitions and transition map.

The state machine owns every state change. Upstream records may carry any of
the legacy status labels; they are folded into one canonical state here.
"""

from __future__ import annotations

from clinicflow.models.enums import AppointmentState, Priority, QueueSignal, TransitionEvent

# Transition map: {current_state: {event: next_state}}
TRANSITIONS: dict[AppointmentState, dict[TransitionEvent, AppointmentState]] = {
    AppointmentState.SCHEDULED: {
        TransitionEvent.CONFIRM: AppointmentState.CONFIRMED,
        TransitionEvent.CHECK_IN: AppointmentState.CHECKED_IN,
    },
    AppointmentState.CONFIRMED: {
        TransitionEvent.CHECK_IN: AppointmentState.CHECKED_IN,
    },
    AppointmentState.CHECKED_IN: {
        TransitionEvent.START_EXAM: AppointmentState.IN_PROGRESS,
    },
    AppointmentState.IN_PROGRESS: {
        TransitionEvent.COMPLETE: AppointmentState.COMPLETED,
    },
    AppointmentState.COMPLETED: {},
    AppointmentState.CANCELLED: {},
}

# Cancel is accepted from every non-terminal state
UNIVERSAL_TRANSITIONS: dict[TransitionEvent, AppointmentState] = {
    TransitionEvent.CANCEL: AppointmentState.CANCELLED,
}

TERMINAL_STATES: frozenset[AppointmentState] = frozenset(
    {AppointmentState.COMPLETED, AppointmentState.CANCELLED}
)

ACTIVE_STATES: frozenset[AppointmentState] = frozenset(
    s for s in AppointmentState if s not in TERMINAL_STATES
)

# States in which an appointment occupies a queue entry
QUEUED_STATES: frozenset[AppointmentState] = frozenset({AppointmentState.CHECKED_IN})

# States that imply the patient has physically arrived
ARRIVED_STATES: frozenset[AppointmentState] = frozenset(
    {AppointmentState.CHECKED_IN, AppointmentState.IN_PROGRESS, AppointmentState.COMPLETED}
)

# Each event stamps exactly one field with "now"
EVENT_TIMESTAMPS: dict[TransitionEvent, str] = {
    TransitionEvent.CONFIRM: "confirmed_at",
    TransitionEvent.CHECK_IN: "checked_in_at",
    TransitionEvent.START_EXAM: "exam_started_at",
    TransitionEvent.COMPLETE: "completed_at",
    TransitionEvent.CANCEL: "cancelled_at",
}

EVENT_SIGNALS: dict[TransitionEvent, QueueSignal] = {
    TransitionEvent.CHECK_IN: QueueSignal.ENQUEUE,
    TransitionEvent.START_EXAM: QueueSignal.REMOVE,
    TransitionEvent.COMPLETE: QueueSignal.REMOVE,
    TransitionEvent.CANCEL: QueueSignal.REMOVE,
}

STATE_ALIASES: dict[str, AppointmentState] = {
    "scheduled": AppointmentState.SCHEDULED,
    "booked": AppointmentState.SCHEDULED,
    "confirmed": AppointmentState.CONFIRMED,
    "checked_in": AppointmentState.CHECKED_IN,
    "checkedin": AppointmentState.CHECKED_IN,
    "arrived": AppointmentState.CHECKED_IN,
    "waiting": AppointmentState.CHECKED_IN,
    "in_progress": AppointmentState.IN_PROGRESS,
    "inprogress": AppointmentState.IN_PROGRESS,
    "completed": AppointmentState.COMPLETED,
    "complete": AppointmentState.COMPLETED,
    "cancelled": AppointmentState.CANCELLED,
    "canceled": AppointmentState.CANCELLED,
    "no_show": AppointmentState.CANCELLED,
    "noshow": AppointmentState.CANCELLED,
}

PRIORITY_ALIASES: dict[str, Priority] = {
    "urgent": Priority.URGENT,
    "high": Priority.URGENT,
    "emergency": Priority.URGENT,
    "normal": Priority.NORMAL,
    "medium": Priority.NORMAL,
    "low": Priority.NORMAL,
    "routine": Priority.NORMAL,
    "": Priority.NORMAL,
}

EVENT_ALIASES: dict[str, TransitionEvent] = {
    "confirm": TransitionEvent.CONFIRM,
    "check_in": TransitionEvent.CHECK_IN,
    "checkin": TransitionEvent.CHECK_IN,
    "start_exam": TransitionEvent.START_EXAM,
    "startexam": TransitionEvent.START_EXAM,
    "complete": TransitionEvent.COMPLETE,
    "cancel": TransitionEvent.CANCEL,
}


def _label_key(label: str) -> str:
    """'Checked In' / 'checked-in' / 'CHECKED_IN' -> 'checked_in'."""
    return "_".join(label.strip().lower().replace("-", " ").replace("_", " ").split())


def normalize_state(label: AppointmentState | str) -> AppointmentState:
    """Map any known status label to its canonical state.

    Raises:
        ValueError: If the label is not a known state or alias.
    """
    if isinstance(label, AppointmentState):
        return label
    state = STATE_ALIASES.get(_label_key(label))
    if state is None:
        msg = f"Unknown appointment state: {label!r}"
        raise ValueError(msg)
    return state


def normalize_priority(label: Priority | str | None) -> Priority:
    """Map priority labels onto the two triage classes."""
    if label is None:
        return Priority.NORMAL
    if isinstance(label, Priority):
        return label
    priority = PRIORITY_ALIASES.get(_label_key(label))
    if priority is None:
        msg = f"Unknown priority: {label!r}"
        raise ValueError(msg)
    return priority


def normalize_event(label: TransitionEvent | str) -> TransitionEvent:
    """Accept event enums or their string spellings ('Check In', 'start-exam')."""
    if isinstance(label, TransitionEvent):
        return label
    event = EVENT_ALIASES.get(_label_key(label))
    if event is None:
        msg = f"Unknown transition event: {label!r}"
        raise ValueError(msg)
    return event
