"""Finite state machine for the appointment lifecycle.

The machine validates events and produces new appointment values. It never
mutates its input and never touches the triage queue: queue maintenance is
reported on the result as a signal for the caller to apply.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from clinicflow.errors import InvalidTransition, TerminalState
from clinicflow.lifecycle.states import (
    EVENT_SIGNALS,
    EVENT_TIMESTAMPS,
    TERMINAL_STATES,
    TRANSITIONS,
    UNIVERSAL_TRANSITIONS,
    normalize_event,
)
from clinicflow.models.enums import AppointmentState, TransitionEvent
from clinicflow.schemas.appointment import Appointment, TransitionResult

logger = logging.getLogger(__name__)


class AppointmentStateMachine:
    """Validates and applies lifecycle transitions for single appointments."""

    def can_transition(self, appointment: Appointment, event: TransitionEvent | str) -> bool:
        """Check if an event is valid from the appointment's current state."""
        return self._next_state(appointment.state, normalize_event(event)) is not None

    def valid_events(self, appointment: Appointment) -> list[TransitionEvent]:
        """Return all events accepted from the appointment's current state."""
        if appointment.state in TERMINAL_STATES:
            return []
        events = list(TRANSITIONS.get(appointment.state, {}).keys())
        events.extend(UNIVERSAL_TRANSITIONS.keys())
        return events

    def is_terminal(self, appointment: Appointment) -> bool:
        return appointment.state in TERMINAL_STATES

    def transition(
        self,
        appointment: Appointment,
        event: TransitionEvent | str,
        now: datetime | None = None,
    ) -> TransitionResult:
        """Apply an event and return the new appointment value.

        Args:
            appointment: Current appointment value (left untouched).
            event: The lifecycle event, as enum or string label.
            now: Timestamp to stamp on the appointment. Callers processing a
                batch should pass one shared value.

        Returns:
            TransitionResult with the updated appointment and its queue signal.

        Raises:
            TerminalState: If the appointment is Completed or Cancelled.
            InvalidTransition: If the event is not valid from the current state.
        """
        event = normalize_event(event)
        state = appointment.state

        if state in TERMINAL_STATES:
            raise TerminalState(event, state, appointment)

        next_state = self._next_state(state, event)
        if next_state is None:
            raise InvalidTransition(event, state, appointment)

        field = EVENT_TIMESTAMPS[event]
        stamp = now if now is not None else datetime.now(UTC)
        if stamp.tzinfo is None:
            stamp = stamp.replace(tzinfo=UTC)

        updated = appointment.model_copy(update={"state": next_state, field: stamp})

        logger.info(
            "Appointment transition: %s --%s--> %s (appointment=%s)",
            state.value,
            event.value,
            next_state.value,
            appointment.id,
        )

        return TransitionResult(
            appointment=updated,
            previous_state=state,
            event=event,
            timestamp_field=field,
            signal=EVENT_SIGNALS.get(event),
        )

    @staticmethod
    def _next_state(state: AppointmentState, event: TransitionEvent) -> AppointmentState | None:
        if state in TERMINAL_STATES:
            return None
        if event in UNIVERSAL_TRANSITIONS:
            return UNIVERSAL_TRANSITIONS[event]
        return TRANSITIONS.get(state, {}).get(event)
