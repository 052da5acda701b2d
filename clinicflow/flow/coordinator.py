"""Clinic flow coordinator: the single path that applies lifecycle events.

Runs the state machine, keeps the triage queue in step with the signals it
reports, and emits SystemEvents. Transitions are applied one at a time;
read paths (queue views, summaries) work on snapshots and never mutate.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from clinicflow.config import settings
from clinicflow.errors import NotQueued
from clinicflow.lifecycle.fsm import AppointmentStateMachine
from clinicflow.lifecycle.states import QUEUED_STATES, normalize_priority
from clinicflow.models.enums import Priority, QueueSignal, TransitionEvent
from clinicflow.notify.events import emit
from clinicflow.queue.triage import TriageQueue
from clinicflow.schemas.appointment import (
    Appointment,
    AppointmentId,
    TransitionResult,
    as_utc,
    invariant_violations,
)
from clinicflow.schemas.events import EventType, SystemEvent
from clinicflow.schemas.queue import QueueEntry, QueueRow
from clinicflow.schemas.stats import StatsSummary, StatsWindow
from clinicflow.stats.aggregator import summarize
from clinicflow.tracking.wait_time import annotate_queue

logger = logging.getLogger(__name__)

_SOURCE = "flow.coordinator"


class ClinicFlow:
    """Owns the current appointment set and its triage queue."""

    def __init__(
        self,
        machine: AppointmentStateMachine | None = None,
        queue: TriageQueue | None = None,
        threshold_minutes: int | None = None,
    ) -> None:
        self.machine = machine or AppointmentStateMachine()
        self.queue = queue or TriageQueue()
        self.threshold_minutes = threshold_minutes
        self._appointments: dict[AppointmentId, Appointment] = {}
        self._flagged: set[AppointmentId] = set()

    # ── Loading ──────────────────────────────────────────────────────

    def load(self, appointments: Iterable[Appointment], now: datetime | None = None) -> int:
        """Register a batch of upstream records and rebuild the queue.

        Waiting appointments are queued in check-in order so arrival positions
        reflect who came first. Returns the number of newly queued entries.
        """
        records = list(appointments)
        for appointment in records:
            problems = invariant_violations(appointment)
            if problems:
                logger.warning("Inconsistent appointment %s: %s", appointment.id, "; ".join(problems))
            self._appointments[appointment.id] = appointment

        for appointment in records:
            if appointment.state not in QUEUED_STATES and appointment.id in self.queue:
                # Moved on elsewhere since the last load
                self.queue.remove(appointment.id)
                self._flagged.discard(appointment.id)
            elif appointment.id in self.queue and self.queue.get(appointment.id).priority != appointment.priority:
                self.queue.reprioritize(appointment.id, appointment.priority)

        waiting = [a for a in records if a.state in QUEUED_STATES and a.id not in self.queue]
        fallback = as_utc(now) if now is not None else datetime.now(UTC)
        waiting.sort(key=lambda a: (a.checked_in_at or fallback, str(a.id)))
        for appointment in waiting:
            self.queue.enqueue(appointment.id, appointment.priority, appointment.checked_in_at or fallback)

        logger.info("Loaded %d appointments, %d waiting", len(records), len(self.queue))
        return len(waiting)

    async def register(self, appointment: Appointment, now: datetime | None = None) -> Appointment:
        """Add a single appointment (new booking or walk-in)."""
        self._appointments[appointment.id] = appointment
        await emit(SystemEvent(
            event_type=EventType.APPOINTMENT_REGISTERED,
            appointment_id=appointment.id,
            data={"state": appointment.state.value, "priority": appointment.priority.value},
            source_module=_SOURCE,
        ))
        if appointment.state in QUEUED_STATES and appointment.id not in self.queue:
            entry = self.queue.enqueue(
                appointment.id,
                appointment.priority,
                appointment.checked_in_at or now or datetime.now(UTC),
            )
            await self._emit_enqueued(appointment, entry)
        return appointment

    # ── Lookups ──────────────────────────────────────────────────────

    def get(self, appointment_id: AppointmentId) -> Appointment:
        """Raises KeyError for unknown ids."""
        return self._appointments[appointment_id]

    def appointments(self) -> list[Appointment]:
        return list(self._appointments.values())

    # ── Event path ───────────────────────────────────────────────────

    async def apply(
        self,
        appointment_id: AppointmentId,
        event: TransitionEvent | str,
        now: datetime | None = None,
    ) -> TransitionResult:
        """Apply a lifecycle event to a stored appointment.

        Raises:
            KeyError: Unknown appointment id.
            TerminalState / InvalidTransition: Rejected by the state machine;
                nothing is changed.
        """
        current = self._appointments[appointment_id]
        result = self.machine.transition(current, event, now)
        updated = result.appointment
        self._appointments[appointment_id] = updated

        await emit(SystemEvent(
            event_type=EventType.APPOINTMENT_TRANSITIONED,
            appointment_id=appointment_id,
            timestamp=getattr(updated, result.timestamp_field),
            data={
                "from_state": result.previous_state.value,
                "to_state": updated.state.value,
                "event": result.event.value,
            },
            source_module=_SOURCE,
        ))

        if result.signal == QueueSignal.ENQUEUE:
            entry = self.queue.enqueue(appointment_id, updated.priority, updated.checked_in_at)
            await self._emit_enqueued(updated, entry)
        elif result.signal == QueueSignal.REMOVE:
            await self._dequeue(appointment_id)

        return result

    async def reprioritize(self, appointment_id: AppointmentId, priority: Priority | str) -> Appointment:
        """Staff override of an appointment's triage class."""
        priority = normalize_priority(priority)
        current = self._appointments[appointment_id]
        if current.priority == priority:
            return current

        updated = current.model_copy(update={"priority": priority})
        self._appointments[appointment_id] = updated
        if appointment_id in self.queue:
            self.queue.reprioritize(appointment_id, priority)

        await emit(SystemEvent(
            event_type=EventType.APPOINTMENT_REPRIORITIZED,
            appointment_id=appointment_id,
            data={"from": current.priority.value, "to": priority.value},
            source_module=_SOURCE,
        ))
        return updated

    async def _dequeue(self, appointment_id: AppointmentId) -> None:
        self._flagged.discard(appointment_id)
        try:
            self.queue.remove(appointment_id)
        except NotQueued:
            # Complete after StartExam, or Cancel before check-in
            logger.debug("Appointment %s was not queued; nothing to remove", appointment_id)
            return
        await emit(SystemEvent(
            event_type=EventType.QUEUE_REMOVED,
            appointment_id=appointment_id,
            data={"queue_length": len(self.queue)},
            source_module=_SOURCE,
        ))

    async def _emit_enqueued(self, appointment: Appointment, entry: QueueEntry) -> None:
        await emit(SystemEvent(
            event_type=EventType.QUEUE_ENQUEUED,
            appointment_id=appointment.id,
            data={
                "priority": entry.priority.value,
                "position": entry.position,
                "rank": self.queue.rank(appointment.id),
                "queue_length": len(self.queue),
                "patient": appointment.patient_name,
            },
            source_module=_SOURCE,
        ))

    # ── Read paths ───────────────────────────────────────────────────

    def queue_view(self, now: datetime | None = None) -> list[QueueRow]:
        """Ordered queue with ranks and wait fields, for one refresh pass."""
        return annotate_queue(
            self.queue.snapshot(),
            self._appointments,
            now or datetime.now(UTC),
            self.threshold_minutes,
        )

    def next_patient(self, doctor_id: AppointmentId | None = None) -> Appointment | None:
        """The appointment to be seen next, optionally for one doctor."""
        entry = self.queue.next_entry(
            doctor_id,
            doctor_lookup=lambda aid: self._appointments[aid].doctor_id if aid in self._appointments else None,
        )
        if entry is None:
            return None
        return self._appointments.get(entry.appointment_id)

    async def check_wait_thresholds(self, now: datetime | None = None) -> list[QueueRow]:
        """Return overdue rows; emit one threshold event per waiting episode."""
        now = now or datetime.now(UTC)
        overdue = [row for row in self.queue_view(now) if row.overdue]
        for row in overdue:
            appointment_id = row.entry.appointment_id
            if appointment_id in self._flagged:
                continue
            self._flagged.add(appointment_id)
            await emit(SystemEvent(
                event_type=EventType.WAIT_THRESHOLD_EXCEEDED,
                appointment_id=appointment_id,
                timestamp=now,
                data={
                    "wait_minutes": row.wait_minutes,
                    "threshold_minutes": self._threshold(),
                    "priority": row.entry.priority.value,
                    "patient": row.patient_name,
                },
                source_module=_SOURCE,
            ))
        return overdue

    def summary(self, window: StatsWindow | None = None, now: datetime | None = None) -> StatsSummary:
        return summarize(
            self.queue.snapshot(),
            self._appointments.values(),
            window=window,
            now=now,
            threshold_minutes=self.threshold_minutes,
        )

    def _threshold(self) -> int:
        if self.threshold_minutes is not None:
            return self.threshold_minutes
        return settings.queue.wait_threshold_minutes
