"""Triage queue: the one ordering rule for everyone waiting to be seen.

Urgent entries always precede normal ones; within a priority class entries
are first-in-first-out by arrival position. Positions come from a counter
that only ever grows, so an order is never ambiguous even after removals.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable, Iterator
from datetime import UTC, datetime

from clinicflow.errors import AlreadyQueued, NotQueued
from clinicflow.models.enums import Priority
from clinicflow.schemas.appointment import AppointmentId
from clinicflow.schemas.queue import QueueEntry

logger = logging.getLogger(__name__)

_PRIORITY_RANK: dict[Priority, int] = {
    Priority.URGENT: 0,
    Priority.NORMAL: 1,
}


def triage_sort_key(entry: QueueEntry) -> tuple[int, int]:
    """Sort key: urgency class first, then arrival position."""
    return (_PRIORITY_RANK[entry.priority], entry.position)


class TriageQueue:
    """Ordered set of checked-in appointments.

    Writers are serialized by an internal lock; ``snapshot()`` hands out an
    immutable tuple, so readers never observe a half-applied change.
    """

    def __init__(self, start_position: int = 1) -> None:
        self._entries: dict[AppointmentId, QueueEntry] = {}
        self._positions = itertools.count(start_position)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, appointment_id: object) -> bool:
        return appointment_id in self._entries

    def __iter__(self) -> Iterator[QueueEntry]:
        return iter(self.snapshot())

    def enqueue(
        self,
        appointment_id: AppointmentId,
        priority: Priority,
        enqueued_at: datetime | None = None,
    ) -> QueueEntry:
        """Insert an appointment with the next arrival position.

        Raises:
            AlreadyQueued: If the appointment is already in the queue.
        """
        with self._lock:
            if appointment_id in self._entries:
                raise AlreadyQueued(appointment_id)
            entry = QueueEntry(
                appointment_id=appointment_id,
                priority=priority,
                position=next(self._positions),
                enqueued_at=enqueued_at or datetime.now(UTC),
            )
            self._entries[appointment_id] = entry

        logger.info(
            "Queued appointment=%s priority=%s position=%d (size=%d)",
            appointment_id,
            priority.value,
            entry.position,
            len(self._entries),
        )
        return entry

    def remove(self, appointment_id: AppointmentId) -> QueueEntry:
        """Remove an appointment and return its entry.

        Raises:
            NotQueued: If the appointment is not in the queue. Callers that
                want idempotent removal catch this and carry on.
        """
        with self._lock:
            entry = self._entries.pop(appointment_id, None)
            size = len(self._entries)
        if entry is None:
            raise NotQueued(appointment_id)

        logger.info("Dequeued appointment=%s (size=%d)", appointment_id, size)
        return entry

    def reprioritize(self, appointment_id: AppointmentId, priority: Priority) -> QueueEntry:
        """Change an entry's priority, keeping its arrival position.

        Raises:
            NotQueued: If the appointment is not in the queue.
        """
        with self._lock:
            entry = self._entries.get(appointment_id)
            if entry is None:
                raise NotQueued(appointment_id)
            updated = entry.model_copy(update={"priority": priority})
            self._entries[appointment_id] = updated

        if updated.priority != entry.priority:
            logger.info(
                "Re-triaged appointment=%s %s -> %s",
                appointment_id,
                entry.priority.value,
                priority.value,
            )
        return updated

    def get(self, appointment_id: AppointmentId) -> QueueEntry:
        entry = self._entries.get(appointment_id)
        if entry is None:
            raise NotQueued(appointment_id)
        return entry

    def snapshot(self) -> tuple[QueueEntry, ...]:
        """Return all entries in triage order without changing the queue."""
        with self._lock:
            entries = list(self._entries.values())
        return tuple(sorted(entries, key=triage_sort_key))

    def rank(self, appointment_id: AppointmentId) -> int:
        """1-based display rank of an entry in the current order.

        Raises:
            NotQueued: If the appointment is not in the queue.
        """
        for index, entry in enumerate(self.snapshot(), start=1):
            if entry.appointment_id == appointment_id:
                return index
        raise NotQueued(appointment_id)

    def next_entry(
        self,
        doctor_id: AppointmentId | None = None,
        doctor_lookup: Callable[[AppointmentId], AppointmentId | None] | None = None,
    ) -> QueueEntry | None:
        """Who is seen next, optionally restricted to one doctor's patients.

        ``doctor_lookup`` maps an appointment id to its doctor; it is required
        when ``doctor_id`` is given, since entries do not carry assignments.
        """
        for entry in self.snapshot():
            if doctor_id is None:
                return entry
            if doctor_lookup is None:
                msg = "doctor_lookup is required when filtering by doctor_id"
                raise ValueError(msg)
            if doctor_lookup(entry.appointment_id) == doctor_id:
                return entry
        return None
