"""Tests for the triage queue.

Covers:
- Urgent entries ahead of normal ones, FIFO within a class
- Arrival positions never reused
- Re-triage keeps the arrival position
- Duplicate enqueue / unknown remove errors
- Display rank and next-patient selection (with doctor filter)
"""

from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime

import pytest

from clinicflow.errors import AlreadyQueued, NotQueued
from clinicflow.models.enums import Priority
from clinicflow.queue.triage import TriageQueue, triage_sort_key
from clinicflow.schemas.queue import QueueEntry

T0 = datetime(2026, 10, 19, 9, 0, tzinfo=UTC)


# ── Helpers ──────────────────────────────────────────────────────────


def _ids(queue: TriageQueue) -> list:
    return [e.appointment_id for e in queue.snapshot()]


def _filled(*arrivals: tuple[int, Priority]) -> TriageQueue:
    queue = TriageQueue()
    for appointment_id, priority in arrivals:
        queue.enqueue(appointment_id, priority, T0)
    return queue


# ── Ordering ─────────────────────────────────────────────────────────


class TestOrdering:
    def test_urgent_jumps_ahead_of_earlier_normals(self):
        """Three normals checked in, then one urgent: urgent is first."""
        queue = _filled(
            (1, Priority.NORMAL),
            (2, Priority.NORMAL),
            (3, Priority.NORMAL),
            (4, Priority.URGENT),
        )
        assert _ids(queue) == [4, 1, 2, 3]

    def test_fifo_among_urgents(self):
        """A later urgent is behind an earlier urgent."""
        queue = _filled(
            (1, Priority.NORMAL),
            (2, Priority.URGENT),
            (3, Priority.NORMAL),
            (4, Priority.URGENT),
        )
        assert _ids(queue) == [2, 4, 1, 3]

    def test_empty_queue(self):
        queue = TriageQueue()
        assert queue.snapshot() == ()
        assert queue.next_entry() is None
        assert len(queue) == 0

    def test_sort_key(self):
        urgent = QueueEntry(appointment_id=1, priority=Priority.URGENT, position=9, enqueued_at=T0)
        normal = QueueEntry(appointment_id=2, priority=Priority.NORMAL, position=1, enqueued_at=T0)
        assert triage_sort_key(urgent) < triage_sort_key(normal)

    def test_iteration_follows_triage_order(self):
        queue = _filled((1, Priority.NORMAL), (2, Priority.URGENT))
        assert [e.appointment_id for e in queue] == [2, 1]


class TestPositions:
    def test_positions_strictly_increase(self):
        queue = TriageQueue()
        first = queue.enqueue(1, Priority.NORMAL, T0)
        second = queue.enqueue(2, Priority.NORMAL, T0)
        assert second.position > first.position

    def test_positions_not_reused_after_removal(self):
        queue = TriageQueue()
        queue.enqueue(1, Priority.NORMAL, T0)
        last = queue.enqueue(2, Priority.NORMAL, T0)
        queue.remove(2)
        readded = queue.enqueue(2, Priority.NORMAL, T0)
        assert readded.position > last.position

    def test_concurrent_enqueues_get_unique_positions(self):
        queue = TriageQueue()
        threads = [
            threading.Thread(target=queue.enqueue, args=(i, Priority.NORMAL, T0))
            for i in range(50)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        positions = [e.position for e in queue.snapshot()]
        assert len(positions) == 50
        assert len(set(positions)) == 50

    def test_enqueued_at_defaults_to_now(self):
        entry = TriageQueue().enqueue(1, Priority.NORMAL)
        assert entry.enqueued_at.tzinfo is not None


class TestMembership:
    def test_duplicate_enqueue_rejected(self):
        queue = _filled((1, Priority.NORMAL))
        with pytest.raises(AlreadyQueued) as exc_info:
            queue.enqueue(1, Priority.URGENT, T0)
        assert exc_info.value.appointment_id == 1
        assert len(queue) == 1
        assert queue.get(1).priority == Priority.NORMAL

    def test_remove_unknown_raises(self):
        with pytest.raises(NotQueued, match="is not queued"):
            TriageQueue().remove(99)

    def test_remove_returns_entry(self):
        queue = _filled((1, Priority.NORMAL), (2, Priority.URGENT))
        entry = queue.remove(2)
        assert entry.appointment_id == 2
        assert 2 not in queue
        assert _ids(queue) == [1]

    def test_remove_logs_remaining_size(self, caplog):
        queue = _filled((1, Priority.NORMAL), (2, Priority.URGENT), (3, Priority.NORMAL))
        with caplog.at_level(logging.INFO, logger="clinicflow.queue.triage"):
            queue.remove(2)
        assert "Dequeued appointment=2 (size=2)" in caplog.messages

    def test_concurrent_removes_log_distinct_sizes(self, caplog):
        queue = _filled(*[(i, Priority.NORMAL) for i in range(20)])
        with caplog.at_level(logging.INFO, logger="clinicflow.queue.triage"):
            threads = [threading.Thread(target=queue.remove, args=(i,)) for i in range(20)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()
        sizes = sorted(int(m.rsplit("=", 1)[1].rstrip(")")) for m in caplog.messages if m.startswith("Dequeued"))
        assert sizes == list(range(20))

    def test_contains(self):
        queue = _filled((7, Priority.NORMAL))
        assert 7 in queue
        assert 8 not in queue

    def test_snapshot_does_not_change_queue(self):
        queue = _filled((1, Priority.NORMAL), (2, Priority.NORMAL))
        snap = queue.snapshot()
        queue.remove(1)
        assert [e.appointment_id for e in snap] == [1, 2]
        assert _ids(queue) == [2]


class TestReprioritize:
    def test_promotion_moves_ahead_of_normals(self):
        queue = _filled((1, Priority.NORMAL), (2, Priority.NORMAL), (3, Priority.NORMAL))
        queue.reprioritize(3, Priority.URGENT)
        assert _ids(queue) == [3, 1, 2]

    def test_keeps_arrival_position(self):
        queue = _filled((1, Priority.URGENT), (2, Priority.NORMAL), (3, Priority.URGENT))
        before = queue.get(1).position
        queue.reprioritize(1, Priority.NORMAL)
        assert queue.get(1).position == before
        # Demoted entry arrived first, so it leads the normal class
        assert _ids(queue) == [3, 1, 2]

    def test_unknown_id(self):
        with pytest.raises(NotQueued):
            TriageQueue().reprioritize(5, Priority.URGENT)


class TestRank:
    def test_rank_is_one_based(self):
        queue = _filled((1, Priority.NORMAL), (2, Priority.URGENT))
        assert queue.rank(2) == 1
        assert queue.rank(1) == 2

    def test_rank_unknown(self):
        with pytest.raises(NotQueued):
            _filled((1, Priority.NORMAL)).rank(3)


class TestNextEntry:
    def test_next_is_head(self):
        queue = _filled((1, Priority.NORMAL), (2, Priority.URGENT))
        assert queue.next_entry().appointment_id == 2

    def test_next_for_doctor(self):
        doctors = {1: "dr-a", 2: "dr-b", 3: "dr-a"}
        queue = _filled((1, Priority.NORMAL), (2, Priority.URGENT), (3, Priority.URGENT))

        entry = queue.next_entry(doctor_id="dr-a", doctor_lookup=doctors.get)
        assert entry.appointment_id == 3

    def test_next_for_doctor_without_patients(self):
        queue = _filled((1, Priority.NORMAL))
        assert queue.next_entry(doctor_id="dr-z", doctor_lookup={1: "dr-a"}.get) is None

    def test_doctor_filter_needs_lookup(self):
        queue = _filled((1, Priority.NORMAL))
        with pytest.raises(ValueError, match="doctor_lookup"):
            queue.next_entry(doctor_id="dr-a")

    def test_next_entry_does_not_dequeue(self):
        queue = _filled((1, Priority.NORMAL))
        queue.next_entry()
        assert len(queue) == 1
