"""Tests for the sample appointment generator."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

from clinicflow.fixtures.sample import generate_appointments
from clinicflow.lifecycle.states import TERMINAL_STATES
from clinicflow.models.enums import AppointmentState
from clinicflow.schemas.appointment import invariant_violations
from clinicflow.stats.aggregator import counts

DAY = date(2026, 10, 19)


class TestGenerateAppointments:
    def test_count_and_slots(self):
        appts = generate_appointments(DAY, count=10)
        assert len(appts) == 10
        assert [a.id for a in appts] == list(range(1, 11))
        assert appts[0].scheduled_time == datetime(2026, 10, 19, 8, 0, tzinfo=UTC)
        assert appts[1].scheduled_time - appts[0].scheduled_time == timedelta(minutes=20)

    def test_reproducible(self):
        assert generate_appointments(DAY, seed=3) == generate_appointments(DAY, seed=3)

    def test_seed_changes_output(self):
        assert generate_appointments(DAY, seed=1) != generate_appointments(DAY, seed=2)

    def test_records_are_consistent(self):
        for appointment in generate_appointments(DAY, count=40, seed=7, cancel_rate=0.3):
            assert invariant_violations(appointment) == []

    def test_end_of_day_all_terminal(self):
        appts = generate_appointments(DAY, count=24, seed=11)
        assert all(a.state in TERMINAL_STATES for a in appts)
        result = counts(appts)
        assert result.total == result.completed + result.cancelled

    def test_nothing_happens_after_now(self):
        now = datetime(2026, 10, 19, 10, 0, tzinfo=UTC)
        appts = generate_appointments(DAY, count=24, seed=5, now=now)
        for appointment in appts:
            for stamp in (appointment.checked_in_at, appointment.exam_started_at, appointment.completed_at):
                assert stamp is None or stamp <= now
        late = [a for a in appts if a.scheduled_time > now + timedelta(minutes=10)]
        assert late
        assert all(
            a.state in (AppointmentState.SCHEDULED, AppointmentState.CONFIRMED, AppointmentState.CANCELLED)
            for a in late
        )

    def test_no_cancellations(self):
        appts = generate_appointments(DAY, count=24, cancel_rate=0.0)
        assert counts(appts).cancelled == 0
