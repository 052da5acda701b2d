"""Tests for the alert engine.

Covers:
- Rule matching for urgent arrivals, overdue waits, long queues,
  cancellations during an exam and backend errors
- Delivery to every configured recipient
- Send failures and missing send function never raise
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from clinicflow.notify.alerts import ALERT_RULES, AlertEngine, AlertRule
from clinicflow.schemas.events import EventType, SystemEvent


# ── Helpers ──────────────────────────────────────────────────────────


def _make_event(event_type: EventType, data: dict | None = None, appointment_id: int | None = 7) -> SystemEvent:
    return SystemEvent(event_type=event_type, appointment_id=appointment_id, data=data or {})


def _rule_names(engine: AlertEngine, event: SystemEvent) -> list[str]:
    return [rule.name for rule, _ in engine.render(event)]


# ── Rules ────────────────────────────────────────────────────────────


class TestRules:
    def test_urgent_arrival(self):
        engine = AlertEngine()
        event = _make_event(
            EventType.QUEUE_ENQUEUED,
            {"priority": "urgent", "rank": 1, "queue_length": 2, "patient": "Rocky"},
        )
        matches = engine.render(event)
        assert [r.name for r, _ in matches] == ["Urgent arrival"]
        assert matches[0][1] == "Urgent patient checked in: Rocky (appointment 7, queue rank 1)"
        assert matches[0][0].level == "critical"

    def test_normal_arrival_quiet(self):
        event = _make_event(EventType.QUEUE_ENQUEUED, {"priority": "normal", "rank": 3, "queue_length": 3})
        assert _rule_names(AlertEngine(), event) == []

    def test_long_queue(self):
        event = _make_event(EventType.QUEUE_ENQUEUED, {"priority": "normal", "rank": 4, "queue_length": 4})
        with patch("clinicflow.notify.alerts.settings") as mock_settings:
            mock_settings.queue.long_queue_length = 4
            assert _rule_names(AlertEngine(), event) == ["Long queue"]

    def test_overdue_wait_without_patient_name(self):
        event = _make_event(
            EventType.WAIT_THRESHOLD_EXCEEDED,
            {"wait_minutes": 16, "threshold_minutes": 15, "patient": None},
        )
        (_, message), = AlertEngine().render(event)
        assert message == "Patient has waited 16 min (threshold 15 min)"

    def test_cancel_during_exam(self):
        event = _make_event(
            EventType.APPOINTMENT_TRANSITIONED,
            {"from_state": "in_progress", "to_state": "cancelled", "event": "cancel"},
        )
        assert _rule_names(AlertEngine(), event) == ["Exam cancelled"]

    def test_cancel_before_arrival_quiet(self):
        event = _make_event(
            EventType.APPOINTMENT_TRANSITIONED,
            {"from_state": "confirmed", "to_state": "cancelled", "event": "cancel"},
        )
        assert _rule_names(AlertEngine(), event) == []

    def test_missing_template_key(self):
        rule = AlertRule(
            name="Needs more",
            event_types=[EventType.STATS_REFRESHED],
            condition=lambda _: True,
            template="{missing}",
            level="info",
        )
        (_, message), = AlertEngine([rule]).render(_make_event(EventType.STATS_REFRESHED))
        assert message.startswith("Needs more (partial data:")

    def test_broken_condition_skipped(self):
        rule = AlertRule(
            name="Broken",
            event_types=[EventType.STATS_REFRESHED],
            condition=lambda e: e.data["nope"],
            template="never",
            level="info",
        )
        assert AlertEngine([rule]).render(_make_event(EventType.STATS_REFRESHED)) == []

    def test_watched_types(self):
        watched = AlertEngine().watched_types
        assert EventType.QUEUE_ENQUEUED in watched
        assert EventType.BACKEND_ERROR in watched
        assert EventType.STATS_REFRESHED not in watched
        assert len(watched) == len({t for r in ALERT_RULES for t in r.event_types})


# ── Delivery ─────────────────────────────────────────────────────────


class TestDelivery:
    @pytest.mark.asyncio()
    async def test_sends_to_every_recipient(self):
        engine = AlertEngine()
        send = AsyncMock()
        engine.set_send_fn(send)
        event = _make_event(EventType.BACKEND_ERROR, {"error": "HTTP 503", "status_code": 503})

        with patch("clinicflow.notify.alerts.settings") as mock_settings:
            mock_settings.notifications.recipients = ["front-desk", "on-call"]
            await engine.on_event(event)

        assert send.await_count == 2
        send.assert_any_await("front-desk", "Clinic backend error: HTTP 503")
        send.assert_any_await("on-call", "Clinic backend error: HTTP 503")

    @pytest.mark.asyncio()
    async def test_no_send_fn_is_noop(self):
        await AlertEngine().on_event(_make_event(EventType.BACKEND_ERROR, {"error": "x"}))

    @pytest.mark.asyncio()
    async def test_send_failure_swallowed(self):
        engine = AlertEngine()
        send = AsyncMock(side_effect=[RuntimeError("gateway down"), None])
        engine.set_send_fn(send)

        with patch("clinicflow.notify.alerts.settings") as mock_settings:
            mock_settings.notifications.recipients = ["a", "b"]
            await engine.on_event(_make_event(EventType.BACKEND_ERROR, {"error": "x"}))

        assert send.await_count == 2

    @pytest.mark.asyncio()
    async def test_no_recipients(self):
        engine = AlertEngine()
        send = AsyncMock()
        engine.set_send_fn(send)

        with patch("clinicflow.notify.alerts.settings") as mock_settings:
            mock_settings.notifications.recipients = []
            await engine.on_event(_make_event(EventType.BACKEND_ERROR, {"error": "x"}))

        send.assert_not_awaited()
