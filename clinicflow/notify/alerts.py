"""Alert engine. Turns clinic-flow events into staff notifications.

Rules decide which events deserve attention; delivery is delegated to an
injected send function (SMS gateway, desktop push, chat webhook...).
Never raises: failures are logged and stay out of the event bus.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any

from clinicflow.config import settings
from clinicflow.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

SendFn = Callable[[str, str], Coroutine[Any, Any, None]]


@dataclass(frozen=True)
class AlertRule:
    """Maps an event condition to a notification."""

    name: str
    event_types: list[EventType]
    condition: Callable[[SystemEvent], bool]
    template: str  # format string using event.data keys
    level: str  # "info", "warning", "critical"


ALERT_RULES: list[AlertRule] = [
    AlertRule(
        name="Urgent arrival",
        event_types=[EventType.QUEUE_ENQUEUED],
        condition=lambda e: e.data.get("priority") == "urgent",
        template="Urgent patient checked in: {patient} (appointment {appointment_id}, queue rank {rank})",
        level="critical",
    ),
    AlertRule(
        name="Waiting too long",
        event_types=[EventType.WAIT_THRESHOLD_EXCEEDED],
        condition=lambda _: True,
        template="{patient} has waited {wait_minutes} min (threshold {threshold_minutes} min)",
        level="warning",
    ),
    AlertRule(
        name="Long queue",
        event_types=[EventType.QUEUE_ENQUEUED],
        condition=lambda e: e.data.get("queue_length", 0) >= settings.queue.long_queue_length,
        template="Waiting room has {queue_length} patients",
        level="warning",
    ),
    AlertRule(
        name="Exam cancelled",
        event_types=[EventType.APPOINTMENT_TRANSITIONED],
        condition=lambda e: e.data.get("event") == "cancel" and e.data.get("from_state") == "in_progress",
        template="Appointment {appointment_id} was cancelled during the exam",
        level="warning",
    ),
    AlertRule(
        name="Backend unreachable",
        event_types=[EventType.BACKEND_ERROR],
        condition=lambda _: True,
        template="Clinic backend error: {error}",
        level="critical",
    ),
]


class AlertEngine:
    """Evaluates events against alert rules and pushes matching alerts."""

    def __init__(self, rules: list[AlertRule] | None = None) -> None:
        self._rules = rules if rules is not None else ALERT_RULES
        self._send_fn: SendFn | None = None

    @property
    def watched_types(self) -> list[EventType]:
        """Event types this engine cares about, for targeted subscription."""
        types: set[EventType] = set()
        for rule in self._rules:
            types.update(rule.event_types)
        return sorted(types, key=lambda t: t.value)

    def set_send_fn(self, fn: SendFn) -> None:
        """Inject the delivery function: ``await fn(recipient, message)``."""
        self._send_fn = fn

    def render(self, event: SystemEvent) -> list[tuple[AlertRule, str]]:
        """Return (rule, message) for every rule the event triggers."""
        matches: list[tuple[AlertRule, str]] = []
        for rule in self._rules:
            if event.event_type not in rule.event_types:
                continue
            try:
                if not rule.condition(event):
                    continue
            except Exception:
                logger.exception("Alert rule condition failed: %s", rule.name)
                continue

            ctx: dict[str, Any] = {"patient": "Patient", **event.data}
            if event.appointment_id is not None:
                ctx.setdefault("appointment_id", event.appointment_id)
            if ctx.get("patient") is None:
                ctx["patient"] = "Patient"

            try:
                message = rule.template.format(**ctx)
            except KeyError:
                message = f"{rule.name} (partial data: {ctx})"
            matches.append((rule, message))
        return matches

    async def on_event(self, event: SystemEvent) -> None:
        """Evaluate an event and deliver matching alerts. Never raises."""
        if self._send_fn is None:
            return
        for rule, message in self.render(event):
            logger.info("Alert [%s] %s", rule.level, rule.name)
            await self._push_alert(message)

    async def _push_alert(self, message: str) -> None:
        if self._send_fn is None:
            return
        for recipient in settings.notifications.recipients:
            try:
                await self._send_fn(recipient, message)
            except Exception:
                logger.exception("Failed to send alert to %s", recipient)


# Module-level singleton
alert_engine = AlertEngine()
