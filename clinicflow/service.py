"""Service wiring: logging, event bus, alerts, backend and refresh loops.

For hosts (web backends, kiosk displays) that want the whole flow running:

    service = ClinicOpsService()
    await service.start()
    ...
    await service.stop()
"""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import UTC, datetime, time, timedelta

import structlog

from clinicflow.config import settings
from clinicflow.errors import BackendUnavailable
from clinicflow.flow.coordinator import ClinicFlow
from clinicflow.integrations.backend.client import ClinicBackendClient
from clinicflow.models.enums import Granularity, TransitionEvent
from clinicflow.notify.alerts import AlertEngine, alert_engine
from clinicflow.notify.events import EventBus, event_bus
from clinicflow.refresh.poller import RefreshLoop
from clinicflow.schemas.appointment import AppointmentId, TransitionResult
from clinicflow.schemas.events import EventType, SystemEvent
from clinicflow.schemas.stats import StatsSummary, StatsWindow

logger = logging.getLogger(__name__)

_SOURCE = "service"


def configure_logging(level: str | None = None) -> None:
    """Configure stdlib logging and structlog for the host process."""
    logging.basicConfig(
        level=getattr(logging, level or settings.log_level),
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
        stream=sys.stdout,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


def today_window(now: datetime | None = None) -> StatsWindow:
    """Midnight-to-midnight window around ``now``, bucketed by hour."""
    now = now or datetime.now(UTC)
    start = datetime.combine(now.date(), time(0, 0), tzinfo=now.tzinfo or UTC)
    return StatsWindow(start=start, end=start + timedelta(days=1), granularity=Granularity.HOUR)


class ClinicOpsService:
    """Runs the clinic flow against the backend with periodic refreshes."""

    def __init__(
        self,
        client: ClinicBackendClient | None = None,
        flow: ClinicFlow | None = None,
        bus: EventBus | None = None,
        alerts: AlertEngine | None = None,
    ) -> None:
        self.client = client or ClinicBackendClient()
        self.flow = flow or ClinicFlow(threshold_minutes=settings.queue.wait_threshold_minutes)
        self.bus = bus or event_bus
        self.alerts = alerts or alert_engine
        self.latest_summary: StatsSummary | None = None
        self._loops: list[RefreshLoop] = []
        self._tasks: list[asyncio.Task[None]] = []

    async def start(self) -> None:
        """Start the event bus, load today's appointments and launch refresh loops."""
        self.bus.subscribe(self.alerts.on_event, self.alerts.watched_types)
        await self.bus.start()

        try:
            await self.reload()
        except BackendUnavailable as exc:
            # The queue loop reloads with backoff
            logger.warning("Initial load failed: %s", exc)
            await self._report_backend_error(exc)

        self._loops = [
            RefreshLoop(
                name="queue",
                fetch=self.check_queue,
                interval=settings.refresh.queue_refresh_interval,
            ),
            RefreshLoop(
                name="stats",
                fetch=self.refresh_stats,
                interval=settings.refresh.stats_refresh_interval,
            ),
        ]
        self._tasks = [asyncio.create_task(loop.run()) for loop in self._loops]

        await self.bus.emit(SystemEvent(event_type=EventType.SYSTEM_STARTUP, source_module=_SOURCE))
        logger.info("Clinic ops service started (env=%s)", settings.environment)

    async def stop(self) -> None:
        for loop in self._loops:
            loop.stop()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._loops = []

        await self.bus.emit(SystemEvent(event_type=EventType.SYSTEM_SHUTDOWN, source_module=_SOURCE))
        await self.bus.stop()
        self.bus.unsubscribe(self.alerts.on_event)
        logger.info("Clinic ops service stopped")

    async def reload(self, now: datetime | None = None) -> int:
        """Fetch today's appointments and merge them into the flow."""
        window = today_window(now)
        appointments = await self.client.list_appointments(window.start, window.end)
        self.flow.load(appointments, now)
        return len(appointments)

    async def apply(
        self,
        appointment_id: AppointmentId,
        event: TransitionEvent | str,
        now: datetime | None = None,
    ) -> TransitionResult:
        """Apply an event locally, then persist it to the backend."""
        result = await self.flow.apply(appointment_id, event, now)
        try:
            await self.client.persist_transition(result)
        except BackendUnavailable as exc:
            await self._report_backend_error(exc)
            raise
        return result

    async def check_queue(self) -> int:
        """Pull backend changes, then flag overdue waits.

        A BackendUnavailable from the reload propagates so the refresh loop
        backs off.
        """
        await self.reload()
        overdue = await self.flow.check_wait_thresholds()
        return len(overdue)

    async def refresh_stats(self, now: datetime | None = None) -> StatsSummary:
        summary = self.flow.summary(today_window(now), now)
        self.latest_summary = summary
        await self.bus.emit(SystemEvent(
            event_type=EventType.STATS_REFRESHED,
            data={
                "total": summary.counts.total,
                "completion_rate": summary.counts.completion_rate,
                "queue_length": summary.queue_length,
                "overdue": summary.overdue,
            },
            source_module=_SOURCE,
        ))
        return summary

    async def _report_backend_error(self, exc: BackendUnavailable) -> None:
        await self.bus.emit(SystemEvent(
            event_type=EventType.BACKEND_ERROR,
            data={"error": str(exc), "status_code": exc.status_code},
            source_module=_SOURCE,
        ))
