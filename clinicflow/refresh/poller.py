"""Caller-level refresh loops.

The core has no timers of its own; dashboards and queue screens poll through
these loops. Failures back off exponentially up to a cap, and a loop can stop
itself once its result no longer needs watching (e.g. a terminal
appointment). Stopping is simply "stop polling": nothing is in flight.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from clinicflow.config import settings
from clinicflow.errors import ClinicFlowError
from clinicflow.integrations.backend.client import ClinicBackendClient
from clinicflow.schemas.appointment import Appointment, AppointmentId

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


class RefreshLoop(Generic[T]):
    """Polls ``fetch`` every ``interval`` seconds and hands results to ``on_result``."""

    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[T]],
        on_result: Callable[[T], Awaitable[None]] | None = None,
        interval: float | None = None,
        backoff_factor: float | None = None,
        max_interval: float | None = None,
        stop_when: Callable[[T], bool] | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.name = name
        self._fetch = fetch
        self._on_result = on_result
        self.interval = interval or settings.refresh.queue_refresh_interval
        self.backoff_factor = backoff_factor or settings.refresh.backoff_factor
        self.max_interval = max_interval or settings.refresh.max_refresh_interval
        self._stop_when = stop_when
        self._sleep = sleep
        self._stopped = False
        self.failures = 0
        self.cycles = 0

    def stop(self) -> None:
        self._stopped = True

    @property
    def stopped(self) -> bool:
        return self._stopped

    def next_delay(self) -> float:
        """Base interval, multiplied by the backoff factor per consecutive failure."""
        if self.failures == 0:
            return self.interval
        return min(self.interval * self.backoff_factor ** self.failures, self.max_interval)

    async def run_once(self) -> T | None:
        """One poll. Returns the result, or None if the fetch failed."""
        self.cycles += 1
        try:
            result = await self._fetch()
        except ClinicFlowError as exc:
            self.failures += 1
            logger.warning(
                "Refresh %s failed (%d in a row): %s; next attempt in %.1fs",
                self.name,
                self.failures,
                exc,
                self.next_delay(),
            )
            return None

        self.failures = 0
        if self._on_result is not None:
            await self._on_result(result)
        if self._stop_when is not None and self._stop_when(result):
            logger.info("Refresh %s reached its stop condition", self.name)
            self.stop()
        return result

    async def run(self, max_cycles: int | None = None) -> None:
        """Poll until stopped, cancelled, or ``max_cycles`` polls have run."""
        logger.info("Refresh %s started (interval=%.1fs)", self.name, self.interval)
        ran = 0
        while not self._stopped:
            await self.run_once()
            ran += 1
            if self._stopped or (max_cycles is not None and ran >= max_cycles):
                break
            await self._sleep(self.next_delay())
        logger.info("Refresh %s stopped after %d cycles", self.name, self.cycles)


def status_poller(
    client: ClinicBackendClient,
    appointment_id: AppointmentId,
    on_update: Callable[[Appointment], Awaitable[None]] | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> RefreshLoop[Appointment]:
    """Watch one appointment until it is completed or cancelled."""
    return RefreshLoop(
        name=f"status:{appointment_id}",
        fetch=lambda: client.get_appointment(appointment_id),
        on_result=on_update,
        interval=settings.refresh.status_refresh_interval,
        stop_when=lambda appointment: appointment.is_terminal,
        sleep=sleep,
    )
