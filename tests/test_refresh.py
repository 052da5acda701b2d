"""Tests for caller-level refresh loops.

Sleeps are injected, so nothing here waits on a real clock.
"""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from clinicflow.errors import BackendUnavailable
from clinicflow.models.enums import AppointmentState
from clinicflow.refresh.poller import RefreshLoop, status_poller
from clinicflow.schemas.appointment import Appointment

T0 = datetime(2026, 10, 19, 9, 0, tzinfo=UTC)


# ── Helpers ──────────────────────────────────────────────────────────


def _loop(fetch, **kwargs) -> tuple[RefreshLoop, AsyncMock]:
    sleep = AsyncMock()
    loop = RefreshLoop(
        name="test",
        fetch=fetch,
        interval=kwargs.pop("interval", 5.0),
        backoff_factor=kwargs.pop("backoff_factor", 2.0),
        max_interval=kwargs.pop("max_interval", 60.0),
        sleep=sleep,
        **kwargs,
    )
    return loop, sleep


def _delays(sleep: AsyncMock) -> list[float]:
    return [c.args[0] for c in sleep.await_args_list]


# ── Polling ──────────────────────────────────────────────────────────


class TestRefreshLoop:
    @pytest.mark.asyncio()
    async def test_polls_at_interval(self):
        fetch = AsyncMock(return_value=3)
        on_result = AsyncMock()
        loop, sleep = _loop(fetch, on_result=on_result)

        await loop.run(max_cycles=3)

        assert fetch.await_count == 3
        assert on_result.await_count == 3
        assert _delays(sleep) == [5.0, 5.0]
        assert loop.cycles == 3

    @pytest.mark.asyncio()
    async def test_backoff_on_failure(self):
        fetch = AsyncMock(side_effect=BackendUnavailable("down"))
        loop, sleep = _loop(fetch, max_interval=30.0)

        await loop.run(max_cycles=5)

        assert _delays(sleep) == [10.0, 20.0, 30.0, 30.0]
        assert loop.failures == 5

    @pytest.mark.asyncio()
    async def test_success_resets_backoff(self):
        fetch = AsyncMock(side_effect=[BackendUnavailable("down"), BackendUnavailable("down"), "ok", "ok"])
        loop, sleep = _loop(fetch)

        await loop.run(max_cycles=4)

        assert _delays(sleep) == [10.0, 20.0, 5.0]
        assert loop.failures == 0

    @pytest.mark.asyncio()
    async def test_failure_result_is_none(self):
        on_result = AsyncMock()
        loop, _ = _loop(AsyncMock(side_effect=BackendUnavailable("down")), on_result=on_result)

        assert await loop.run_once() is None
        on_result.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_unexpected_errors_propagate(self):
        loop, _ = _loop(AsyncMock(side_effect=RuntimeError("bug")))
        with pytest.raises(RuntimeError):
            await loop.run_once()

    @pytest.mark.asyncio()
    async def test_stop_condition(self):
        fetch = AsyncMock(side_effect=[1, 2, 3, 4])
        loop, sleep = _loop(fetch, stop_when=lambda value: value >= 2)

        await loop.run()

        assert fetch.await_count == 2
        assert loop.stopped
        assert sleep.await_count == 1

    @pytest.mark.asyncio()
    async def test_stopped_before_run(self):
        fetch = AsyncMock()
        loop, _ = _loop(fetch)
        loop.stop()
        await loop.run()
        fetch.assert_not_awaited()

    def test_next_delay(self):
        loop, _ = _loop(AsyncMock(), interval=10.0, backoff_factor=3.0, max_interval=100.0)
        assert loop.next_delay() == 10.0
        loop.failures = 1
        assert loop.next_delay() == 30.0
        loop.failures = 3
        assert loop.next_delay() == 100.0


class TestStatusPoller:
    @pytest.mark.asyncio()
    async def test_stops_at_terminal_state(self):
        states = [AppointmentState.CHECKED_IN, AppointmentState.IN_PROGRESS, AppointmentState.COMPLETED]
        client = AsyncMock()
        client.get_appointment.side_effect = [
            Appointment(id=5, state=state, scheduled_time=T0) for state in states
        ]
        on_update = AsyncMock()
        sleep = AsyncMock()

        loop = status_poller(client, 5, on_update=on_update, sleep=sleep)
        await loop.run()

        assert client.get_appointment.await_count == 3
        client.get_appointment.assert_awaited_with(5)
        assert on_update.await_count == 3
        assert loop.stopped
        assert loop.name == "status:5"
