"""Async httpx client for the clinic REST backend.

The backend owns persistence; this client only reads appointment records and
writes back accepted transitions. A transition is durable once
``persist_transition`` returns.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx
from pydantic import ValidationError

from clinicflow.config import settings
from clinicflow.errors import BackendUnavailable
from clinicflow.schemas.appointment import Appointment, AppointmentId, TransitionResult

logger = logging.getLogger(__name__)


class ClinicBackendClient:
    """Thin async wrapper around the appointments endpoints.

    Endpoints:
        GET   {base_url}/appointments?start=..&end=..
        GET   {base_url}/appointments/{id}
        PATCH {base_url}/appointments/{id}
    Auth: optional Bearer token.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or settings.backend.backend_api_url).rstrip("/")
        self._token = token if token is not None else settings.backend.backend_api_token
        self._timeout = httpx.Timeout(timeout or settings.backend.backend_timeout, connect=5.0)
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers=self._headers(),
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
                return response.json() if response.content else None
        except httpx.TimeoutException as exc:
            logger.warning("Backend timeout: %s %s", method, path)
            msg = f"Timeout calling {method} {path}"
            raise BackendUnavailable(msg) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.warning("Backend HTTP %d: %s %s", status, method, path)
            msg = f"HTTP {status} from {method} {path}"
            raise BackendUnavailable(msg, status_code=status) from exc
        except httpx.HTTPError as exc:
            logger.warning("Backend unreachable: %s %s (%s)", method, path, exc)
            msg = f"Cannot reach backend for {method} {path}: {exc}"
            raise BackendUnavailable(msg) from exc

    async def list_appointments(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Appointment]:
        """Fetch appointments, optionally bounded by scheduled time."""
        params: dict[str, str] = {}
        if start is not None:
            params["start"] = start.isoformat()
        if end is not None:
            params["end"] = end.isoformat()

        payload = await self._request("GET", "/appointments", params=params)
        records = self._unwrap(payload)

        appointments: list[Appointment] = []
        for record in records:
            try:
                appointments.append(Appointment.model_validate(record))
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed appointment record id=%s: %d errors",
                    record.get("id") if isinstance(record, dict) else None,
                    exc.error_count(),
                )
        logger.info("Fetched %d appointments (%d skipped)", len(appointments), len(records) - len(appointments))
        return appointments

    async def get_appointment(self, appointment_id: AppointmentId) -> Appointment:
        payload = await self._request("GET", f"/appointments/{appointment_id}")
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            payload = payload["data"]
        return Appointment.model_validate(payload)

    async def persist_transition(self, result: TransitionResult) -> None:
        """PATCH the new state and its timestamp back to the backend."""
        appointment_id = result.appointment.id
        await self._request("PATCH", f"/appointments/{appointment_id}", json=result.changes)
        logger.info(
            "Persisted transition %s -> %s (appointment=%s)",
            result.previous_state.value,
            result.appointment.state.value,
            appointment_id,
        )

    @staticmethod
    def _unwrap(payload: Any) -> list[Any]:
        """Accept a bare list or a ``{"data": [...]}`` envelope."""
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict) and isinstance(payload.get("data"), list):
            return payload["data"]
        logger.warning("Unexpected appointments payload shape: %s", type(payload).__name__)
        return []
