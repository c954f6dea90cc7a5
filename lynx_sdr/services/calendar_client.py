"""HTTP client for the Cal.com API v1.

Cal.com API docs: https://cal.com/docs/api-reference/v1
Requests authenticate with the API key both as a query parameter and as an
``Authorization: API-Key …`` header.

There are no retries: a failed call fails the calling function at once and
is reported as an integration error for the ``Calendar`` system.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

import httpx

from lynx_sdr.config import (
    CALENDAR_API_KEY,
    CALENDAR_API_URL,
    CALENDAR_EVENT_TYPE_ID,
    CALENDAR_TIMEZONE,
)
from lynx_sdr.errors import AppError, integration_error
from lynx_sdr.services.metrics import metrics

logger = logging.getLogger(__name__)

SERVICE_NAME = "Calendar"
REQUEST_TIMEOUT_SECONDS = 15.0
DEFAULT_SLOT_MINUTES = 30
MAX_SLOTS = 5

_WEEKDAYS_PT = (
    "segunda-feira", "terça-feira", "quarta-feira", "quinta-feira",
    "sexta-feira", "sábado", "domingo",
)
_MONTHS_PT = (
    "janeiro", "fevereiro", "março", "abril", "maio", "junho", "julho",
    "agosto", "setembro", "outubro", "novembro", "dezembro",
)


@dataclass(frozen=True)
class TimeSlot:
    start: datetime
    duration_minutes: int = DEFAULT_SLOT_MINUTES
    available: bool = True


@dataclass(frozen=True)
class Attendee:
    name: str
    email: str
    company: str | None = None


@dataclass(frozen=True)
class Booking:
    event_id: str
    meeting_link: str | None


def format_datetime(value: datetime, timezone: str = CALENDAR_TIMEZONE) -> str:
    """Render *value* as e.g. ``'terça-feira, 20 de outubro de 2026 às 14:00'``."""
    local = value.astimezone(ZoneInfo(timezone))
    return (
        f"{_WEEKDAYS_PT[local.weekday()]}, {local.day} de {_MONTHS_PT[local.month - 1]} "
        f"de {local.year} às {local:%H:%M}"
    )


def format_slot(slot: TimeSlot, index: int, timezone: str = CALENDAR_TIMEZONE) -> str:
    """Numbered, human-readable slot label (1-based, as shown to the lead)."""
    return f"{index + 1}. {format_datetime(slot.start, timezone)}"


class CalComClient:
    """Thin wrapper around the Cal.com slots and bookings endpoints."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        *,
        event_type_id: str | None = None,
        timezone: str | None = None,
    ):
        self._api_key = api_key or CALENDAR_API_KEY
        self._event_type_id = event_type_id or CALENDAR_EVENT_TYPE_ID
        self.timezone = timezone or CALENDAR_TIMEZONE
        self._client = httpx.Client(
            base_url=base_url or CALENDAR_API_URL,
            headers={
                "Authorization": f"API-Key {self._api_key}",
                "Content-Type": "application/json",
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
        )

    # ── Internal helpers ─────────────────────────────────────────────

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Execute one HTTP request; any failure becomes an integration error."""
        query = {"apiKey": self._api_key, **(params or {})}
        try:
            with metrics.timed("calcom", f"{method} {path}"):
                response = self._client.request(method, path, params=query, json=json_body)
                if response.status_code >= 400:
                    raise integration_error(
                        SERVICE_NAME, f"HTTP {response.status_code}: {response.text}",
                    )
        except httpx.HTTPError as exc:
            logger.error("Cal.com %s %s failed: %s", method, path, exc)
            raise integration_error(SERVICE_NAME, str(exc) or type(exc).__name__) from exc

        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            logger.error("Cal.com %s %s returned a non-JSON body", method, path)
            raise integration_error(SERVICE_NAME, f"invalid JSON response: {exc}") from exc
        if not isinstance(payload, dict):
            raise integration_error(SERVICE_NAME, f"unexpected response: {type(payload).__name__}")
        return payload

    # ── Public API methods ───────────────────────────────────────────

    def list_slots(self, days_ahead: int = 7) -> list[TimeSlot]:
        """Return up to ``MAX_SLOTS`` of the nearest open slots.

        Cal.com groups slots by day: ``{"slots": {"2026-10-20": [{"time": …}]}}``.
        """
        start = datetime.now(UTC)
        end = start + timedelta(days=days_ahead)
        data = self._request(
            "GET",
            "/slots",
            params={
                "eventTypeId": self._event_type_id,
                "startTime": start.isoformat(),
                "endTime": end.isoformat(),
                "timeZone": self.timezone,
            },
        )

        slots: list[TimeSlot] = []
        try:
            for day_slots in (data.get("slots") or {}).values():
                for raw in day_slots:
                    slot_start = datetime.fromisoformat(raw["time"])
                    if slot_start.tzinfo is None:
                        slot_start = slot_start.replace(tzinfo=UTC)
                    slots.append(TimeSlot(start=slot_start.astimezone(UTC)))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise integration_error(SERVICE_NAME, f"malformed slots payload: {exc!r}") from exc

        slots.sort(key=lambda s: s.start)
        logger.debug("Cal.com returned %d slots for %d days", len(slots), days_ahead)
        return slots[:MAX_SLOTS]

    def book(self, slot: TimeSlot, attendee: Attendee) -> Booking:
        """Create a booking for *slot*; returns the event id and meeting URL."""
        data = self._request(
            "POST",
            "/bookings",
            json_body={
                "eventTypeId": self._event_type_id,
                "start": slot.start.astimezone(UTC).isoformat(),
                "responses": {
                    "name": attendee.name,
                    "email": attendee.email,
                    "notes": f"Empresa: {attendee.company}" if attendee.company else "",
                },
                "timeZone": self.timezone,
                "language": "pt-BR",
                "metadata": {"source": "lynx-sdr"},
            },
        )
        event_id = data.get("id") or data.get("uid")
        if event_id is None:
            raise integration_error(SERVICE_NAME, "booking response carried no id")

        booking = Booking(
            event_id=str(event_id),
            meeting_link=data.get("meetingUrl") or data.get("url"),
        )
        logger.info("Cal.com booking %s created for %s", booking.event_id, attendee.email)
        return booking

    def cancel(self, event_id: str) -> bool:
        self._request("DELETE", f"/bookings/{event_id}")
        logger.info("Cal.com booking %s cancelled", event_id)
        return True

    def validate_slot(self, slot: TimeSlot) -> bool:
        """``True`` when *slot* is in the future and still offered."""
        if slot.start < datetime.now(UTC):
            return False
        try:
            return any(s.start == slot.start for s in self.list_slots(7))
        except AppError:
            logger.warning("Could not validate slot %s", slot.start.isoformat())
            return False
