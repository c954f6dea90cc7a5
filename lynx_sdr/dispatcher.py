"""Function dispatcher: turns a model-requested function call into a domain
action against the store, the slot cache and the external adapters.

:meth:`FunctionDispatcher.execute` never raises.  Every outcome, including
unexpected exceptions, is returned as ``{"success": bool, "data"?, "error"?}``
so the orchestrator can hand a structured result back to the model and let it
phrase the problem for the lead.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import Any

from lynx_sdr.errors import AppError
from lynx_sdr.models import LeadField, LeadStatus, MeetingStatus, SessionStatus, ensure_utc
from lynx_sdr.services.calendar_client import (
    Attendee,
    CalComClient,
    format_datetime,
    format_slot,
)
from lynx_sdr.services.metrics import metrics
from lynx_sdr.services.pipefy_client import PipefyClient
from lynx_sdr.services.slot_cache import SlotCache
from lynx_sdr.services.store import ConversationStore
from lynx_sdr.tools import (
    AFFIRMATIVE_TOKENS,
    DEFAULT_DAYS_AHEAD,
    FIELD_LABELS,
    SLOTS_SHOWN,
    FunctionName,
)

logger = logging.getLogger(__name__)

# local@domain.tld, RFC 5322 character set for the local part.
_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)

FunctionResponse = dict[str, Any]


def is_valid_email(email: str | None) -> bool:
    return bool(email) and bool(_EMAIL_RE.match(email.strip()))


def _ok(data: dict[str, Any]) -> FunctionResponse:
    return {"success": True, "data": data}


def _fail(error: str) -> FunctionResponse:
    return {"success": False, "error": error}


def _parse_int(raw: Any) -> int | None:
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return None


class FunctionDispatcher:
    """Executes ``record_field``, ``confirm_interest``,
    ``fetch_available_slots`` and ``book_meeting`` for one session."""

    def __init__(
        self,
        store: ConversationStore,
        slot_cache: SlotCache,
        calendar: CalComClient,
        crm: PipefyClient,
    ) -> None:
        self._store = store
        self._slots = slot_cache
        self._calendar = calendar
        self._crm = crm
        self._handlers: dict[str, Callable[[str, dict[str, Any]], FunctionResponse]] = {
            FunctionName.RECORD_FIELD.value: self._record_field,
            FunctionName.CONFIRM_INTEREST.value: self._confirm_interest,
            FunctionName.FETCH_AVAILABLE_SLOTS.value: self._fetch_available_slots,
            FunctionName.BOOK_MEETING.value: self._book_meeting,
        }

    def execute(self, name: str, args: dict[str, Any] | None, session_id: str) -> FunctionResponse:
        handler = self._handlers.get(name)
        if handler is None:
            logger.warning("[%s] Unknown function requested: %s", session_id, name)
            metrics.record_function_call(name, success=False)
            return _fail(f"unknown function: {name}")

        logger.info("[%s] Executing %s(%s)", session_id, name, args)
        try:
            result = handler(session_id, args or {})
        except AppError as exc:
            logger.error("[%s] %s failed: %s", session_id, name, exc)
            result = _fail(str(exc))
        except Exception as exc:
            logger.exception("[%s] %s raised unexpectedly", session_id, name)
            result = _fail(f"internal error: {type(exc).__name__}")

        metrics.record_function_call(name, success=result["success"])
        return result

    # ── record_field ─────────────────────────────────────────────────

    def _record_field(self, session_id: str, args: dict[str, Any]) -> FunctionResponse:
        label = str(args.get("field") or "").strip().lower()
        value = str(args.get("value") or "").strip()

        field = FIELD_LABELS.get(label)
        if field is None:
            return _fail(f"unknown field: {label or '<empty>'}")
        if not value:
            return _fail(f"empty value for field {label}")

        if field is LeadField.EMAIL:
            if not is_valid_email(value):
                return _fail(
                    f'invalid email: "{value}" is not a valid address. '
                    "Ask the lead for a corrected email."
                )
            value = value.lower()

        self._store.save_conversation_field(session_id, field, value)
        if field is LeadField.EMAIL:
            self._store.update_session_email(session_id, value)

        return _ok({"field": label, "value": value, "message": f"{label} salvo com sucesso."})

    # ── confirm_interest ─────────────────────────────────────────────

    def _confirm_interest(self, session_id: str, args: dict[str, Any]) -> FunctionResponse:
        confirmed = str(args.get("confirmed") or "").strip().lower() in AFFIRMATIVE_TOKENS

        data = self._store.get_conversation_data(session_id)
        if not data.email:
            return _fail("email not yet collected. Ask for the lead's email first.")

        self._store.save_conversation_field(
            session_id, LeadField.INTEREST_CONFIRMED, "true" if confirmed else "false",
        )
        lead = self._store.upsert_lead(
            data.email,
            **data.lead_fields(),
            interest_confirmed=confirmed,
            status=LeadStatus.QUALIFIED if confirmed else LeadStatus.CONTACTED,
        )

        if not confirmed:
            card_id = self._crm.register_no_interest_lead(lead)
            self._store.update_lead_card_id(lead.email, card_id)

        return _ok(
            {
                "interest_confirmed": confirmed,
                "message": (
                    "Interesse confirmado! Vamos agendar uma reunião."
                    if confirmed
                    else "Entendido. Agradecemos seu tempo."
                ),
            }
        )

    # ── fetch_available_slots ────────────────────────────────────────

    def _fetch_available_slots(self, session_id: str, args: dict[str, Any]) -> FunctionResponse:
        raw_days = args.get("days_ahead")
        days = DEFAULT_DAYS_AHEAD if raw_days in (None, "") else _parse_int(raw_days)
        if days is None or days <= 0:
            return _fail(f"invalid days_ahead: {raw_days!r}")

        slots = self._calendar.list_slots(days)
        if not slots:
            return _fail("no available slots at the moment.")

        self._slots.put(session_id, slots)
        return _ok(
            {
                "slots": [
                    format_slot(slot, i, self._calendar.timezone)
                    for i, slot in enumerate(slots[:SLOTS_SHOWN])
                ],
                "total": len(slots),
                "message": "Aqui estão os horários disponíveis:",
            }
        )

    # ── book_meeting ─────────────────────────────────────────────────

    def _book_meeting(self, session_id: str, args: dict[str, Any]) -> FunctionResponse:
        slots = self._slots.get(session_id)
        if not slots:
            return _fail("slots not found. Please search slots again.")

        index = _parse_int(args.get("slot_index"))
        if index is None or not 0 <= index < len(slots):
            return _fail(f"invalid index: {args.get('slot_index')!r}")

        data = self._store.get_conversation_data(session_id)
        if not data.name or not data.email:
            return _fail("name and email are required to book a meeting.")

        slot = slots[index]
        booking = self._calendar.book(
            slot, Attendee(name=data.name, email=data.email, company=data.company),
        )
        # The calendar write has happened; from here on the list must not be
        # reusable, or a later failure could book a second slot.
        self._slots.invalidate(session_id)

        lead = self._store.upsert_lead(
            data.email,
            **data.lead_fields(),
            interest_confirmed=True,
            status=LeadStatus.MEETING_SCHEDULED,
        )
        meeting = self._store.create_meeting(
            lead_id=lead.id,
            session_id=session_id,
            meeting_datetime=slot.start,
            meeting_link=booking.meeting_link,
            calendar_event_id=booking.event_id,
            status=MeetingStatus.SCHEDULED,
        )

        card_id = self._crm.register_qualified_lead(lead, meeting)
        self._store.update_lead_card_id(lead.email, card_id)
        self._store.update_session_status(session_id, SessionStatus.COMPLETED)

        when = ensure_utc(slot.start)
        formatted = format_datetime(when, self._calendar.timezone)
        return _ok(
            {
                "meeting_link": booking.meeting_link,
                "meeting_datetime": when.isoformat(),
                "formatted_date": formatted,
                "message": f"Reunião agendada com sucesso para {formatted}!",
            }
        )
