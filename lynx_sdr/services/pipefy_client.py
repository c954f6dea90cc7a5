"""GraphQL client for the Pipefy CRM.

Each qualified (or explicitly uninterested) lead becomes one card in the
configured pipe.  Cards are located by email so a returning lead updates its
existing card instead of creating a second one.

Failures are normalised to integration errors for the ``Pipefy`` system,
except where noted: card lookup and comments are best-effort.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from lynx_sdr.config import PIPEFY_API_KEY, PIPEFY_API_URL, PIPEFY_PHASE_ID, PIPEFY_PIPE_ID
from lynx_sdr.errors import AppError, integration_error
from lynx_sdr.models import Lead, LeadStatus, Meeting, ensure_utc
from lynx_sdr.services.calendar_client import format_datetime
from lynx_sdr.services.metrics import metrics

logger = logging.getLogger(__name__)

SERVICE_NAME = "Pipefy"
REQUEST_TIMEOUT_SECONDS = 15.0

NO_INTEREST_COMMENT = "Lead demonstrou não ter interesse no produto/serviço neste momento."

# ── GraphQL documents ───────────────────────────────────────────────

_FIND_CARDS = """
query($pipeId: ID!, $search: String!) {
  cards(pipe_id: $pipeId, search: { title: $search }) {
    edges { node { id title fields { name value } } }
  }
}
"""

_CREATE_CARD = """
mutation($pipeId: ID!, $phaseId: ID, $fields: [FieldValueInput]) {
  createCard(input: { pipe_id: $pipeId, phase_id: $phaseId, fields_attributes: $fields }) {
    card { id title }
  }
}
"""

_UPDATE_CARD = """
mutation($cardId: ID!, $values: [NodeFieldValueInput!]!) {
  updateFieldsValues(input: { nodeId: $cardId, values: $values }) {
    success
  }
}
"""

_MOVE_CARD = """
mutation($cardId: ID!, $phaseId: ID!) {
  moveCardToPhase(input: { card_id: $cardId, destination_phase_id: $phaseId }) {
    card { id }
  }
}
"""

_CREATE_COMMENT = """
mutation($cardId: ID!, $text: String!) {
  createComment(input: { card_id: $cardId, text: $text }) {
    comment { id }
  }
}
"""

_PIPE_PHASES = """
query($pipeId: ID!) {
  pipe(id: $pipeId) { phases { id name } }
}
"""


def _first_error_message(errors: Any) -> str:
    try:
        return errors[0].get("message") or "unknown error"
    except (AttributeError, IndexError, KeyError, TypeError):
        return str(errors)


def build_card_fields(
    lead: Lead,
    meeting: Meeting | None = None,
    *,
    status: str | None = None,
    interest_confirmed: bool | None = None,
) -> list[dict[str, Any]]:
    """Translate a lead (and optional meeting) into Pipefy field values.

    ``status`` / ``interest_confirmed`` override what is stored on the lead,
    which lets the composite register helpers stamp the CRM-side outcome
    without mutating the local row.
    """
    interest = lead.interest_confirmed if interest_confirmed is None else interest_confirmed
    fields: list[dict[str, Any]] = []

    def add(field_id: str, value: Any) -> None:
        if value is not None and value != "":
            fields.append({"field_id": field_id, "field_value": value})

    add("nome", lead.name)
    add("email", lead.email)
    add("empresa", lead.company)
    add("telefone", lead.phone)
    add("necessidade", lead.need)
    add("interesse_confirmado", "true" if interest else "false")
    add("status", status or lead.status)

    if meeting is not None:
        add("meeting_link", meeting.meeting_link)
        add("meeting_datetime", ensure_utc(meeting.meeting_datetime).isoformat())

    return fields


class PipefyClient:
    """Card CRUD plus the two composite registration flows the agent uses."""

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        *,
        pipe_id: str | None = None,
        phase_id: str | None = None,
    ):
        self._pipe_id = pipe_id or PIPEFY_PIPE_ID
        self._phase_id = phase_id if phase_id is not None else PIPEFY_PHASE_ID
        self._client = httpx.Client(
            headers={
                "Authorization": f"Bearer {api_key or PIPEFY_API_KEY}",
                "Content-Type": "application/json",
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        self._api_url = api_url or PIPEFY_API_URL

    # ── Transport ────────────────────────────────────────────────────

    def _query(self, operation: str, document: str, variables: dict[str, Any]) -> dict[str, Any]:
        """POST one GraphQL document.  HTTP and GraphQL errors both raise."""
        try:
            with metrics.timed("pipefy", operation):
                response = self._client.request(
                    "POST",
                    self._api_url,
                    json={"query": document, "variables": variables},
                )
                if response.status_code >= 400:
                    raise integration_error(
                        SERVICE_NAME, f"HTTP {response.status_code}: {response.text}",
                    )
                payload = response.json()
                if not isinstance(payload, dict):
                    raise integration_error(SERVICE_NAME, f"unexpected response: {type(payload).__name__}")
                if payload.get("errors"):
                    raise integration_error(SERVICE_NAME, _first_error_message(payload["errors"]))
        except httpx.HTTPError as exc:
            logger.error("Pipefy %s failed: %s", operation, exc)
            raise integration_error(SERVICE_NAME, str(exc) or type(exc).__name__) from exc
        except ValueError as exc:
            logger.error("Pipefy %s returned a non-JSON body", operation)
            raise integration_error(SERVICE_NAME, f"invalid JSON response: {exc}") from exc

        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise integration_error(SERVICE_NAME, f"unexpected data: {type(data).__name__}")
        return data

    # ── Cards ────────────────────────────────────────────────────────

    def find_card_by_email(self, email: str) -> str | None:
        """Return the id of the card whose email field equals *email*.

        Lookup failures are logged and treated as "no card" so that an
        upsert can still proceed by creating one.
        """
        try:
            data = self._query("findCards", _FIND_CARDS, {"pipeId": self._pipe_id, "search": email})
        except AppError as exc:
            logger.warning("Pipefy card lookup for %s failed: %s", email, exc.message)
            return None

        try:
            for edge in (data.get("cards") or {}).get("edges") or []:
                node = edge.get("node") or {}
                for card_field in node.get("fields") or []:
                    name = (card_field.get("name") or "").lower()
                    if "email" in name or name == "e-mail":
                        if (card_field.get("value") or "").strip().lower() == email.lower():
                            return str(node["id"])
        except (AttributeError, KeyError, TypeError) as exc:
            logger.warning("Malformed Pipefy card search result for %s: %r", email, exc)
        return None

    def create_card(
        self, lead: Lead, meeting: Meeting | None = None, **overrides: Any,
    ) -> str:
        variables: dict[str, Any] = {
            "pipeId": self._pipe_id,
            "fields": build_card_fields(lead, meeting, **overrides),
        }
        if self._phase_id:
            variables["phaseId"] = self._phase_id

        data = self._query("createCard", _CREATE_CARD, variables)
        try:
            card_id = str(data["createCard"]["card"]["id"])
        except (KeyError, TypeError) as exc:
            raise integration_error(SERVICE_NAME, "createCard returned no card id") from exc
        logger.info("Pipefy card %s created for %s", card_id, lead.email)
        return card_id

    def update_card(
        self, card_id: str, lead: Lead, meeting: Meeting | None = None, **overrides: Any,
    ) -> None:
        values = [
            {"fieldId": f["field_id"], "value": f["field_value"]}
            for f in build_card_fields(lead, meeting, **overrides)
        ]
        self._query("updateCard", _UPDATE_CARD, {"cardId": card_id, "values": values})
        logger.info("Pipefy card %s updated", card_id)

    def upsert_card(
        self, lead: Lead, meeting: Meeting | None = None, **overrides: Any,
    ) -> str:
        card_id = self.find_card_by_email(lead.email)
        if card_id:
            self.update_card(card_id, lead, meeting, **overrides)
            return card_id
        return self.create_card(lead, meeting, **overrides)

    def move_card(self, card_id: str, phase_id: str) -> None:
        self._query("moveCard", _MOVE_CARD, {"cardId": card_id, "phaseId": phase_id})
        logger.info("Pipefy card %s moved to phase %s", card_id, phase_id)

    def add_comment(self, card_id: str, comment: str) -> bool:
        """Best-effort: a failed comment is logged, never raised."""
        try:
            self._query("createComment", _CREATE_COMMENT, {"cardId": card_id, "text": comment})
        except AppError as exc:
            logger.warning("Pipefy comment on card %s failed: %s", card_id, exc.message)
            return False
        return True

    def get_phases(self) -> list[dict[str, str]]:
        try:
            data = self._query("pipePhases", _PIPE_PHASES, {"pipeId": self._pipe_id})
        except AppError as exc:
            logger.warning("Could not list Pipefy phases: %s", exc.message)
            return []
        return (data.get("pipe") or {}).get("phases", [])

    # ── Composite flows ──────────────────────────────────────────────

    def register_no_interest_lead(self, lead: Lead) -> str:
        """Upsert the card as ``closed_lost`` and explain why."""
        card_id = self.upsert_card(
            lead, status=LeadStatus.CLOSED_LOST.value, interest_confirmed=False,
        )
        self.add_comment(card_id, NO_INTEREST_COMMENT)
        return card_id

    def register_qualified_lead(self, lead: Lead, meeting: Meeting) -> str:
        """Upsert the card with the meeting fields and a success comment."""
        card_id = self.upsert_card(
            lead, meeting,
            status=LeadStatus.MEETING_SCHEDULED.value, interest_confirmed=True,
        )
        when = format_datetime(ensure_utc(meeting.meeting_datetime))
        self.add_comment(
            card_id,
            f"✅ Lead qualificado!\n\nReunião agendada para: {when}\n"
            f"Link: {meeting.meeting_link or 'N/A'}",
        )
        return card_id
