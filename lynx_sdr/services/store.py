"""Conversation store — sessions, transcript, collected fields, leads, meetings.

Every public method opens its own short-lived SQLAlchemy session and commits
before returning, so rows are atomic individually but there is no
cross-entity transaction.  Returned ORM objects are detached
(``expire_on_commit=False``) and safe to read after the call.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from lynx_sdr.config import MAX_MESSAGES, SESSION_TIMEOUT_MINUTES
from lynx_sdr.errors import not_found_error
from lynx_sdr.models import (
    ChatMessage,
    ChatSession,
    ConversationField,
    Lead,
    LeadField,
    Meeting,
    MeetingStatus,
    SessionStatus,
    ensure_utc,
    utcnow,
)

logger = logging.getLogger(__name__)

_LEAD_UPDATABLE = frozenset(
    {"name", "company", "phone", "need", "interest_confirmed", "status", "pipefy_card_id"}
)


def _value(item: Any) -> Any:
    return item.value if isinstance(item, Enum) else item


def normalise_email(email: str) -> str:
    return email.strip().lower()


@dataclass
class ConversationData:
    """Snapshot of the Collected Field Set for one session."""

    session_id: str
    name: str | None = None
    email: str | None = None
    company: str | None = None
    phone: str | None = None
    need: str | None = None
    interest_confirmed: bool | None = None
    collected_fields: list[str] = field(default_factory=list)

    def lead_fields(self) -> dict[str, Any]:
        """The subset of attributes copied onto a Lead row."""
        return {
            "name": self.name,
            "company": self.company,
            "phone": self.phone,
            "need": self.need,
        }


class ConversationStore:
    """Row-level persistence used by the orchestrator and the dispatcher."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        session_timeout: timedelta | None = None,
        max_messages: int = MAX_MESSAGES,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._timeout = session_timeout or timedelta(minutes=SESSION_TIMEOUT_MINUTES)
        self._max_messages = max_messages
        self._clock = clock

    @property
    def session_timeout(self) -> timedelta:
        return self._timeout

    def now(self) -> datetime:
        return self._clock()

    def ping(self) -> None:
        """Round-trip a trivial query; raises if the database is unreachable."""
        with self._session_factory() as db:
            db.execute(text("SELECT 1"))

    # ── Sessions ─────────────────────────────────────────────────────

    def create_session(self, session_id: str) -> ChatSession:
        now = self._clock()
        chat_session = ChatSession(
            session_id=session_id,
            status=SessionStatus.ACTIVE.value,
            created_at=now,
            updated_at=now,
            expires_at=now + self._timeout,
        )
        with self._session_factory.begin() as db:
            db.add(chat_session)
        logger.info("Session %s created", session_id)
        return chat_session

    def get_session(self, session_id: str) -> ChatSession | None:
        with self._session_factory() as db:
            return db.scalar(select(ChatSession).where(ChatSession.session_id == session_id))

    def extend_session(self, session_id: str) -> datetime:
        """Slide the expiry window to ``now + timeout``."""
        now = self._clock()
        expires_at = now + self._timeout
        with self._session_factory.begin() as db:
            row = self._require_session(db, session_id)
            row.expires_at = expires_at
            row.updated_at = now
        return expires_at

    def update_session_status(self, session_id: str, status: SessionStatus | str) -> None:
        with self._session_factory.begin() as db:
            row = self._require_session(db, session_id)
            row.status = _value(status)
            row.updated_at = self._clock()
        logger.info("Session %s → %s", session_id, _value(status))

    def update_session_email(self, session_id: str, email: str) -> None:
        with self._session_factory.begin() as db:
            row = self._require_session(db, session_id)
            row.email = email
            row.updated_at = self._clock()

    @staticmethod
    def _require_session(db: Session, session_id: str) -> ChatSession:
        row = db.scalar(select(ChatSession).where(ChatSession.session_id == session_id))
        if row is None:
            raise not_found_error("Sessão não encontrada")
        return row

    # ── Messages ─────────────────────────────────────────────────────

    def save_message(self, session_id: str, role: str, content: str) -> ChatMessage:
        message = ChatMessage(
            session_id=session_id,
            role=_value(role),
            content=content,
            created_at=self._clock(),
        )
        with self._session_factory.begin() as db:
            db.add(message)
        return message

    def get_messages(self, session_id: str, limit: int | None = None) -> list[ChatMessage]:
        """Return the most recent ``limit`` messages, oldest first."""
        limit = limit or self._max_messages
        with self._session_factory() as db:
            rows = db.scalars(
                select(ChatMessage)
                .where(ChatMessage.session_id == session_id)
                .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
                .limit(limit)
            ).all()
        return list(reversed(rows))

    # ── Collected fields ─────────────────────────────────────────────

    def save_conversation_field(
        self, session_id: str, field_name: LeadField | str, value: str,
    ) -> None:
        """Upsert one collected value (last write wins)."""
        name = _value(field_name)
        now = self._clock()
        with self._session_factory.begin() as db:
            row = db.scalar(
                select(ConversationField).where(
                    ConversationField.session_id == session_id,
                    ConversationField.field_name == name,
                )
            )
            if row is None:
                db.add(
                    ConversationField(
                        session_id=session_id,
                        field_name=name,
                        field_value=value,
                        collected_at=now,
                    )
                )
            else:
                row.field_value = value
                row.collected_at = now

    def get_conversation_data(self, session_id: str) -> ConversationData:
        with self._session_factory() as db:
            rows = db.scalars(
                select(ConversationField)
                .where(ConversationField.session_id == session_id)
                .order_by(ConversationField.id)
            ).all()

        data = ConversationData(session_id=session_id)
        for row in rows:
            data.collected_fields.append(row.field_name)
            if row.field_name == LeadField.INTEREST_CONFIRMED.value:
                data.interest_confirmed = row.field_value.strip().lower() == "true"
            elif row.field_name in {f.value for f in LeadField}:
                setattr(data, row.field_name, row.field_value)
        return data

    # ── Leads ────────────────────────────────────────────────────────

    def get_lead_by_email(self, email: str) -> Lead | None:
        with self._session_factory() as db:
            return db.scalar(select(Lead).where(Lead.email == normalise_email(email)))

    def create_lead(self, email: str, **fields: Any) -> Lead:
        self._check_lead_fields(fields)
        now = self._clock()
        lead = Lead(
            email=normalise_email(email),
            created_at=now,
            updated_at=now,
            last_contact_at=now,
            **{k: _value(v) for k, v in fields.items() if v is not None},
        )
        with self._session_factory.begin() as db:
            db.add(lead)
        logger.info("Lead %s created (status=%s)", lead.email, lead.status)
        return lead

    def update_lead(self, email: str, **fields: Any) -> Lead:
        """Apply non-``None`` values.  The email key itself is immutable."""
        self._check_lead_fields(fields)
        now = self._clock()
        with self._session_factory.begin() as db:
            lead = db.scalar(select(Lead).where(Lead.email == normalise_email(email)))
            if lead is None:
                raise not_found_error(f"Lead com email {email} não encontrado")
            for key, value in fields.items():
                if value is not None:
                    setattr(lead, key, _value(value))
            lead.updated_at = now
            lead.last_contact_at = now
        return lead

    def upsert_lead(self, email: str, **fields: Any) -> Lead:
        """Find by email, then create or update.

        Two concurrent creates for a brand-new email race on the unique
        ``leads.email`` constraint; the loser re-applies its values as an
        update so only one row ever exists.
        """
        if self.get_lead_by_email(email) is not None:
            return self.update_lead(email, **fields)
        try:
            return self.create_lead(email, **fields)
        except IntegrityError:
            logger.warning("Lead %s was created concurrently; updating instead", email)
            return self.update_lead(email, **fields)

    def update_lead_card_id(self, email: str, card_id: str) -> Lead:
        return self.update_lead(email, pipefy_card_id=card_id)

    @staticmethod
    def _check_lead_fields(fields: dict[str, Any]) -> None:
        unknown = set(fields) - _LEAD_UPDATABLE
        if unknown:
            raise ValueError(f"Unknown lead attributes: {sorted(unknown)}")

    # ── Meetings ─────────────────────────────────────────────────────

    def create_meeting(
        self,
        *,
        lead_id: uuid.UUID,
        session_id: str,
        meeting_datetime: datetime,
        meeting_link: str | None = None,
        calendar_event_id: str | None = None,
        status: MeetingStatus = MeetingStatus.SCHEDULED,
        notes: str | None = None,
    ) -> Meeting:
        now = self._clock()
        meeting = Meeting(
            lead_id=lead_id,
            session_id=session_id,
            meeting_datetime=ensure_utc(meeting_datetime).astimezone(UTC),
            meeting_link=meeting_link,
            calendar_event_id=calendar_event_id,
            status=_value(status),
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        with self._session_factory.begin() as db:
            db.add(meeting)
        logger.info("Meeting %s created for lead %s", meeting.id, lead_id)
        return meeting

    def update_meeting_status(self, meeting_id: uuid.UUID, status: MeetingStatus | str) -> None:
        with self._session_factory.begin() as db:
            meeting = db.get(Meeting, meeting_id)
            if meeting is None:
                raise not_found_error("Reunião não encontrada")
            meeting.status = _value(status)
            meeting.updated_at = self._clock()

    def get_meetings_by_lead(self, lead_id: uuid.UUID) -> list[Meeting]:
        with self._session_factory() as db:
            return list(
                db.scalars(
                    select(Meeting)
                    .where(Meeting.lead_id == lead_id)
                    .order_by(Meeting.meeting_datetime.desc())
                ).all()
            )

