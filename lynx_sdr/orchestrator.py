"""Conversation orchestrator: drives one chat turn end to end.

``handle_turn`` validates the message, resolves (or creates) the session,
persists the user's message, runs the turn graph and persists the reply.
The HTTP layer and the CLI both sit on top of this class; neither talks to
the model, the store or the adapters directly.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.engine import Engine

from lynx_sdr.agent import build_turn_graph
from lynx_sdr.db import create_db_engine, create_session_factory, init_db
from lynx_sdr.dispatcher import FunctionDispatcher
from lynx_sdr.errors import not_found_error, validation_error
from lynx_sdr.llm import LLMAdapter
from lynx_sdr.models import ChatMessage, MessageRole, SessionStatus, ensure_utc
from lynx_sdr.prompts import get_greeting
from lynx_sdr.services.calendar_client import CalComClient
from lynx_sdr.services.pipefy_client import PipefyClient
from lynx_sdr.services.slot_cache import SlotCache
from lynx_sdr.services.store import ConversationStore

logger = logging.getLogger(__name__)

EMPTY_REPLY_FALLBACK = "Desculpe, não consegui gerar uma resposta. Pode reformular sua mensagem?"

_TERMINAL_STATUSES = {SessionStatus.EXPIRED.value, SessionStatus.COMPLETED.value}


@dataclass(frozen=True)
class TurnResult:
    message: str
    session_id: str


@dataclass(frozen=True)
class StartedSession:
    session_id: str
    message: str
    expires_at: datetime


@dataclass(frozen=True)
class SessionHistory:
    session_id: str
    status: str
    messages: list[ChatMessage]


def new_session_id() -> str:
    return str(uuid.uuid4())


class ConversationOrchestrator:
    def __init__(
        self,
        store: ConversationStore,
        llm: LLMAdapter,
        dispatcher: FunctionDispatcher,
    ) -> None:
        self._store = store
        self._graph = build_turn_graph(llm, dispatcher, store)

    @property
    def store(self) -> ConversationStore:
        return self._store

    # ── Turns ────────────────────────────────────────────────────────

    def handle_turn(self, session_id: str | None, message: str) -> TurnResult:
        """Process one user message and return the assistant's reply.

        Raises :class:`~lynx_sdr.errors.AppError` with kind ``validation``
        for an empty message or an expired/closed session, and kind
        ``integration`` when the model cannot be reached.
        """
        text = (message or "").strip()
        if not text:
            raise validation_error("A mensagem não pode estar vazia")

        session_id = self._resolve_session(session_id)
        self._store.save_message(session_id, MessageRole.USER, text)

        state = self._graph.invoke(
            {
                "session_id": session_id,
                "history": self._store.get_messages(session_id),
                "conversation": self._store.get_conversation_data(session_id),
            }
        )

        reply = state["reply"].text or EMPTY_REPLY_FALLBACK
        self._store.save_message(session_id, MessageRole.ASSISTANT, reply)
        return TurnResult(message=reply, session_id=session_id)

    def _resolve_session(self, session_id: str | None) -> str:
        """Return a session id that may accept a turn, creating one if needed."""
        if session_id:
            existing = self._store.get_session(session_id)
            if existing is not None:
                if existing.status in _TERMINAL_STATUSES:
                    raise validation_error("Sessão encerrada. Inicie uma nova conversa.")
                if self._store.now() > ensure_utc(existing.expires_at):
                    self._store.update_session_status(session_id, SessionStatus.EXPIRED)
                    logger.info("[%s] Session expired", session_id)
                    raise validation_error("Sessão expirada. Inicie uma nova conversa.")
                self._store.extend_session(session_id)
                return session_id
            logger.info("Unknown session %s; starting a new one", session_id)

        fresh = new_session_id()
        self._store.create_session(fresh)
        return fresh

    # ── Session lifecycle ────────────────────────────────────────────

    def start_session(self) -> StartedSession:
        """Create a session and seed it with the assistant's greeting."""
        session_id = new_session_id()
        chat_session = self._store.create_session(session_id)
        greeting = get_greeting()
        self._store.save_message(session_id, MessageRole.ASSISTANT, greeting)
        return StartedSession(
            session_id=session_id,
            message=greeting,
            expires_at=ensure_utc(chat_session.expires_at),
        )

    def get_history(self, session_id: str) -> SessionHistory:
        chat_session = self._store.get_session(session_id)
        if chat_session is None:
            raise not_found_error("Sessão não encontrada")
        return SessionHistory(
            session_id=session_id,
            status=chat_session.status,
            messages=self._store.get_messages(session_id),
        )

    def end_session(self, session_id: str) -> None:
        self._store.update_session_status(session_id, SessionStatus.COMPLETED)
        logger.info("[%s] Session ended by client", session_id)


# ── Composition root ─────────────────────────────────────────────────


def create_orchestrator(
    engine: Engine | None = None,
    *,
    slot_cache: SlotCache | None = None,
) -> ConversationOrchestrator:
    """Wire the store, adapters, slot cache and model into an orchestrator.

    The caller owns *slot_cache* (and its sweep timer) when it passes one.
    """
    engine = engine if engine is not None else create_db_engine()
    init_db(engine)
    store = ConversationStore(create_session_factory(engine))
    dispatcher = FunctionDispatcher(
        store,
        slot_cache if slot_cache is not None else SlotCache(),
        CalComClient(),
        PipefyClient(),
    )
    return ConversationOrchestrator(store, LLMAdapter(), dispatcher)
