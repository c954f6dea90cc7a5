"""Tests for turn handling and the session lifecycle."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from lynx_sdr.errors import AppError, ErrorKind, integration_error
from lynx_sdr.llm import FunctionCall, LLMReply
from lynx_sdr.models import SessionStatus, ensure_utc
from lynx_sdr.orchestrator import EMPTY_REPLY_FALLBACK, ConversationOrchestrator


@pytest.fixture
def llm():
    mock = MagicMock()
    mock.chat.return_value = LLMReply(text="Olá! Como posso te chamar?")
    mock.chat_with_function_result.return_value = LLMReply(text="Anotado!")
    return mock


@pytest.fixture
def orchestrator(store, llm, dispatcher):
    return ConversationOrchestrator(store, llm, dispatcher)


def _call(name: str, **args) -> FunctionCall:
    return FunctionCall(name=name, args=args, call_id=f"call-{name}")


# ── Session resolution ───────────────────────────────────────────────


class TestSessionResolution:
    def test_no_session_id_creates_one(self, orchestrator, store):
        result = orchestrator.handle_turn(None, "Oi")
        assert result.session_id
        assert store.get_session(result.session_id).status == "active"

    def test_unknown_session_id_gets_fresh_id(self, orchestrator, store):
        result = orchestrator.handle_turn("does-not-exist", "Oi")
        assert result.session_id != "does-not-exist"
        assert store.get_session("does-not-exist") is None

    def test_known_session_is_reused_and_extended(self, orchestrator, store, clock, session_id):
        clock.advance(minutes=25)
        result = orchestrator.handle_turn(session_id, "Oi")
        assert result.session_id == session_id
        assert ensure_utc(store.get_session(session_id).expires_at) == clock() + timedelta(minutes=30)

    def test_expired_session_is_rejected(self, orchestrator, store, clock, llm, session_id):
        clock.advance(minutes=31)
        with pytest.raises(AppError) as exc_info:
            orchestrator.handle_turn(session_id, "Oi")
        assert exc_info.value.kind is ErrorKind.VALIDATION
        assert store.get_session(session_id).status == SessionStatus.EXPIRED.value
        assert store.get_messages(session_id) == []
        llm.chat.assert_not_called()

    def test_completed_session_is_rejected(self, orchestrator, store, session_id):
        store.update_session_status(session_id, SessionStatus.COMPLETED)
        with pytest.raises(AppError) as exc_info:
            orchestrator.handle_turn(session_id, "Oi")
        assert exc_info.value.kind is ErrorKind.VALIDATION
        assert store.get_messages(session_id) == []

    @pytest.mark.parametrize("message", ["", "   ", None])
    def test_empty_message_is_rejected_without_side_effects(self, orchestrator, store, llm, session_id, message):
        with pytest.raises(AppError) as exc_info:
            orchestrator.handle_turn(session_id, message)
        assert exc_info.value.kind is ErrorKind.VALIDATION
        assert store.get_messages(session_id) == []
        llm.chat.assert_not_called()


# ── Turn flow ────────────────────────────────────────────────────────


class TestTurnFlow:
    def test_plain_reply_is_persisted(self, orchestrator, store, llm, session_id):
        result = orchestrator.handle_turn(session_id, "  Oi  ")
        assert result.message == "Olá! Como posso te chamar?"
        messages = store.get_messages(session_id)
        assert [(m.role, m.content) for m in messages] == [
            ("user", "Oi"),
            ("assistant", "Olá! Como posso te chamar?"),
        ]
        llm.chat_with_function_result.assert_not_called()

    def test_history_sent_to_model_includes_user_message(self, orchestrator, llm, session_id):
        orchestrator.handle_turn(session_id, "Oi")
        history = llm.chat.call_args.args[0]
        assert history[-1].content == "Oi"

    def test_function_call_is_dispatched_and_result_threaded_back(self, orchestrator, store, llm, session_id):
        llm.chat.return_value = LLMReply(text="", function_calls=[_call("record_field", field="nome", value="Ana")])

        result = orchestrator.handle_turn(session_id, "Sou a Ana")

        assert result.message == "Anotado!"
        assert store.get_conversation_data(session_id).name == "Ana"
        history, results, data = llm.chat_with_function_result.call_args.args
        assert results[0].name == "record_field"
        assert results[0].response["success"] is True
        assert data.name == "Ana"

    def test_invalid_email_still_produces_reply(self, orchestrator, store, llm):
        llm.chat.return_value = LLMReply(
            text="", function_calls=[_call("record_field", field="email", value="not-an-email")],
        )
        llm.chat_with_function_result.return_value = LLMReply(text="Pode confirmar seu email?")

        result = orchestrator.handle_turn(None, "Hi")

        assert result.message == "Pode confirmar seu email?"
        results = llm.chat_with_function_result.call_args.args[1]
        assert results[0].response["success"] is False
        assert "invalid email" in results[0].response["error"]
        assert store.get_conversation_data(result.session_id).collected_fields == []

    def test_all_calls_run_in_order(self, orchestrator, store, llm, session_id):
        llm.chat.return_value = LLMReply(
            text="",
            function_calls=[
                _call("record_field", field="email", value="ana@acme.com"),
                _call("confirm_interest", confirmed="sim"),
            ],
        )
        orchestrator.handle_turn(session_id, "ana@acme.com, tenho interesse")

        assert store.get_lead_by_email("ana@acme.com").status == "qualified"
        results = llm.chat_with_function_result.call_args.args[1]
        assert [r.name for r in results] == ["record_field", "confirm_interest"]

    def test_empty_model_text_gets_fallback(self, orchestrator, llm, session_id):
        llm.chat.return_value = LLMReply(text="")
        assert orchestrator.handle_turn(session_id, "Oi").message == EMPTY_REPLY_FALLBACK

    def test_llm_failure_propagates_as_integration_error(self, orchestrator, store, llm, session_id):
        llm.chat.side_effect = integration_error("Anthropic", "Limite de requisições excedido")
        with pytest.raises(AppError) as exc_info:
            orchestrator.handle_turn(session_id, "Oi")
        assert exc_info.value.kind is ErrorKind.INTEGRATION
        assert [m.role for m in store.get_messages(session_id)] == ["user"]


# ── Lifecycle operations ─────────────────────────────────────────────


class TestLifecycle:
    def test_start_session_seeds_greeting(self, orchestrator, store, clock):
        started = orchestrator.start_session()
        assert started.expires_at == clock() + timedelta(minutes=30)
        messages = store.get_messages(started.session_id)
        assert len(messages) == 1
        assert messages[0].role == "assistant"
        assert messages[0].content == started.message

    def test_history(self, orchestrator):
        started = orchestrator.start_session()
        orchestrator.handle_turn(started.session_id, "Oi")
        found = orchestrator.get_history(started.session_id)
        assert found.status == "active"
        assert [m.role for m in found.messages] == ["assistant", "user", "assistant"]

    def test_history_unknown_session(self, orchestrator):
        with pytest.raises(AppError) as exc_info:
            orchestrator.get_history("missing")
        assert exc_info.value.kind is ErrorKind.NOT_FOUND

    def test_end_session_marks_completed(self, orchestrator, store):
        started = orchestrator.start_session()
        orchestrator.end_session(started.session_id)
        assert store.get_session(started.session_id).status == "completed"

    def test_end_unknown_session(self, orchestrator):
        with pytest.raises(AppError) as exc_info:
            orchestrator.end_session("missing")
        assert exc_info.value.kind is ErrorKind.NOT_FOUND
