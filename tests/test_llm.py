"""Tests for the Claude adapter: message conversion, parsing and errors."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import anthropic
import httpx
import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from lynx_sdr.errors import AppError, ErrorKind
from lynx_sdr.llm import (
    MALFORMED_CALL_APOLOGY,
    FunctionCall,
    FunctionResult,
    LLMAdapter,
    message_text,
    to_langchain_messages,
)
from lynx_sdr.models import ChatMessage
from lynx_sdr.services.store import ConversationData


def _msg(role: str, content: str) -> ChatMessage:
    return ChatMessage(session_id="s1", role=role, content=content)


def _adapter(response=None, side_effect=None):
    model = MagicMock()
    model.invoke.return_value = response if response is not None else AIMessage(content="ok")
    model.invoke.side_effect = side_effect
    return LLMAdapter(llm=model), model


def _status_error(cls, status: int):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    return cls("boom", response=httpx.Response(status, request=request), body=None)


# ── Message conversion ───────────────────────────────────────────────


class TestToLangchainMessages:
    def test_roles_are_mapped(self):
        messages = to_langchain_messages(
            [_msg("user", "Oi"), _msg("assistant", "Olá"), _msg("user", "Tudo bem?")]
        )
        assert isinstance(messages[0], SystemMessage)
        assert [type(m) for m in messages[1:]] == [HumanMessage, AIMessage, HumanMessage]

    def test_leading_greeting_is_folded_into_system_prompt(self):
        messages = to_langchain_messages([_msg("assistant", "Bem-vindo!"), _msg("user", "Oi")])
        assert "Bem-vindo!" in messages[0].content
        assert isinstance(messages[1], HumanMessage)
        assert len(messages) == 2

    def test_truncated_window_leading_reply_is_not_called_an_opener(self):
        history = [_msg("assistant", "Qual o nome da sua empresa?"), _msg("user", "Acme")]
        system = to_langchain_messages(history)[0].content
        assert "Sua mensagem anterior nesta conversa foi:\nQual o nome da sua empresa?" in system
        assert "abertura" not in system

    def test_collected_data_is_appended_to_system_prompt(self):
        data = ConversationData(session_id="s1", name="Ana", email="ana@acme.com",
                                collected_fields=["name", "email"])
        system = to_langchain_messages([_msg("user", "Oi")], data)[0].content
        assert "[DADOS JÁ COLETADOS: Nome: Ana, Email: ana@acme.com]" in system

    def test_no_context_block_without_data(self):
        system = to_langchain_messages([_msg("user", "Oi")])[0].content
        assert "DADOS JÁ COLETADOS" not in system


def test_message_text_joins_text_blocks():
    message = AIMessage(content=["Olá ", {"type": "text", "text": "Ana"}])
    assert message_text(message) == "Olá Ana"


# ── Response parsing ─────────────────────────────────────────────────


class TestParse:
    def test_plain_text(self):
        adapter, _ = _adapter(AIMessage(content="Olá!"))
        reply = adapter.chat([_msg("user", "Oi")])
        assert reply.text == "Olá!"
        assert reply.function_calls == []

    def test_only_first_function_call_is_surfaced(self):
        adapter, _ = _adapter(
            AIMessage(
                content="",
                tool_calls=[
                    {"name": "record_field", "args": {"field": "nome", "value": "Ana"}, "id": "t1"},
                    {"name": "record_field", "args": {"field": "email", "value": "a@b.co"}, "id": "t2"},
                ],
            )
        )
        reply = adapter.chat([_msg("user", "Sou a Ana, a@b.co")])
        assert reply.function_calls == [
            FunctionCall(name="record_field", args={"field": "nome", "value": "Ana"}, call_id="t1")
        ]

    def test_malformed_call_becomes_apology(self):
        adapter, _ = _adapter(
            AIMessage(
                content="",
                invalid_tool_calls=[
                    {"name": "book_meeting", "args": "{oops", "id": "t1", "error": "bad json"}
                ],
            )
        )
        reply = adapter.chat([_msg("user", "o segundo")])
        assert reply.text == MALFORMED_CALL_APOLOGY
        assert reply.function_calls == []


# ── Function results ─────────────────────────────────────────────────


class TestChatWithFunctionResult:
    def test_first_result_is_sent_as_tool_message(self):
        adapter, model = _adapter(AIMessage(content="Pronto!"))
        first = FunctionResult(
            call=FunctionCall("record_field", {"field": "nome", "value": "Ana"}, "t1"),
            response={"success": True, "data": {"value": "Ana"}},
        )
        second = FunctionResult(
            call=FunctionCall("confirm_interest", {"confirmed": "sim"}, "t2"),
            response={"success": False, "error": "email not yet collected"},
        )

        reply = adapter.chat_with_function_result([_msg("user", "Sou a Ana")], [first, second])

        assert reply.text == "Pronto!"
        sent = model.invoke.call_args.args[0]
        assert sent[-2].tool_calls[0]["id"] == "t1"
        assert isinstance(sent[-1], ToolMessage)
        assert sent[-1].tool_call_id == "t1"
        assert json.loads(sent[-1].content) == first.response

    def test_without_results_falls_back_to_chat(self):
        adapter, model = _adapter(AIMessage(content="Oi"))
        adapter.chat_with_function_result([_msg("user", "Oi")], [])
        assert not any(isinstance(m, ToolMessage) for m in model.invoke.call_args.args[0])


# ── Error normalisation ──────────────────────────────────────────────


class TestErrors:
    @pytest.mark.parametrize(
        ("exc", "expected"),
        [
            (_status_error(anthropic.RateLimitError, 429), "Limite de requisições excedido"),
            (_status_error(anthropic.AuthenticationError, 401), "API Key inválida"),
            (RuntimeError("socket closed"), "Erro desconhecido na comunicação"),
        ],
    )
    def test_failures_become_integration_errors(self, exc, expected):
        adapter, _ = _adapter(side_effect=exc)
        with pytest.raises(AppError) as exc_info:
            adapter.chat([_msg("user", "Oi")])
        assert exc_info.value.kind is ErrorKind.INTEGRATION
        assert exc_info.value.service == "Anthropic"
        assert exc_info.value.message == expected
