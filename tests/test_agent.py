"""Tests for the LangGraph turn graph routing."""

from __future__ import annotations

from unittest.mock import MagicMock

from langgraph.graph import END

from lynx_sdr.agent import TurnState, build_turn_graph, should_dispatch
from lynx_sdr.llm import FunctionCall, LLMReply
from lynx_sdr.services.store import ConversationData

# ── Helpers ──────────────────────────────────────────────────────────


def _state(**overrides) -> TurnState:
    state: TurnState = {
        "session_id": "s1",
        "history": [],
        "conversation": ConversationData(session_id="s1"),
    }
    state.update(overrides)
    return state


def _graph(first: LLMReply, second: LLMReply | None = None):
    llm = MagicMock()
    llm.chat.return_value = first
    llm.chat_with_function_result.return_value = second or LLMReply(text="depois")
    dispatcher = MagicMock()
    dispatcher.execute.return_value = {"success": True, "data": {}}
    store = MagicMock()
    store.get_conversation_data.return_value = ConversationData(session_id="s1", name="Ana",
                                                                collected_fields=["name"])
    return build_turn_graph(llm, dispatcher, store), llm, dispatcher, store


# ── Conditional edge ─────────────────────────────────────────────────


class TestShouldDispatch:
    def test_plain_reply_ends(self):
        assert should_dispatch(_state(reply=LLMReply(text="oi"))) == END

    def test_function_call_dispatches(self):
        reply = LLMReply(text="", function_calls=[FunctionCall("fetch_available_slots", {}, "t1")])
        assert should_dispatch(_state(reply=reply)) == "dispatch"


# ── End-to-end routing ───────────────────────────────────────────────


class TestTurnGraph:
    def test_plain_reply_skips_dispatch(self):
        graph, llm, dispatcher, _ = _graph(LLMReply(text="Olá"))
        result = graph.invoke(_state())
        assert result["reply"].text == "Olá"
        dispatcher.execute.assert_not_called()
        llm.chat_with_function_result.assert_not_called()

    def test_function_call_runs_dispatch_then_respond(self):
        call = FunctionCall("record_field", {"field": "nome", "value": "Ana"}, "t1")
        graph, llm, dispatcher, store = _graph(LLMReply(text="", function_calls=[call]))

        result = graph.invoke(_state())

        assert result["reply"].text == "depois"
        dispatcher.execute.assert_called_once_with("record_field", {"field": "nome", "value": "Ana"}, "s1")
        store.get_conversation_data.assert_called_once_with("s1")
        _, results, data = llm.chat_with_function_result.call_args.args
        assert results[0].call is call
        assert data.name == "Ana"

    def test_second_function_request_does_not_loop(self):
        call = FunctionCall("fetch_available_slots", {}, "t1")
        again = LLMReply(text="Um momento", function_calls=[FunctionCall("book_meeting", {"slot_index": "0"}, "t2")])
        graph, llm, dispatcher, _ = _graph(LLMReply(text="", function_calls=[call]), again)

        result = graph.invoke(_state())

        assert result["reply"].text == "Um momento"
        assert dispatcher.execute.call_count == 1
        assert llm.chat.call_count == 1
