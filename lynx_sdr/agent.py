"""LangGraph turn graph for the SDR agent.

Architecture:
  One user turn runs through a small StateGraph with three nodes:

    1. **model**    — asks the model for a reply given the stored transcript
                      and the data collected so far
    2. **dispatch** — executes the requested function(s) in order and
                      reloads the collected data
    3. **respond**  — second model call with the first function result

  Routing:
    model → (function calls?) → dispatch → respond → END
          → (plain text?)     → END

  There is no loop back into ``model``: a follow-up request that asks for
  another function ends the turn with whatever text it carried.  The graph
  keeps no checkpoint; the transcript lives in the conversation store.
"""

from __future__ import annotations

import logging

from langgraph.graph import END, StateGraph
from typing_extensions import TypedDict

from lynx_sdr.dispatcher import FunctionDispatcher
from lynx_sdr.llm import FunctionResult, LLMAdapter, LLMReply
from lynx_sdr.models import ChatMessage
from lynx_sdr.services.store import ConversationData, ConversationStore

logger = logging.getLogger(__name__)


# ── State schema ─────────────────────────────────────────────────────


class TurnState(TypedDict, total=False):
    """State that flows through one turn.

    ``history`` is the stored transcript ending with the user's message.
    ``reply`` is overwritten by each model node; the last one wins.
    """

    session_id: str
    history: list[ChatMessage]
    conversation: ConversationData
    reply: LLMReply
    function_results: list[FunctionResult]


# ── Nodes ────────────────────────────────────────────────────────────


def _make_model_node(llm: LLMAdapter):
    def model_node(state: TurnState) -> dict:
        reply = llm.chat(state["history"], state.get("conversation"))
        logger.debug(
            "[%s] model replied (%d chars, %d function calls)",
            state["session_id"], len(reply.text), len(reply.function_calls),
        )
        return {"reply": reply}

    return model_node


def _make_dispatch_node(dispatcher: FunctionDispatcher, store: ConversationStore):
    """Execute every requested call sequentially, then refresh the collected
    data so the follow-up request sees what the functions just stored."""

    def dispatch_node(state: TurnState) -> dict:
        session_id = state["session_id"]
        results = [
            FunctionResult(call=call, response=dispatcher.execute(call.name, call.args, session_id))
            for call in state["reply"].function_calls
        ]
        return {
            "function_results": results,
            "conversation": store.get_conversation_data(session_id),
        }

    return dispatch_node


def _make_respond_node(llm: LLMAdapter):
    def respond_node(state: TurnState) -> dict:
        reply = llm.chat_with_function_result(
            state["history"], state["function_results"], state.get("conversation"),
        )
        return {"reply": reply}

    return respond_node


# ── Conditional edges ────────────────────────────────────────────────


def should_dispatch(state: TurnState) -> str:
    """Route to ``dispatch`` when the model asked for a function."""
    reply = state.get("reply")
    if reply is not None and reply.function_calls:
        return "dispatch"
    return END


# ── Graph assembly ───────────────────────────────────────────────────


def build_turn_graph(
    llm: LLMAdapter,
    dispatcher: FunctionDispatcher,
    store: ConversationStore,
):
    """Build and compile the turn graph.

    Invoke with::

        graph.invoke({"session_id": ..., "history": [...], "conversation": data})
    """
    graph = StateGraph(TurnState)

    graph.add_node("model", _make_model_node(llm))
    graph.add_node("dispatch", _make_dispatch_node(dispatcher, store))
    graph.add_node("respond", _make_respond_node(llm))

    graph.set_entry_point("model")
    graph.add_conditional_edges("model", should_dispatch, {"dispatch": "dispatch", END: END})
    graph.add_edge("dispatch", "respond")
    graph.add_edge("respond", END)

    return graph.compile()
