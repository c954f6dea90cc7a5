"""LLM adapter: Claude via LangChain, with the SDR functions bound as tools.

The adapter owns everything provider-specific: message conversion, the
system prompt, tool binding, error normalisation and metrics.  Callers only
see :class:`LLMReply` and :class:`~lynx_sdr.errors.AppError`.

At most one function call is surfaced per reply even when the provider asks
for several, and only the first function result is threaded back into the
follow-up request.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import anthropic
from langchain_anthropic import ChatAnthropic
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from lynx_sdr.config import (
    ANTHROPIC_API_KEY,
    LLM_MAX_TOKENS,
    LLM_TEMPERATURE,
    LLM_TIMEOUT_SECONDS,
    MODEL_NAME,
)
from lynx_sdr.errors import AppError, integration_error
from lynx_sdr.models import ChatMessage, MessageRole
from lynx_sdr.prompts import build_conversation_context, get_system_prompt
from lynx_sdr.services.metrics import metrics
from lynx_sdr.services.store import ConversationData
from lynx_sdr.tools import FUNCTION_DECLARATIONS

logger = logging.getLogger(__name__)

SERVICE_NAME = "Anthropic"

MALFORMED_CALL_APOLOGY = "Desculpe, ocorreu um erro ao processar sua solicitação. Pode repetir, por favor?"


@dataclass(frozen=True)
class FunctionCall:
    name: str
    args: dict[str, Any]
    call_id: str


@dataclass(frozen=True)
class FunctionResult:
    call: FunctionCall
    response: dict[str, Any]

    @property
    def name(self) -> str:
        return self.call.name


@dataclass
class LLMReply:
    text: str
    function_calls: list[FunctionCall] = field(default_factory=list)


def _build_llm():
    """Claude with the SDR functions bound.  No retries: a failed call fails
    the turn."""
    llm = ChatAnthropic(
        model=MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=LLM_TEMPERATURE,
        max_tokens=LLM_MAX_TOKENS,
        timeout=LLM_TIMEOUT_SECONDS,
        max_retries=0,
    )
    return llm.bind_tools(FUNCTION_DECLARATIONS)


def message_text(message: BaseMessage) -> str:
    """Plain text of a message whose content may be a list of blocks."""
    content = message.content
    if isinstance(content, str):
        return content.strip()
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts).strip()


def to_langchain_messages(
    history: Sequence[ChatMessage],
    data: ConversationData | None = None,
) -> list[BaseMessage]:
    """Convert the stored transcript into a provider-ready message list.

    Anthropic conversations must open with a user turn, so any assistant
    messages before the first user message and any stored system notes are
    folded into the system prompt.  That leading assistant message is the
    seeded greeting only while the history window still reaches the start
    of the session, so it is labelled as a previous message, not an opener.
    """
    system_notes: list[str] = []
    turns: list[BaseMessage] = []

    for msg in history:
        if msg.role == MessageRole.SYSTEM.value:
            system_notes.append(msg.content)
        elif msg.role == MessageRole.USER.value:
            turns.append(HumanMessage(content=msg.content))
        elif not turns:
            system_notes.append(f"Sua mensagem anterior nesta conversa foi:\n{msg.content}")
        else:
            turns.append(AIMessage(content=msg.content))

    system = get_system_prompt()
    if system_notes:
        system += "\n\n" + "\n\n".join(system_notes)
    system += build_conversation_context(data)
    return [SystemMessage(content=system), *turns]


class LLMAdapter:
    """``chat`` / ``chat_with_function_result`` over a tool-bound chat model."""

    def __init__(self, llm=None):
        self._llm = llm if llm is not None else _build_llm()

    def chat(
        self,
        history: Sequence[ChatMessage],
        data: ConversationData | None = None,
    ) -> LLMReply:
        messages = to_langchain_messages(history, data)
        return self._parse(self._invoke(messages, "chat"))

    def chat_with_function_result(
        self,
        history: Sequence[ChatMessage],
        results: Sequence[FunctionResult],
        data: ConversationData | None = None,
    ) -> LLMReply:
        if not results:
            return self.chat(history, data)

        first = results[0]
        if len(results) > 1:
            logger.info(
                "Only the first of %d function results is sent back (%s)",
                len(results), first.name,
            )

        messages = to_langchain_messages(history, data)
        messages.append(
            AIMessage(
                content="",
                tool_calls=[
                    {
                        "name": first.call.name,
                        "args": first.call.args,
                        "id": first.call.call_id,
                        "type": "tool_call",
                    }
                ],
            )
        )
        messages.append(
            ToolMessage(
                content=json.dumps(first.response, ensure_ascii=False, default=str),
                tool_call_id=first.call.call_id,
            )
        )
        return self._parse(self._invoke(messages, "chat_with_function_result"))

    # ── Internal ──────────────────────────────────────────────────────

    def _invoke(self, messages: list[BaseMessage], operation: str) -> AIMessage:
        try:
            with metrics.timed("anthropic", operation):
                return self._llm.invoke(messages)
        except AppError:
            raise
        except anthropic.RateLimitError as exc:
            logger.warning("Anthropic rate limit hit during %s", operation)
            raise integration_error(SERVICE_NAME, "Limite de requisições excedido") from exc
        except anthropic.AuthenticationError as exc:
            logger.error("Anthropic rejected the API key")
            raise integration_error(SERVICE_NAME, "API Key inválida") from exc
        except anthropic.APIError as exc:
            logger.error("Anthropic API error during %s: %s", operation, exc)
            raise integration_error(SERVICE_NAME, str(exc)) from exc
        except Exception as exc:
            logger.exception("Unexpected failure calling the model (%s)", operation)
            raise integration_error(SERVICE_NAME, "Erro desconhecido na comunicação") from exc

    @staticmethod
    def _parse(response: AIMessage) -> LLMReply:
        text = message_text(response)
        tool_calls = getattr(response, "tool_calls", None) or []

        if tool_calls:
            if len(tool_calls) > 1:
                logger.info(
                    "Model requested %d function calls; acting on %s only",
                    len(tool_calls), tool_calls[0]["name"],
                )
            first = tool_calls[0]
            call = FunctionCall(
                name=first["name"],
                args=dict(first.get("args") or {}),
                call_id=first.get("id") or f"call_{uuid.uuid4().hex}",
            )
            logger.debug("Model requested %s(%s)", call.name, call.args)
            return LLMReply(text=text, function_calls=[call])

        if getattr(response, "invalid_tool_calls", None):
            logger.warning(
                "Discarding malformed function call: %s", response.invalid_tool_calls[0],
            )
            return LLMReply(text=text or MALFORMED_CALL_APOLOGY)

        return LLMReply(text=text)
