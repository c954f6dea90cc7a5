"""FastAPI route definitions for the Lynx SDR API."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request, Response

from lynx_sdr.api.schemas import (
    ChatRequest,
    ChatResponse,
    EndSessionResponse,
    HealthResponse,
    HistoryResponse,
    MessageOut,
    StartSessionResponse,
)
from lynx_sdr.errors import AppError, ErrorKind
from lynx_sdr.models import ensure_utc
from lynx_sdr.orchestrator import ConversationOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()

INTEGRATION_ERROR_DETAIL = (
    "Estamos com dificuldade para falar com um serviço externo. "
    "Tente novamente em instantes."
)
INTERNAL_ERROR_DETAIL = "Ocorreu um erro interno. Tente novamente."

_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INTEGRATION: 502,
}


def _get_orchestrator(request: Request) -> ConversationOrchestrator:
    """Retrieve the orchestrator built during the FastAPI lifespan."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=503,
            detail="O serviço está iniciando. Tente novamente em instantes.",
        )
    return orchestrator


def _to_http_error(exc: AppError, request_id: str) -> HTTPException:
    """Map an ``AppError`` to a response without leaking adapter internals."""
    status = _STATUS_BY_KIND.get(exc.kind, 500)
    if exc.kind is ErrorKind.INTEGRATION:
        logger.error("[%s] %s", request_id, exc)
        return HTTPException(status_code=status, detail=INTEGRATION_ERROR_DETAIL)
    logger.info("[%s] %s: %s", request_id, exc.kind.value, exc.message)
    return HTTPException(status_code=status, detail=exc.message)


async def _run(http_request: Request, func, *args):
    """Run a blocking orchestrator call in the thread pool and map errors.

    Every orchestrator call talks to the database and possibly the model,
    so it is offloaded with ``asyncio.to_thread`` to keep the event loop
    free for other sessions.
    """
    request_id = getattr(http_request.state, "request_id", "?")
    try:
        return await asyncio.to_thread(func, *args)
    except AppError as exc:
        raise _to_http_error(exc, request_id) from exc
    except Exception as exc:
        logger.exception("[%s] Unexpected error", request_id)
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR_DETAIL) from exc


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check(http_request: Request, response: Response):
    """Health check endpoint; also verifies the database answers."""
    orchestrator = _get_orchestrator(http_request)
    try:
        await asyncio.to_thread(orchestrator.store.ping)
    except Exception:
        logger.exception("Database health check failed")
        response.status_code = 503
        return HealthResponse(status="degraded", database="unavailable")
    return HealthResponse()


@router.post("/session/start", response_model=StartSessionResponse)
async def start_session(http_request: Request):
    """Create a session and return the assistant's greeting."""
    orchestrator = _get_orchestrator(http_request)
    started = await _run(http_request, orchestrator.start_session)
    return StartSessionResponse(
        session_id=started.session_id,
        message=started.message,
        expires_at=started.expires_at,
    )


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, http_request: Request):
    """Send a message to the SDR agent and get its reply.

    Omitting ``session_id`` (or sending an unknown one) starts a new
    session; the response always carries the id to use next.
    """
    orchestrator = _get_orchestrator(http_request)
    result = await _run(http_request, orchestrator.handle_turn, request.session_id, request.message)
    return ChatResponse(message=result.message, session_id=result.session_id)


@router.get("/chat/{session_id}/history", response_model=HistoryResponse)
async def history(session_id: str, http_request: Request):
    orchestrator = _get_orchestrator(http_request)
    found = await _run(http_request, orchestrator.get_history, session_id)
    return HistoryResponse(
        session_id=found.session_id,
        status=found.status,
        messages=[
            MessageOut(role=m.role, content=m.content, created_at=ensure_utc(m.created_at))
            for m in found.messages
        ],
    )


@router.delete("/session/{session_id}", response_model=EndSessionResponse)
async def end_session(session_id: str, http_request: Request):
    orchestrator = _get_orchestrator(http_request)
    await _run(http_request, orchestrator.end_session, session_id)
    return EndSessionResponse()
