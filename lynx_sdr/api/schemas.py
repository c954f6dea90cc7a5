"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Incoming chat message from the frontend."""

    message: str = Field(..., min_length=1, max_length=2000, description="The user's message")
    session_id: str | None = Field(
        default=None,
        max_length=100,
        description="Session identifier; omit to start a new conversation",
    )


class ChatResponse(BaseModel):
    """Response from the agent."""

    message: str = Field(..., description="The agent's response message")
    session_id: str = Field(..., description="The session ID for this conversation")


class StartSessionResponse(BaseModel):
    session_id: str
    message: str = Field(..., description="The assistant's greeting")
    expires_at: datetime


class MessageOut(BaseModel):
    role: str
    content: str
    created_at: datetime


class HistoryResponse(BaseModel):
    session_id: str
    status: str
    messages: list[MessageOut]


class EndSessionResponse(BaseModel):
    success: bool = True
    message: str = "Sessão encerrada"


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "lynx-sdr"
    database: str = "ok"
