"""Lynx SDR — a conversational sales development representative.

Architecture Overview
=====================

Each inbound chat message is one **turn**, driven by the
:class:`~lynx_sdr.orchestrator.ConversationOrchestrator`:

1. The session is resolved (created, extended, or rejected when expired).
2. The user's message is persisted and the recent transcript is loaded.
3. A small LangGraph turn graph asks Claude for a reply.  When Claude
   requests a function (record a field, confirm interest, fetch slots, book
   a meeting), the **dispatcher** executes it and Claude is asked again with
   the result.
4. The final reply is persisted and returned.

Key Design Decisions
--------------------
- **LLM**: Claude via ``langchain-anthropic`` with four bound tools.  No
  retries; a failed call fails the turn with an integration error.
- **Calendar**: Cal.com REST API v1.  **CRM**: Pipefy GraphQL API.
- **Persistence**: SQLAlchemy 2.0 ORM (SQLite by default) for sessions,
  messages, collected fields, leads and meetings.
- **Slot cache**: an explicit in-memory component owned by the server, swept
  on a timer.
- **Errors**: one ``AppError`` tagged with a kind (validation, not_found,
  integration); the HTTP layer maps kinds to status codes.
- **Dual Interface**: FastAPI server (production) + CLI chat loop (development).

Package Structure
-----------------
- ``lynx_sdr/orchestrator.py`` — turn handling, session lifecycle, wiring
- ``lynx_sdr/agent.py`` — LangGraph turn graph
- ``lynx_sdr/dispatcher.py`` — function execution
- ``lynx_sdr/llm.py`` — Claude adapter
- ``lynx_sdr/tools.py`` — function declarations and field labels
- ``lynx_sdr/prompts.py`` — system prompt and greeting
- ``lynx_sdr/models.py`` / ``lynx_sdr/db.py`` — ORM models and engine setup
- ``lynx_sdr/config.py`` — centralized configuration
- ``lynx_sdr/server.py`` — FastAPI application
- ``lynx_sdr/main.py`` — CLI chat interface
- ``lynx_sdr/services/`` — store, slot cache, Cal.com, Pipefy, metrics
- ``lynx_sdr/api/`` — FastAPI routes and Pydantic schemas
"""
