"""Centralized configuration for the Lynx SDR agent.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/lynx-sdr/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store, or ``None``."""
    try:
        import boto3

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/lynx-sdr/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /lynx-sdr/{name} (AWS)."
    )


# ── LLM ─────────────────────────────────────────────────────────────
ANTHROPIC_API_KEY: str = _require_env("ANTHROPIC_API_KEY")
MODEL_NAME: str = os.getenv("MODEL_NAME", "claude-sonnet-4-5")
LLM_TEMPERATURE: float = float(os.getenv("LLM_TEMPERATURE", "0.7"))
LLM_MAX_TOKENS: int = int(os.getenv("LLM_MAX_TOKENS", "1000"))
LLM_TIMEOUT_SECONDS: float = float(os.getenv("LLM_TIMEOUT_SECONDS", "30"))

# ── Database ────────────────────────────────────────────────────────
DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./lynx_sdr.db")

# ── Pipefy (CRM) ────────────────────────────────────────────────────
PIPEFY_API_KEY: str = _require_env("PIPEFY_API_KEY")
PIPEFY_API_URL: str = "https://api.pipefy.com/graphql"
PIPEFY_PIPE_ID: str = _require_env("PIPEFY_PIPE_ID")
PIPEFY_PHASE_ID: str = os.getenv("PIPEFY_PHASE_ID", "")

# ── Cal.com (calendar) ──────────────────────────────────────────────
CALENDAR_API_KEY: str = _require_env("CALENDAR_API_KEY")
CALENDAR_API_URL: str = os.getenv("CALENDAR_API_URL", "https://api.cal.com/v1")
CALENDAR_EVENT_TYPE_ID: str = os.getenv("CALENDAR_EVENT_TYPE_ID", "")
CALENDAR_TIMEZONE: str = os.getenv("CALENDAR_TIMEZONE", "America/Sao_Paulo")

# ── Conversation ────────────────────────────────────────────────────
SESSION_TIMEOUT_MINUTES: int = int(os.getenv("SESSION_TIMEOUT_MINUTES", "30"))
MAX_MESSAGES: int = int(os.getenv("MAX_MESSAGES", "50"))
SLOT_CACHE_MAX_ENTRIES: int = int(os.getenv("SLOT_CACHE_MAX_ENTRIES", "100"))
SLOT_CACHE_SWEEP_SECONDS: int = int(os.getenv("SLOT_CACHE_SWEEP_SECONDS", "600"))

# ── Agent persona ───────────────────────────────────────────────────
PRODUCT_NAME: str = os.getenv("PRODUCT_NAME", "Sistema de Automação de Marketing")
PRODUCT_DESCRIPTION: str = os.getenv(
    "PRODUCT_DESCRIPTION",
    "Plataforma completa de automação de marketing e vendas que ajuda empresas "
    "a aumentar conversões e otimizar processos comerciais",
)
COMPANY_NAME: str = os.getenv("COMPANY_NAME", "TechSolutions")
AGENT_TONE: str = os.getenv("AGENT_TONE", "profissional, empático e consultivo")

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "3000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:5173",
).split(",")
