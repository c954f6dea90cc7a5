"""Functions the model may call, declared as Anthropic tool schemas.

The declarations only describe the contract to the model; the matching
behaviour lives in :mod:`lynx_sdr.dispatcher`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from lynx_sdr.models import LeadField


class FunctionName(str, Enum):
    RECORD_FIELD = "record_field"
    CONFIRM_INTEREST = "confirm_interest"
    FETCH_AVAILABLE_SLOTS = "fetch_available_slots"
    BOOK_MEETING = "book_meeting"


# Labels the model may send for ``record_field.field``.  Anything else is
# rejected rather than stored under an arbitrary column name.
FIELD_LABELS: dict[str, LeadField] = {
    "nome": LeadField.NAME,
    "name": LeadField.NAME,
    "email": LeadField.EMAIL,
    "e-mail": LeadField.EMAIL,
    "empresa": LeadField.COMPANY,
    "company": LeadField.COMPANY,
    "telefone": LeadField.PHONE,
    "phone": LeadField.PHONE,
    "necessidade": LeadField.NEED,
    "need": LeadField.NEED,
}

AFFIRMATIVE_TOKENS = frozenset({"sim", "yes"})

DEFAULT_DAYS_AHEAD = 7
SLOTS_SHOWN = 3


FUNCTION_DECLARATIONS: list[dict[str, Any]] = [
    {
        "name": FunctionName.RECORD_FIELD.value,
        "description": (
            "Salva uma informação coletada do lead (nome, email, empresa, "
            "telefone ou necessidade). Chame uma vez para cada dado informado."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "field": {
                    "type": "string",
                    "description": "Campo a ser salvo",
                    "enum": ["nome", "email", "empresa", "telefone", "necessidade"],
                },
                "value": {
                    "type": "string",
                    "description": "Valor informado pelo lead",
                },
            },
            "required": ["field", "value"],
        },
    },
    {
        "name": FunctionName.CONFIRM_INTEREST.value,
        "description": (
            "Registra se o lead confirmou (sim) ou recusou (nao) explicitamente "
            "o interesse em seguir com o produto/serviço. Exige email já coletado."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "confirmed": {
                    "type": "string",
                    "description": "Se o interesse foi confirmado",
                    "enum": ["sim", "nao"],
                },
            },
            "required": ["confirmed"],
        },
    },
    {
        "name": FunctionName.FETCH_AVAILABLE_SLOTS.value,
        "description": "Busca horários disponíveis para agendar a reunião com o time comercial.",
        "input_schema": {
            "type": "object",
            "properties": {
                "days_ahead": {
                    "type": "string",
                    "description": f"Quantos dias à frente buscar (padrão: {DEFAULT_DAYS_AHEAD})",
                },
            },
            "required": [],
        },
    },
    {
        "name": FunctionName.BOOK_MEETING.value,
        "description": (
            "Agenda a reunião no horário escolhido pelo lead, entre os horários "
            "retornados por fetch_available_slots. Exige nome e email já coletados."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "slot_index": {
                    "type": "string",
                    "description": "Índice do horário escolhido, começando em 0 (0, 1, 2, ...)",
                },
            },
            "required": ["slot_index"],
        },
    },
]
