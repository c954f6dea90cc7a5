"""Tests for the function declarations and the prompt helpers."""

from __future__ import annotations

from lynx_sdr.models import LeadField
from lynx_sdr.prompts import build_conversation_context, get_greeting, get_system_prompt
from lynx_sdr.services.store import ConversationData
from lynx_sdr.tools import FIELD_LABELS, FUNCTION_DECLARATIONS, FunctionName


def test_every_function_is_declared_once():
    names = [d["name"] for d in FUNCTION_DECLARATIONS]
    assert sorted(names) == sorted(f.value for f in FunctionName)


def test_declared_field_labels_are_all_mapped():
    record = next(d for d in FUNCTION_DECLARATIONS if d["name"] == "record_field")
    for label in record["input_schema"]["properties"]["field"]["enum"]:
        assert label in FIELD_LABELS


def test_interest_flag_is_not_a_recordable_field():
    assert LeadField.INTEREST_CONFIRMED not in FIELD_LABELS.values()


def test_system_prompt_mentions_every_function():
    prompt = get_system_prompt()
    for name in FunctionName:
        assert name.value in prompt


def test_greeting_names_the_company():
    assert "TechSolutions" in get_greeting()


def test_context_includes_interest_flag():
    data = ConversationData(session_id="s1", interest_confirmed=False, collected_fields=["interestConfirmed"])
    assert build_conversation_context(data) == "\n\n[DADOS JÁ COLETADOS: Interesse confirmado: NÃO]"
