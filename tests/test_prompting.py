import json

import pytest

from suhaider.models import JsonSchema
from suhaider.prompting import augment, clean, is_valid_json


def test_augment_without_schema_is_identity():
    assert augment("hello", None) == "hello"


def test_augment_describes_schema():
    schema = JsonSchema(
        properties={"name": {"type": "string"}, "address": {"type": "object", "properties": {}}},
        required=["name"],
    )
    prompt = augment("Who are you?", schema)
    assert prompt.startswith("IMPORTANT INSTRUCTIONS:")
    assert "REQUIRED JSON STRUCTURE:" in prompt
    assert prompt.endswith("USER TASK:\nWho are you?")
    structure = prompt.split("REQUIRED JSON STRUCTURE:\n")[1].split("\n\nUSER TASK:")[0]
    assert json.loads(structure) == {
        "type": "object",
        "properties": {"name": "string", "address": "object (nested)"},
        "required": ["name"],
    }


@pytest.mark.parametrize(
    "raw,expected",
    [
        ('```json\n{"a": 1}\n```', '{"a": 1}'),
        ('```\n[1, 2]\n```', "[1, 2]"),
        ('Sure! Here it is: {"a": 1} hope this helps', '{"a": 1}'),
        ('{"a": 1}', '{"a": 1}'),
    ],
)
def test_clean(raw, expected):
    assert clean(raw) == expected


def test_clean_passes_empty_through():
    assert clean(None) is None
    assert clean("  ") == "  "


def test_is_valid_json():
    assert is_valid_json('{"a": 1}')
    assert not is_valid_json("{a: 1}")
    assert not is_valid_json("")
