"""
Tests for the text repair chain.

Tests:
- Each pass fixes its own class of damage
- Passes 1-4 are idempotent
- Already-valid JSON is never touched
- Structure coercion and the last-resort tier
"""

import json
import pytest

from ..extraction.repair import (
    RepairError,
    coerce_structure,
    escape_string_internals,
    last_resort_repair,
    normalize_quotes,
    parse_lenient,
    quote_bare_keys,
    remove_extra_commas,
    repair,
    strip_wrappers,
)


MALFORMED = [
    # unquoted keys
    ('{key: "FlatModifier", selector: "ac", value: 1}',
     {"key": "FlatModifier", "selector": "ac", "value": 1}),
    # trailing commas
    ('{"rules": [{"key": "Note",},], "explanation": "x",}',
     {"rules": [{"key": "Note"}], "explanation": "x"}),
    # single quotes
    ("{'key': 'RollOption', 'option': 'raging'}",
     {"key": "RollOption", "option": "raging"}),
    # stray comments
    ('{\n  // the modifier\n  "key": "FlatModifier", /* inline */ "selector": "ac"\n}',
     {"key": "FlatModifier", "selector": "ac"}),
    # everything at once, wrapped in a fence
    ("```javascript\n{\n  rules: [\n    {key: 'FlatModifier', selector: 'attack', value: 1,},\n  ],\n"
     "  explanation: 'Adds one',\n}\n```",
     {"rules": [{"key": "FlatModifier", "selector": "attack", "value": 1}], "explanation": "Adds one"}),
]

VALID = [
    '{"a": 1}',
    '{"text": "a, b: c // not a comment"}',
    '[{"key": "Note", "text": "it\'s fine"}]',
    '{"nested": {"list": [1, 2, 3]}, "flag": true, "none": null}',
]


class TestRepairChain:
    """Tests for repair() and parse_lenient()."""

    @pytest.mark.parametrize("text,expected", MALFORMED)
    def test_recoverable_inputs_parse(self, text, expected):
        """Repair followed by parse succeeds on recoverable damage."""
        assert json.loads(repair(text)) == expected
        assert parse_lenient(text) == expected

    @pytest.mark.parametrize("text", VALID)
    def test_valid_json_is_untouched(self, text):
        """Repair is a no-op on text that already parses."""
        assert repair(text) == text

    def test_unrepairable_text_raises(self):
        """Prose with no structure cannot be repaired."""
        with pytest.raises(RepairError):
            parse_lenient("there is nothing structured here")

    def test_prose_around_object_is_dropped(self):
        """Only the first balanced structure survives."""
        assert parse_lenient('Here you go: {"a": 1} hope that helps') == {"a": 1}

    def test_return_wrapper(self):
        """A `return {...};` wrapper is removed."""
        assert parse_lenient('return {"a": 1};') == {"a": 1}

    def test_raw_newline_inside_string(self):
        """Raw newlines inside string values are escaped."""
        text = '{"text": "line one\nline two"}'
        assert parse_lenient(text) == {"text": "line one\nline two"}

    def test_truncated_output_is_closed(self):
        """A reply cut off mid-structure gets its brackets closed."""
        text = '{"rules": [{"key": "Note", "selector": "all"'
        assert parse_lenient(text) == {"rules": [{"key": "Note", "selector": "all"}]}

    def test_truncated_inside_key(self):
        """A reply cut off inside a key keeps every complete member."""
        value = parse_lenient('{"rules": [{"key": "Note", "sel')
        assert value["rules"][0]["key"] == "Note"

    @pytest.mark.parametrize("text,expected", [
        ("{text: 'It's a trap'}", {"text": "It's a trap"}),
        ("{name: 'Rogue's Edge', level: 2}", {"name": "Rogue's Edge", "level": 2}),
    ])
    def test_apostrophe_inside_single_quoted_value(self, text, expected):
        """An apostrophe followed by a letter does not close the value."""
        assert parse_lenient(text) == expected


class TestPasses:
    """Tests for the individual passes."""

    def test_strip_wrappers_fence(self):
        assert strip_wrappers('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_quote_bare_keys_leaves_strings_alone(self):
        text = '{"text": "a, b: c"}'
        assert quote_bare_keys(text) == text

    def test_quote_bare_keys(self):
        fixed = quote_bare_keys('{key: "FlatModifier", value: 2}')
        assert fixed == '{"key": "FlatModifier", "value": 2}'

    def test_remove_extra_commas(self):
        assert remove_extra_commas('{"a": [1, 2,], "b": 3,}') == '{"a": [1, 2], "b": 3}'

    def test_remove_duplicate_commas(self):
        assert json.loads(remove_extra_commas('[1,, 2]')) == [1, 2]

    def test_normalize_quotes(self):
        assert normalize_quotes("{'key': 'Note'}") == '{"key": "Note"}'

    def test_normalize_quotes_keeps_apostrophes(self):
        assert normalize_quotes("{'text': 'It's a trap'}") == '{"text": "It\'s a trap"}'

    def test_normalize_quotes_escapes_inner_double_quotes(self):
        fixed = normalize_quotes("{'text': 'say \"hi\"'}")
        assert json.loads(fixed) == {"text": 'say "hi"'}

    def test_escape_string_internals_inner_quote(self):
        """A quote not followed by a structural character is escaped."""
        fixed = escape_string_internals('{"text": "the "best" one"}')
        assert json.loads(fixed) == {"text": 'the "best" one'}

    @pytest.mark.parametrize("repair_pass", [strip_wrappers, quote_bare_keys, remove_extra_commas, normalize_quotes])
    @pytest.mark.parametrize("text", [t for t, _ in MALFORMED])
    def test_passes_are_idempotent(self, repair_pass, text):
        """Applying a pass twice equals applying it once."""
        once = repair_pass(text)
        assert repair_pass(once) == once

    def test_coerce_wraps_bare_pairs(self):
        assert json.loads(coerce_structure('"a": 1, "b": 2')) == {"a": 1, "b": 2}

    def test_coerce_keeps_first_value(self):
        assert coerce_structure('{"a": 1} {"b": 2}') == '{"a": 1}'

    def test_coerce_leaves_prose_alone(self):
        """Text with no brackets and no pairs is returned for the caller to reject."""
        assert coerce_structure("nothing here") == "nothing here"


class TestLastResort:
    """Tests for the destructive fallback tier."""

    def test_collapses_whitespace_and_closes(self):
        fixed = last_resort_repair('{"a": 1,\n  "b": "x\n   y"')
        assert json.loads(fixed) == {"a": 1, "b": "x y"}

    def test_unreadable_tail_keeps_good_members(self):
        """Members before an unreadable tail survive."""
        value = json.loads(last_resort_repair('{"a": 1, "b": [1, 2], "c": @@@'))
        assert value["a"] == 1
        assert value["b"] == [1, 2]
