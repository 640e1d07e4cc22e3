"""Tests for tool-call argument parsing and JSON repair."""

import pytest

from larder.agent.arguments import parse_arguments, repair_json


class TestParseArguments:
    def test_dict_passes_through_as_copy(self):
        raw = {"name": "milk"}
        parsed = parse_arguments(raw)
        assert parsed == raw
        assert parsed is not raw

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty_input(self, raw):
        assert parse_arguments(raw) == {}

    def test_json_string(self):
        assert parse_arguments('{"name": "milk", "quantity": 2}') == {"name": "milk", "quantity": 2}

    def test_unparsable_string_is_wrapped(self):
        assert parse_arguments("two litres of milk") == {"value": "two litres of milk"}

    def test_non_object_json_is_wrapped(self):
        assert parse_arguments("[1, 2]") == {"value": [1, 2]}
        assert parse_arguments("42") == {"value": 42}

    def test_non_string_scalar_is_wrapped(self):
        assert parse_arguments(7) == {"value": 7}


class TestRepair:
    """Almost-JSON the models actually produce."""

    def test_trailing_comma(self):
        assert parse_arguments('{"name": "rice",}') == {"name": "rice"}

    def test_single_quotes(self):
        assert parse_arguments("{'name': 'rice', 'quantity': 1}") == {"name": "rice", "quantity": 1}

    def test_bare_keys(self):
        assert parse_arguments('{name: "rice", quantity: 1}') == {"name": "rice", "quantity": 1}

    def test_truncated_object(self):
        assert parse_arguments('{"name": "rice", "tags": ["dry"') == {"name": "rice", "tags": ["dry"]}

    def test_missing_outer_braces(self):
        assert parse_arguments('"name": "rice"') == {"name": "rice"}

    def test_hopeless_input_returns_none(self):
        assert repair_json("{{{:::") is None
