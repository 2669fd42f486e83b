"""Tests for the declarative rule checker and message templates."""

import re

import pytest

from formstore.messages import DEFAULT_VALIDATE_MESSAGES, format_message, merge_messages, replace_message
from formstore.rules import Rule, check_rule


def _check(value, name="field", messages=None, **rule):
    return check_rule(name, value, Rule(**rule), merge_messages(messages))


class TestCoerce:
    def test_from_dict(self):
        rule = Rule.coerce({"required": True, "message": "nope"})
        assert rule.required is True
        assert rule.message == "nope"

    def test_rule_passes_through(self):
        rule = Rule(min=1)
        assert Rule.coerce(rule) is rule

    def test_unknown_keys_raise(self):
        with pytest.raises(TypeError, match="requird"):
            Rule.coerce({"requird": True})


class TestRequired:
    def test_none_and_empty_fail(self):
        assert _check(None, required=True) == ["'field' is required"]
        assert _check("", required=True) == ["'field' is required"]
        assert _check([], required=True) == ["'field' is required"]

    def test_value_passes(self):
        assert _check("x", required=True) == []
        assert _check(0, required=True) == []

    def test_whitespace(self):
        assert _check("   ", whitespace=True) == ["'field' cannot be empty"]
        assert _check(" a ", whitespace=True) == []


class TestType:
    def test_string(self):
        assert _check(1, type="string") == ["'field' is not a valid string"]
        assert _check("1", type="string") == []

    def test_number_excludes_bool(self):
        assert _check(True, type="number") == ["'field' is not a valid number"]
        assert _check(1.5, type="number") == []

    def test_integer_and_float(self):
        assert _check(2, type="integer") == []
        assert _check(2.5, type="integer") != []
        assert _check(2.5, type="float") == []

    def test_email(self):
        assert _check("a@b.co", type="email") == []
        assert _check("not-an-email", type="email") == ["'field' is not a valid email"]

    def test_url(self):
        assert _check("https://example.com/x", type="url") == []
        assert _check("example", type="url") != []

    def test_empty_string_skips_type(self):
        assert _check("", type="email") == []

    def test_none_skips_everything_but_required(self):
        assert _check(None, type="number", min=3) == []


class TestRange:
    def test_string_length(self):
        assert _check("ab", min=3) == ["'field' must be at least 3 characters"]
        assert _check("abcd", max=3) == ["'field' cannot be longer than 3 characters"]
        assert _check("ab", len=3) == ["'field' must be exactly 3 characters"]

    def test_number_range(self):
        assert _check(10, min=1, max=5) == ["'field' must be between 1 and 5"]
        assert _check(3, min=1, max=5) == []

    def test_array_length(self):
        assert _check([1], type="array", min=2) == ["'field' cannot be less than 2 in length"]

    def test_min_on_empty_string_fails(self):
        assert _check("", min=5) == ["'field' must be at least 5 characters"]


class TestPatternAndEnum:
    def test_pattern_string(self):
        assert _check("abc", pattern=r"^\d+$") == ["'field' value abc does not match pattern ^\\d+$"]
        assert _check("123", pattern=r"^\d+$") == []

    def test_pattern_compiled(self):
        assert _check("ABC", pattern=re.compile("^[a-z]+$", re.IGNORECASE)) == []

    def test_enum(self):
        assert _check("c", enum=["a", "b"]) == ["'field' must be one of [a, b]"]
        assert _check("a", enum=["a", "b"]) == []


class TestTransformAndMessages:
    def test_transform_runs_first(self):
        assert _check("  ", required=True, transform=str.strip) == ["'field' is required"]

    def test_rule_message_overrides(self):
        assert _check(None, required=True, message="${name} please") == ["field please"]

    def test_custom_messages(self):
        errors = _check(None, name="user", required=True, messages={"required": "Need ${name}!"})
        assert errors == ["Need user!"]

    def test_default_field_checks_items(self):
        errors = _check(["ok", ""], type="array", default_field={"required": True})
        assert errors == ["'field.1' is required"]


class TestTemplates:
    def test_replace_message(self):
        assert replace_message("${a} and ${missing}", {"a": 1}) == "1 and "

    def test_format_message(self):
        assert format_message("%s to %s", 1, 2) == "1 to 2"
        assert format_message("%s to %s", 1) == "1 to %s"

    def test_merge_messages_keeps_defaults(self):
        merged = merge_messages({"string": {"min": "short"}})
        assert merged["string"]["min"] == "short"
        assert merged["string"]["max"] == DEFAULT_VALIDATE_MESSAGES["string"]["max"]
