"""Declarative validation rules and the built-in constraint checker.

A Rule bundles declarative constraints (required, type, pattern, min/max/len,
enum, whitespace) with an optional custom validator. The checker here only
handles the declarative part and is synchronous; custom validators are
awaited by formstore.validation.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, fields
from datetime import date, datetime
from typing import Any, Callable

from formstore.messages import format_message, lookup, replace_message

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_URL = re.compile(r"^(?:(?:https?|ftp)://)[^\s/$.?#].[^\s]*$", re.IGNORECASE)
_HEX = re.compile(r"^#?([a-f0-9]{6}|[a-f0-9]{3})$", re.IGNORECASE)


@dataclass
class Rule:
    required: bool = False
    type: str | None = None
    pattern: str | re.Pattern | None = None
    min: float | None = None
    max: float | None = None
    len: int | None = None
    enum: list | None = None
    whitespace: bool = False
    transform: Callable[[Any], Any] | None = None
    message: str | None = None
    validator: Callable | None = None
    # Failures become warnings and never block submission.
    warning_only: bool = False
    # Subset of the field's triggers this rule runs on.
    validate_trigger: str | list[str] | None = None
    # Rule applied to every item when type == "array".
    default_field: Rule | dict | None = None

    @classmethod
    def coerce(cls, rule: Rule | dict) -> Rule:
        """Accept a Rule or a dict of Rule fields."""
        if isinstance(rule, Rule):
            return rule
        known = {f.name for f in fields(cls)}
        unknown = set(rule) - known
        if unknown:
            raise TypeError(f"unknown rule keys: {sorted(unknown)}")
        return cls(**rule)

    def template_values(self, name: str) -> dict[str, Any]:
        kv = {f.name: getattr(self, f.name) for f in fields(self)}
        kv["name"] = name
        kv["enum"] = ", ".join(str(e) for e in (self.enum or []))
        if isinstance(self.pattern, re.Pattern):
            kv["pattern"] = self.pattern.pattern
        return kv


def is_empty(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, (list, tuple)) and not value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not (
        isinstance(value, float) and math.isnan(value)
    )


def _is_regexp(value: Any) -> bool:
    if isinstance(value, re.Pattern):
        return True
    if not isinstance(value, str):
        return False
    try:
        re.compile(value)
    except re.error:
        return False
    return True


_TYPE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "number": _is_number,
    "boolean": lambda v: isinstance(v, bool),
    "integer": lambda v: _is_number(v) and float(v).is_integer(),
    "float": lambda v: _is_number(v) and not float(v).is_integer(),
    "method": callable,
    "regexp": _is_regexp,
    "array": lambda v: isinstance(v, (list, tuple)),
    "object": lambda v: isinstance(v, dict),
    "date": lambda v: isinstance(v, (date, datetime)),
    "email": lambda v: isinstance(v, str) and bool(_EMAIL.match(v)) and len(v) <= 320,
    "url": lambda v: isinstance(v, str) and bool(_URL.match(v)) and len(v) <= 2048,
    "hex": lambda v: isinstance(v, str) and bool(_HEX.match(v)),
}


def _range_kind(rule: Rule, value: Any) -> tuple[str, Any] | None:
    if isinstance(value, str):
        return "string", len(value)
    if isinstance(value, (list, tuple)):
        return "array", len(value)
    if _is_number(value):
        return "number", value
    return None


def check_rule(name: str, value: Any, rule: Rule, messages: dict[str, Any]) -> list[str]:
    """Check the declarative constraints of one rule against value.

    Returns the error messages, empty when the value passes. A rule-level
    `message` replaces whatever the checker would have produced.
    """
    errors: list[str] = []
    kv = rule.template_values(name)

    def fail(*keys: str, args: tuple = ()) -> None:
        template = lookup(messages, *keys) or lookup(messages, "default") or ""
        errors.append(format_message(replace_message(template, kv), *args))

    if rule.transform is not None:
        value = rule.transform(value)

    if rule.required and is_empty(value):
        fail("required")
    elif rule.whitespace and isinstance(value, str) and value and not value.strip():
        fail("whitespace")

    if value is None:
        return _finish(errors, rule, kv)

    if rule.type and rule.type != "enum" and value != "":
        check = _TYPE_CHECKS.get(rule.type)
        if check is not None and not check(value):
            fail("types", rule.type)
            return _finish(errors, rule, kv)

    measured = _range_kind(rule, value)
    if measured is not None:
        kind, size = measured
        if rule.len is not None:
            if size != rule.len:
                fail(kind, "len", args=(rule.len,))
        elif rule.min is not None and rule.max is not None:
            if size < rule.min or size > rule.max:
                fail(kind, "range", args=(rule.min, rule.max))
        elif rule.min is not None:
            if size < rule.min:
                fail(kind, "min", args=(rule.min,))
        elif rule.max is not None:
            if size > rule.max:
                fail(kind, "max", args=(rule.max,))

    if rule.pattern is not None and isinstance(value, str) and value != "":
        pattern = rule.pattern if isinstance(rule.pattern, re.Pattern) else re.compile(rule.pattern)
        if not pattern.search(value):
            fail("pattern", "mismatch", args=(value, pattern.pattern))

    if rule.enum is not None and value not in rule.enum:
        fail("enum")

    if rule.type == "array" and rule.default_field is not None and isinstance(value, (list, tuple)):
        item_rule = Rule.coerce(rule.default_field)
        for index, item in enumerate(value):
            errors.extend(check_rule(f"{name}.{index}", item, item_rule, messages))

    return _finish(errors, rule, kv)


def _finish(errors: list[str], rule: Rule, kv: dict[str, Any]) -> list[str]:
    if errors and rule.message is not None:
        return [replace_message(rule.message, kv)]
    return errors
