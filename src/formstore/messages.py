"""Validation message templates.

Templates use ``${key}`` placeholders filled from the rule and field name,
then ``%s`` placeholders filled positionally with the constraint values:

    "'${name}' must be at least %s characters"  ->  "'user' must be at least 3 characters"
"""

from __future__ import annotations

import re
from typing import Any

from formstore._namepath import merge

_TYPE_TEMPLATE = "'${name}' is not a valid ${type}"

DEFAULT_VALIDATE_MESSAGES: dict[str, Any] = {
    "default": "Validation error on field '${name}'",
    "required": "'${name}' is required",
    "enum": "'${name}' must be one of [${enum}]",
    "whitespace": "'${name}' cannot be empty",
    "date": {
        "format": "'${name}' date %s is invalid for format %s",
        "parse": "'${name}' date could not be parsed, %s is invalid ",
        "invalid": "'${name}' date %s is invalid",
    },
    "types": {
        "string": _TYPE_TEMPLATE,
        "method": _TYPE_TEMPLATE,
        "array": _TYPE_TEMPLATE,
        "object": _TYPE_TEMPLATE,
        "number": _TYPE_TEMPLATE,
        "date": _TYPE_TEMPLATE,
        "boolean": _TYPE_TEMPLATE,
        "integer": _TYPE_TEMPLATE,
        "float": _TYPE_TEMPLATE,
        "regexp": _TYPE_TEMPLATE,
        "email": _TYPE_TEMPLATE,
        "url": _TYPE_TEMPLATE,
        "hex": _TYPE_TEMPLATE,
    },
    "string": {
        "len": "'${name}' must be exactly %s characters",
        "min": "'${name}' must be at least %s characters",
        "max": "'${name}' cannot be longer than %s characters",
        "range": "'${name}' must be between %s and %s characters",
    },
    "number": {
        "len": "'${name}' must equal %s",
        "min": "'${name}' cannot be less than %s",
        "max": "'${name}' cannot be greater than %s",
        "range": "'${name}' must be between %s and %s",
    },
    "array": {
        "len": "'${name}' must be exactly %s in length",
        "min": "'${name}' cannot be less than %s in length",
        "max": "'${name}' cannot be greater than %s in length",
        "range": "'${name}' must be between %s and %s in length",
    },
    "pattern": {
        "mismatch": "'${name}' value %s does not match pattern %s",
    },
}

_PLACEHOLDER = re.compile(r"\$\{(\w+)\}")


def replace_message(template: str, kv: dict[str, Any]) -> str:
    """Fill ${key} placeholders. Unknown keys render as an empty string."""

    def _sub(match: re.Match) -> str:
        value = kv.get(match.group(1))
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(_sub, template)


def format_message(template: str, *args: Any) -> str:
    """Fill %s placeholders left to right. Extra placeholders stay as-is."""
    parts = template.split("%s")
    out = [parts[0]]
    for i, part in enumerate(parts[1:]):
        out.append(str(args[i]) if i < len(args) else "%s")
        out.append(part)
    return "".join(out)


def merge_messages(*overrides: dict | None) -> dict[str, Any]:
    """Defaults deep-merged with each override in order."""
    return merge(DEFAULT_VALIDATE_MESSAGES, *(o for o in overrides if o))


def lookup(messages: dict[str, Any], *keys: str) -> str | None:
    node: Any = messages
    for key in keys:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node if isinstance(node, str) else None
