"""Rule pipelines: run a field's rules and compose their async results.

Three modes, picked by a field's validate_first:

- True: serial. Rules run in order; the first failing rule ends the run.
- "parallel" (any truthy value other than True): rules run concurrently
  and the run settles as soon as one rule fails.
- falsy: rules run concurrently and every rule's errors are collected.

Warning-only rules always run after the blocking ones in serial mode and
their failures are reported as warnings by the caller.

Custom validators come in two shapes:

    async def validator(rule, value): raise ValueError("bad")    # preferred
    def validator(rule, value, callback): callback("bad")         # legacy

A validator signals failure by raising. The legacy shape is adapted onto
a future; when it returns an awaitable as well, the awaitable wins.

The failure message is the rule's `message`, else the exception text,
else the "default" template. The exception text is used for synchronous
validators too, so `raise ValueError("too small")` reads the same either
way. A rule whose declarative check itself raises (a failing `transform`,
an invalid `pattern`) gets the rule's `message` or the "default" template.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Iterable

from formstore._namepath import NamePath
from formstore.interface import FieldError, RuleError, ValidateOptions
from formstore.messages import lookup, merge_messages, replace_message
from formstore.rules import Rule, check_rule

logger = logging.getLogger("formstore.validation")


def _accepts_callback(fn: Any) -> bool:
    try:
        params = list(inspect.signature(fn).parameters.values())
    except (TypeError, ValueError):
        return False
    if any(p.kind is inspect.Parameter.VAR_POSITIONAL for p in params):
        return True
    positional = [
        p for p in params
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    ]
    return len(positional) >= 3


async def _call_validator(rule: Rule, value: Any) -> None:
    """Run rule.validator to completion. Raises when the value is rejected."""
    validator = rule.validator
    if not _accepts_callback(validator):
        result = validator(rule, value)
        if inspect.isawaitable(result):
            await result
        return

    loop = asyncio.get_running_loop()
    settled: asyncio.Future = loop.create_future()
    has_awaitable = False

    def callback(error: Any = None, *_: Any) -> None:
        if has_awaitable:
            logger.warning(
                "Validator for rule %r already returned an awaitable; `callback` is ignored.",
                rule,
            )
            return
        if settled.done():
            return
        if error:
            settled.set_exception(error if isinstance(error, BaseException) else ValueError(error))
        else:
            settled.set_result(None)

    result = validator(rule, value, callback)
    if inspect.isawaitable(result):
        has_awaitable = True
        if settled.done() and not settled.cancelled():
            # Mark the callback outcome as retrieved; the awaitable decides.
            settled.exception()
            logger.warning(
                "Validator for rule %r already returned an awaitable; `callback` is ignored.",
                rule,
            )
        await result
        return

    logger.warning("`callback` is deprecated. Return an awaitable or raise instead.")
    await settled


async def validate_rule(name: str, value: Any, rule: Rule, messages: dict[str, Any]) -> list[str]:
    """Validate one rule. Returns its error messages (empty on success)."""
    kv = rule.template_values(name)
    try:
        errors = check_rule(name, value, rule, messages)
    except Exception:
        logger.warning("Rule %r raised while checking '%s'.", rule, name, exc_info=True)
        return [replace_message(_fallback_message(rule, messages), kv)]
    if errors or rule.validator is None:
        return errors

    try:
        await _call_validator(rule, value)
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        text = str(exc)
        if rule.message is None and text:
            return [replace_message(text, kv)]
        return [replace_message(_fallback_message(rule, messages), kv)]
    return []


def _fallback_message(rule: Rule, messages: dict[str, Any]) -> str:
    if rule.message is not None:
        return rule.message
    return lookup(messages, "default") or ""


def _ordered(rules: Iterable[Rule]) -> list[Rule]:
    # Stable sort: blocking rules first, warning-only rules last.
    return sorted(rules, key=lambda rule: bool(rule.warning_only))


async def _rule_result(name: str, value: Any, rule: Rule, messages: dict[str, Any]) -> RuleError:
    return RuleError(errors=await validate_rule(name, value, rule, messages), rule=rule)


async def validate_rules(
    name_path: NamePath,
    value: Any,
    rules: Iterable[Rule],
    options: ValidateOptions | None = None,
    validate_first: bool | str = False,
) -> list[RuleError]:
    """Run rules for one value and return the failing rules' errors.

    An empty list means every rule passed.
    """
    options = options or ValidateOptions()
    name = ".".join(str(segment) for segment in name_path)
    messages = merge_messages(options.validate_messages)
    filled = _ordered(rules)

    if validate_first is True:
        for rule in filled:
            errors = await validate_rule(name, value, rule, messages)
            if errors:
                return [RuleError(errors=errors, rule=rule)]
        return []

    tasks = [asyncio.ensure_future(_rule_result(name, value, rule, messages)) for rule in filled]
    if not tasks:
        return []

    if validate_first:
        return await _finish_on_first_failed(tasks)
    return await _finish_on_all_failed(tasks)


async def _finish_on_all_failed(tasks: list[asyncio.Future]) -> list[RuleError]:
    results = await asyncio.gather(*tasks)
    return [result for result in results if result.errors]


async def _finish_on_first_failed(tasks: list[asyncio.Future]) -> list[RuleError]:
    pending = set(tasks)
    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                result = task.result()
                if result.errors:
                    return [result]
        return []
    finally:
        for task in pending:
            task.cancel()


async def finish_all(futures: list[Awaitable[FieldError]]) -> list[FieldError]:
    """Wait for every field result, in submission order."""
    if not futures:
        return []
    return list(await asyncio.gather(*futures))
