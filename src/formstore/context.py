"""Form context: the internal-hooks token, the null form, and FormProvider.

HOOK_MARK is the secret that unlocks a form's internal hooks. Public
callers never hold it, so `form.get_internal_hooks("guess")` only logs a
warning and returns None.

NULL_FORM stands in wherever a field is built without a form. Every method
logs a warning and returns None; nothing raises. It is created once here
and passed explicitly to fields that receive no form.

FormProvider links several named forms: shared validate messages plus
change/finish notifications that carry every registered form.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import Any, Callable

from formstore._namepath import merge
from formstore.interface import FieldData, FormInstance, InternalHooks

logger = logging.getLogger("formstore.context")

HOOK_MARK = "FORMSTORE_INTERNAL_HOOKS"


def _warning_func(*args: Any, **kwargs: Any) -> None:
    logger.warning("Can not find a form. Please make sure the field is bound to a form.")
    return None


def null_form() -> FormInstance:
    """Build a FormInstance whose every method only logs a warning."""

    def get_internal_hooks(secret: str) -> InternalHooks:
        _warning_func()
        return InternalHooks(**{f.name: _warning_func for f in fields(InternalHooks)})

    methods = {f.name: _warning_func for f in fields(FormInstance) if f.name not in ("prefix_name", "validate_trigger")}
    methods["get_internal_hooks"] = get_internal_hooks
    return FormInstance(**methods)


NULL_FORM = null_form()


def resolve_form(form: Any) -> FormInstance:
    """The FormInstance behind form. None resolves to NULL_FORM."""
    if form is None:
        return NULL_FORM
    return getattr(form, "instance", form)


@dataclass
class FormChangeInfo:
    changed_fields: list[FieldData]
    forms: dict[str, FormInstance] = field(default_factory=dict)


@dataclass
class FormFinishInfo:
    values: Any
    forms: dict[str, FormInstance] = field(default_factory=dict)


class FormProvider:
    """Shared configuration and cross-form events for a group of forms.

    Providers nest: messages merge parent-first, and every event is
    forwarded to the parent after the local handler runs.

    Usage:
        provider = FormProvider(
            validate_messages={"required": "${name} please"},
            on_form_finish=lambda name, info: print(name, info.values),
        )
        login = create_form(name="login", provider=provider)
    """

    def __init__(
        self,
        *,
        validate_messages: dict | None = None,
        on_form_change: Callable[[str, FormChangeInfo], None] | None = None,
        on_form_finish: Callable[[str, FormFinishInfo], None] | None = None,
        parent: FormProvider | None = None,
    ) -> None:
        self._parent = parent
        self._on_form_change = on_form_change
        self._on_form_finish = on_form_finish
        self._forms: dict[str, FormInstance] = {}
        inherited = parent.validate_messages if parent is not None else {}
        self.validate_messages: dict = merge(inherited, validate_messages or {})

    @property
    def forms(self) -> dict[str, FormInstance]:
        return dict(self._forms)

    def trigger_form_change(self, name: str | None, changed_fields: list[FieldData]) -> None:
        if self._on_form_change is not None:
            self._on_form_change(name, FormChangeInfo(changed_fields, self.forms))
        if self._parent is not None:
            self._parent.trigger_form_change(name, changed_fields)

    def trigger_form_finish(self, name: str | None, values: Any) -> None:
        if self._on_form_finish is not None:
            self._on_form_finish(name, FormFinishInfo(values, self.forms))
        if self._parent is not None:
            self._parent.trigger_form_finish(name, values)

    def register_form(self, name: str | None, form: FormInstance) -> None:
        if name:
            self._forms = {**self._forms, name: form}
        if self._parent is not None:
            self._parent.register_form(name, form)

    def unregister_form(self, name: str | None) -> None:
        forms = dict(self._forms)
        forms.pop(name, None)
        self._forms = forms
        if self._parent is not None:
            self._parent.unregister_form(name)
