"""Form: a FormStore wired to its configuration.

create_form() is the entry point most callers want: it builds the store,
seeds initial values, installs callbacks and validate messages, and joins
a FormProvider when one is given.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable

from formstore._namepath import is_similar, merge
from formstore.context import HOOK_MARK, FormProvider
from formstore.interface import Callbacks, FieldData, FormInstance, ValidateError
from formstore.store import FormStore
from formstore.watch import Scheduler


class Form:
    """A configured form. Attribute access falls through to its FormInstance.

    Usage:
        form = create_form(initial_values={"name": "bamboo"}, on_finish=print)
        form.set_field_value("name", "light")
        form.destroy()
    """

    def __init__(
        self,
        form: FormInstance | None = None,
        *,
        name: str | None = None,
        initial_values: Any = None,
        fields: list[FieldData] | None = None,
        validate_messages: dict | None = None,
        preserve: bool | None = None,
        validate_trigger: str | list[str] | None = "change",
        clear_on_destroy: bool = False,
        on_values_change: Callable[[Any, Any], None] | None = None,
        on_fields_change: Callable[[list[dict], list[dict]], None] | None = None,
        on_finish: Callable[[Any], None] | None = None,
        on_finish_failed: Callable[[ValidateError], None] | None = None,
        provider: FormProvider | None = None,
        subscribable: bool = True,
        force_root_update: Callable[[], None] | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        if form is None:
            form = FormStore(force_root_update, scheduler=scheduler).get_form()

        self.name = name
        self.instance: FormInstance = replace(form, validate_trigger=validate_trigger)
        self._provider = provider
        self._clear_on_destroy = clear_on_destroy
        self._prev_fields: list[FieldData] | None = None
        self._hooks = form.get_internal_hooks(HOOK_MARK)

        if provider is not None:
            provider.register_form(name, self.instance)

        provider_messages = provider.validate_messages if provider is not None else {}
        self._hooks.set_validate_messages(merge(provider_messages, validate_messages or {}))
        self._hooks.set_callbacks(
            Callbacks(
                on_values_change=on_values_change,
                on_fields_change=self._wrap_fields_change(on_fields_change),
                on_finish=self._wrap_finish(on_finish),
                on_finish_failed=on_finish_failed,
            )
        )
        self._hooks.set_preserve(preserve)
        self._hooks.set_initial_values(initial_values, True)
        self._hooks.use_subscribe(subscribable)

        if fields is not None:
            self.set_fields_prop(fields)

    def __getattr__(self, item: str) -> Any:
        if item == "instance":
            raise AttributeError(item)
        return getattr(self.instance, item)

    def __repr__(self) -> str:
        return f"Form({self.name!r})"

    def _wrap_fields_change(self, on_fields_change: Callable | None) -> Callable:
        def handler(changed_fields: list[dict], all_fields: list[dict]) -> None:
            if self._provider is not None:
                self._provider.trigger_form_change(self.name, changed_fields)
            if on_fields_change is not None:
                on_fields_change(changed_fields, all_fields)

        return handler

    def _wrap_finish(self, on_finish: Callable | None) -> Callable:
        def handler(values: Any) -> None:
            if self._provider is not None:
                self._provider.trigger_form_finish(self.name, values)
            if on_finish is not None:
                on_finish(values)

        return handler

    def set_initial_values(self, initial_values: Any) -> None:
        """Replace form-level initial values. The store keeps its current values."""
        self._hooks.set_initial_values(initial_values, False)

    def set_fields_prop(self, fields: list[FieldData]) -> None:
        """Drive field state from outside. Unchanged lists are not re-applied."""
        if self._prev_fields is not None and is_similar(self._prev_fields, fields):
            return
        self._prev_fields = fields
        self.instance.set_fields(fields)

    def destroy(self, clear_on_destroy: bool | None = None) -> None:
        """Tear the form down and leave its provider.

        Without clearing, non-preserved values reset to their initial values
        when a new Form is created over the same instance.
        """
        if self._provider is not None:
            self._provider.unregister_form(self.name)
        clear = self._clear_on_destroy if clear_on_destroy is None else clear_on_destroy
        self._hooks.destroy_form(clear)


def create_form(form: FormInstance | None = None, **options: Any) -> Form:
    """Build a configured Form. See Form for the accepted options."""
    return Form(form, **options)
