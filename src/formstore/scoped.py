"""Scoped forms: a FormInstance rooted at a name-path prefix.

Every path going in is prefixed with the scope; every value or path coming
out is projected back under it. The scoped view keeps no state: it reads
and writes the same store as the form it wraps.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any, Callable

from formstore._namepath import NamePath, get_value, match_name_path, set_value, to_name_path
from formstore.context import HOOK_MARK, resolve_form
from formstore.interface import FieldError, FormInstance, Meta, ValidateError, ValidateOptions


class ScopedFormStore:
    """Path-prefixing adapter over a form.

    Usage:
        profile = scoped_form(form, ["user", "profile"])
        profile.set_field_value("age", 3)     # writes user.profile.age
        profile.get_fields_value(True)        # {"age": 3, ...}
    """

    def __init__(self, form: FormInstance, scope: Any) -> None:
        self._form = form
        self.scope_name: NamePath = to_name_path(scope)

    def _scoped_name_path(self, name: Any) -> NamePath:
        return [*self.scope_name, *to_name_path(name)]

    def _scoped_name_list(self, name_list: list | None) -> list[NamePath]:
        if name_list is not None:
            return [self._scoped_name_path(name) for name in name_list]
        return [self.scope_name]

    def _drop_scope_name(self, name_path: NamePath) -> NamePath:
        return list(name_path[len(self.scope_name):])

    def _in_scope(self, name_path: NamePath) -> bool:
        return match_name_path(name_path, self.scope_name, True)

    def get_form(self) -> FormInstance:
        """The scoped FormInstance. An empty scope returns the form itself."""
        if not self.scope_name:
            return self._form
        return replace(
            self._form,
            get_field_value=self.get_field_value,
            get_fields_value=self.get_fields_value,
            get_field_error=self.get_field_error,
            get_field_warning=self.get_field_warning,
            get_fields_error=self.get_fields_error,
            is_field_touched=self.is_field_touched,
            is_fields_touched=self.is_fields_touched,
            is_field_validating=self.is_field_validating,
            is_fields_validating=self.is_fields_validating,
            reset_fields=self.reset_fields,
            set_fields=self.set_fields,
            set_field_value=self.set_field_value,
            set_fields_value=self.set_fields_value,
            validate_fields=self.validate_fields,
        )

    def get_field_value(self, name: Any) -> Any:
        return self._form.get_field_value(self._scoped_name_path(name))

    def get_fields_value(self, name_list: Any = None, filter_func: Callable | None = None) -> Any:
        if name_list is True and filter_func is None:
            return get_value(self._form.get_fields_value(True), self.scope_name)

        def merged_filter(meta: Meta | None) -> bool:
            if meta is None:
                return filter_func is None or filter_func(meta)
            return self._in_scope(meta.name) and (
                filter_func is None or filter_func(replace(meta, name=self._drop_scope_name(meta.name)))
            )

        if isinstance(name_list, (list, tuple)):
            name_list = self._scoped_name_list(list(name_list))
        return get_value(self._form.get_fields_value(name_list, merged_filter), self.scope_name)

    def get_field_error(self, name: Any) -> list[str]:
        return self._form.get_field_error(self._scoped_name_path(name))

    def get_field_warning(self, name: Any) -> list[str]:
        return self._form.get_field_warning(self._scoped_name_path(name))

    def get_fields_error(self, name_list: list | None = None) -> list[FieldError]:
        if name_list is not None:
            field_errors = self._form.get_fields_error(self._scoped_name_list(name_list))
        else:
            field_errors = [error for error in self._form.get_fields_error() if self._in_scope(error.name)]
        return [replace(error, name=self._drop_scope_name(error.name)) for error in field_errors]

    def is_fields_touched(self, *args: Any) -> bool:
        if args and isinstance(args[0], (list, tuple)):
            return self._form.is_fields_touched(self._scoped_name_list(list(args[0])), *args[1:])

        if len(args) == 1 and args[0] is True:
            hooks = self._form.get_internal_hooks(HOOK_MARK)
            return all(
                not self._in_scope(entity.get_name_path()) or entity.is_field_touched() or entity.is_list()
                for entity in hooks.get_field_entities(True)
            )

        return self._form.is_fields_touched([self.scope_name], False)

    def is_field_touched(self, name: Any) -> bool:
        return self._form.is_field_touched(self._scoped_name_path(name))

    def is_field_validating(self, name: Any) -> bool:
        return self._form.is_field_validating(self._scoped_name_path(name))

    def is_fields_validating(self, name_list: list | None = None) -> bool:
        return self._form.is_fields_validating(self._scoped_name_list(name_list))

    def reset_fields(self, name_list: list | None = None) -> None:
        self._form.reset_fields(self._scoped_name_list(name_list))

    def set_fields(self, fields: list[dict]) -> None:
        self._form.set_fields([{**field, "name": self._scoped_name_path(field.get("name"))} for field in fields])

    def set_field_value(self, name: Any, value: Any) -> None:
        self._form.set_field_value(self._scoped_name_path(name), value)

    def set_fields_value(self, values: Any) -> None:
        self._form.set_fields_value(set_value(self._form.get_fields_value(True), self.scope_name, values))

    def validate_fields(self, name_list: list | None = None, options: ValidateOptions | None = None, **kwargs: Any) -> asyncio.Task:
        """Validate inside the scope. Without name_list, the whole scope recursively."""
        if name_list is not None:
            future = self._form.validate_fields(self._scoped_name_list(name_list), options, **kwargs)
        else:
            future = self._form.validate_fields([self.scope_name], options, **{**kwargs, "recursive": True})

        task = asyncio.get_running_loop().create_task(self._project(future))
        task.add_done_callback(lambda t: t.cancelled() or t.exception())
        return task

    async def _project(self, future: asyncio.Future) -> Any:
        try:
            values = await future
        except ValidateError as error:
            raise ValidateError(
                values=get_value(error.values, self.scope_name),
                error_fields=[replace(field, name=self._drop_scope_name(field.name)) for field in error.error_fields],
                out_of_date=error.out_of_date,
            ) from error
        return get_value(values, self.scope_name)


def scoped_form(form: FormInstance, scope: Any = None) -> FormInstance:
    """Return form viewed from scope. Defaults to the form's own prefix.

    The underlying, unscoped form is recovered through the internal hooks,
    so a view built from a field list context scopes the real store.
    """
    form = resolve_form(form)
    hooks = form.get_internal_hooks(HOOK_MARK)
    store = hooks.get_form_store() if hooks is not None else None
    base = replace(store.get_form(), validate_trigger=form.validate_trigger) if store is not None else form
    scope_name = to_name_path(scope) if scope is not None else list(form.prefix_name)
    return ScopedFormStore(base, scope_name).get_form()
