"""Field: one live input bound to a path of a form.

A Field is the FieldEntity the store registers. It holds the meta the
store does not: touched, dirty, the running validation, errors and
warnings. The store notifies it on every mutation; on_store_change decides
whether that notification concerns this field and re-renders it.

Rendering is a callback. `on_render(field)` runs whenever the field wants
to be redrawn, `on_reset(field)` after a reset, and `on_meta_change(meta)`
whenever the meta snapshot changes.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from formstore._namepath import NamePath, contains_name_path, get_value, to_name_path
from formstore.action import UpdateValue, ValidateField
from formstore.context import HOOK_MARK, resolve_form
from formstore.interface import FormInstance, Meta, NotifyInfo, ValidateOptions
from formstore.rules import Rule
from formstore.validation import validate_rules

ShouldUpdate = bool | Callable[[Any, Any, NotifyInfo], bool]

# Marks a field put into validating state by set_fields rather than by a run.
_EXTERNAL_VALIDATING = object()


def _to_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _require_update(
    should_update: ShouldUpdate | None,
    prev_store: Any,
    next_store: Any,
    prev_value: Any,
    next_value: Any,
    info: NotifyInfo,
) -> bool:
    if callable(should_update):
        return bool(should_update(prev_store, next_store, info))
    return prev_value != next_value


class Field:
    """A form field. Create it, mount() it, feed it on_change(value).

    Usage:
        field = Field(form, "username", rules=[{"required": True}])
        field.mount()
        field.on_change("bamboo")
        field.value  # "bamboo"
        field.unmount()
    """

    def __init__(
        self,
        form: FormInstance | None = None,
        name: Any = None,
        *,
        rules: list | None = None,
        dependencies: list | None = None,
        preserve: bool | None = None,
        initial_value: Any = None,
        validate_trigger: str | list[str] | None = None,
        validate_first: bool | str = False,
        validate_debounce: float | None = None,
        should_update: ShouldUpdate | None = None,
        normalize: Callable[[Any, Any, Any], Any] | None = None,
        on_render: Callable[[Field], None] | None = None,
        on_reset: Callable[[Field], None] | None = None,
        on_meta_change: Callable[[Meta], None] | None = None,
        is_list_field: bool = False,
        is_list: bool = False,
    ) -> None:
        self._form = resolve_form(form)
        self._hooks = self._form.get_internal_hooks(HOOK_MARK)
        self._prefix: NamePath = list(self._form.prefix_name)
        self._name = name
        self._rules = list(rules or [])
        self._dependencies = [to_name_path(dep) for dep in dependencies or []]
        self._preserve = preserve
        self._initial_value = initial_value
        self._validate_trigger = validate_trigger
        self._validate_first = validate_first
        self._validate_debounce = validate_debounce
        self._should_update = should_update
        self._normalize = normalize
        self.on_render = on_render
        self._on_reset = on_reset
        self._on_meta_change = on_meta_change
        self._is_list_field = is_list_field
        self._is_list = is_list

        self._mounted = False
        self._cancel_register: Callable[..., None] | None = None
        self._touched = False
        self._dirty = False
        self._validated = False
        self._validate_future: Any = None
        self._errors: list[str] = []
        self._warnings: list[str] = []
        self._meta_cache: Meta | None = None
        self.reset_count = 0

    def __repr__(self) -> str:
        return f"Field({self.get_name_path()!r}, value={self.value!r})"

    # ─── Lifecycle ───────────────────────────────────────────────────────

    def mount(self) -> Field:
        """Register with the form. Seeds the field's initial value."""
        if self._mounted:
            return self
        self._mounted = True
        if self._hooks is not None:
            self._cancel_register = self._hooks.register_field(self)
        return self

    def unmount(self) -> None:
        """Unregister. The form cleans the value up unless it is preserved."""
        if not self._mounted:
            return
        self._mounted = False
        if self._cancel_register is not None:
            self._cancel_register(self._is_list_field, self._preserve, to_name_path(self._name))
            self._cancel_register = None

    @property
    def mounted(self) -> bool:
        return self._mounted

    # ─── FieldEntity ─────────────────────────────────────────────────────

    def get_name_path(self) -> NamePath:
        if self._name is None:
            return []
        return [*self._prefix, *to_name_path(self._name)]

    @property
    def rules(self) -> list[Rule]:
        resolved = []
        for rule in self._rules:
            if callable(rule) and not isinstance(rule, Rule):
                rule = rule(self._form)
            resolved.append(Rule.coerce(rule))
        return resolved

    @property
    def dependencies(self) -> list[NamePath]:
        return self._dependencies

    @property
    def initial_value(self) -> Any:
        return self._initial_value

    def is_list_field(self) -> bool:
        return self._is_list_field

    def is_list(self) -> bool:
        return self._is_list

    def is_preserve(self) -> bool | None:
        return self._preserve

    def is_field_touched(self) -> bool:
        return self._touched

    def is_field_dirty(self) -> bool:
        """Changed by the user, or carrying a field or form initial value."""
        if self._dirty or self._initial_value is not None:
            return True
        if self._hooks is None:
            return False
        return self._hooks.get_initial_value(self.get_name_path()) is not None

    def is_field_validating(self) -> bool:
        return self._validate_future is not None

    def get_errors(self) -> list[str]:
        return self._errors

    def get_warnings(self) -> list[str]:
        return self._warnings

    def get_meta(self) -> Meta:
        return Meta(
            touched=self._touched,
            validating=self.is_field_validating(),
            validated=self._validated,
            errors=list(self._errors),
            warnings=list(self._warnings),
            name=self.get_name_path(),
        )

    def get_value(self, store: Any = None) -> Any:
        if store is None:
            store = self._form.get_fields_value(True)
        return get_value(store, self.get_name_path())

    @property
    def value(self) -> Any:
        return self.get_value()

    # ─── Rendering ───────────────────────────────────────────────────────

    def _rerender(self) -> None:
        if self._mounted and self.on_render is not None:
            self.on_render(self)

    def _refresh(self) -> None:
        self.reset_count += 1
        self._rerender()

    def _trigger_meta_event(self) -> None:
        prev_meta = self._meta_cache
        self._meta_cache = self.get_meta()
        if self._on_meta_change is not None and self._meta_cache != prev_meta:
            self._on_meta_change(self._meta_cache)

    def on_store_change(self, prev_store: Any, name_path_list: list[NamePath] | None, info: NotifyInfo) -> None:
        """React to a store mutation; re-render when it concerns this field."""
        if not self._mounted:
            return

        should_update = self._should_update
        store = info.store
        name_path = self.get_name_path()
        prev_value = self.get_value(prev_store)
        cur_value = self.get_value(store)
        name_path_match = name_path_list is not None and contains_name_path(name_path_list, name_path)

        # set_fields_value counts as user input for the meta
        if info.type == "value_update" and info.source == "external" and prev_value != cur_value:
            self._touched = True
            self._dirty = True
            self._validate_future = None
            self._validated = False
            self._errors = []
            self._warnings = []
            self._trigger_meta_event()

        if info.type == "reset":
            if name_path_list is None or name_path_match:
                self._touched = False
                self._dirty = False
                self._validate_future = None
                self._validated = False
                self._errors = []
                self._warnings = []
                self._trigger_meta_event()
                if self._on_reset is not None:
                    self._on_reset(self)
                self._refresh()
                return

        elif info.type == "remove":
            if should_update and _require_update(should_update, prev_store, store, prev_value, cur_value, info):
                self._rerender()
                return

        elif info.type == "set_field":
            data = info.data or {}
            if name_path_match:
                if "touched" in data:
                    self._touched = data["touched"]
                if "validating" in data:
                    self._validate_future = _EXTERNAL_VALIDATING if data["validating"] else None
                    self._validated = not data["validating"]
                if "errors" in data:
                    self._errors = list(data["errors"] or [])
                if "warnings" in data:
                    self._warnings = list(data["warnings"] or [])
                self._dirty = True
                self._trigger_meta_event()
                self._rerender()
                return
            if "value" in data and contains_name_path(name_path_list, name_path, True):
                self._rerender()
                return
            if (
                should_update
                and not name_path
                and _require_update(should_update, prev_store, store, prev_value, cur_value, info)
            ):
                self._rerender()
                return

        elif info.type == "dependencies_update":
            if any(contains_name_path(info.related_fields, dependency) for dependency in self._dependencies):
                self._rerender()
                return

        elif name_path_match or (
            (not self._dependencies or name_path or should_update)
            and _require_update(should_update, prev_store, store, prev_value, cur_value, info)
        ):
            self._rerender()
            return

        if should_update is True:
            self._rerender()

    # ─── Input ───────────────────────────────────────────────────────────

    def _validate_trigger_list(self) -> list[str]:
        trigger = self._validate_trigger if self._validate_trigger is not None else self._form.validate_trigger
        return _to_list(trigger)

    def on_change(self, value: Any) -> None:
        """Feed a new value from the input, as the user typed it."""
        self._touched = True
        self._dirty = True
        self._trigger_meta_event()

        if self._normalize is not None:
            value = self._normalize(value, self.get_value(), self._form.get_fields_value(True))
        if self._hooks is not None and value != self.get_value():
            self._hooks.dispatch(UpdateValue(self.get_name_path(), value))

        self.handle_event("change")

    def handle_event(self, event: str) -> None:
        """Validate when event is one of this field's validate triggers."""
        if self._hooks is None or not self._rules:
            return
        if event in self._validate_trigger_list():
            self._hooks.dispatch(ValidateField(self.get_name_path(), event))

    # ─── Validation ──────────────────────────────────────────────────────

    def validate_rules(self, options: ValidateOptions | None = None) -> asyncio.Task:
        """Start validating the current value. Returns the running task.

        The field is validating as soon as this returns. A newer call
        supersedes this one: only the latest run writes errors back.
        """
        options = options or ValidateOptions()
        current_value = self.get_value()
        task = asyncio.get_running_loop().create_task(self._run_rules(current_value, options))

        if options.validate_only:
            return task

        self._validate_future = task
        self._validated = False
        self._dirty = True
        self._errors = []
        self._warnings = []
        self._trigger_meta_event()
        self._rerender()
        return task

    async def _run_rules(self, current_value: Any, options: ValidateOptions) -> list:
        if not self._mounted:
            return []

        task = asyncio.current_task()
        trigger_name = options.trigger_name
        filtered_rules = self.rules
        if trigger_name:
            filtered_rules = [
                rule for rule in filtered_rules
                if not rule.validate_trigger or trigger_name in _to_list(rule.validate_trigger)
            ]

        # validate_fields and submit skip the debounce
        if self._validate_debounce and trigger_name:
            await asyncio.sleep(self._validate_debounce)
            if self._validate_future is not task:
                return []

        try:
            rule_errors = await validate_rules(
                self.get_name_path(), current_value, filtered_rules, options, self._validate_first
            )
        except Exception:
            if self._validate_future is task:
                self._validate_future = None
                self._trigger_meta_event()
                self._rerender()
            raise

        if self._validate_future is task:
            self._validate_future = None
            self._validated = True
            self._errors = [e for r in rule_errors if not r.rule.warning_only for e in r.errors]
            self._warnings = [e for r in rule_errors if r.rule.warning_only for e in r.errors]
            self._trigger_meta_event()
            self._rerender()

        return rule_errors
