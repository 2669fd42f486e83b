"""FormStore: the form engine.

Owns the value document, the registry of live fields and the last
whole-form validation. Commands flow top-down: mutate the document,
resolve dependent fields, validate, notify. Registration flows bottom-up:
fields register, and the registry seeds the document from field-level or
form-level initial values.

Every mutation notifies all registered fields synchronously before the
mutating call returns. Validation is the only async boundary and needs a
running asyncio loop; validation started by a value change is skipped
without one.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Callable

from formstore._batch import UpdateBatch
from formstore._namepath import (
    NameMap,
    NamePath,
    clone_by_paths,
    contains_name_path,
    get_value,
    match_name_path,
    merge,
    set_value,
    to_name_path,
)
from formstore.action import ReducerAction, UpdateValue, ValidateField
from formstore.context import HOOK_MARK
from formstore.dependencies import get_dependency_children_fields
from formstore.interface import (
    Callbacks,
    FieldData,
    FieldEntity,
    FieldError,
    FormInstance,
    InternalHooks,
    NotifyInfo,
    ValidateError,
    ValidateOptions,
)
from formstore.messages import merge_messages
from formstore.validation import finish_all
from formstore.watch import Scheduler, WatchCallback, WatcherCenter

logger = logging.getLogger("formstore.store")


class _InvalidEntity:
    """Placeholder for a requested path that no live field occupies."""

    __slots__ = ("name_path",)

    def __init__(self, name_path: NamePath) -> None:
        self.name_path = name_path


def _dotted(name_path: NamePath) -> str:
    return ".".join(str(segment) for segment in name_path)


def _consume_exception(future: asyncio.Future) -> None:
    # validate_fields results are often fired and forgotten by triggers.
    if not future.cancelled():
        future.exception()


class FormStore:
    """Value document + field registry + validation orchestration."""

    def __init__(
        self,
        force_root_update: Callable[[], None] | None = None,
        *,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._force_root_update = force_root_update or (lambda: None)
        self._form_hooked = False
        self._subscribable = True
        self._store: Any = {}
        self._field_entities: list[FieldEntity] = []
        self._initial_values: Any = {}
        self._callbacks = Callbacks()
        self._validate_messages: dict | None = None
        self._preserve: bool | None = None
        self._last_validate_future: asyncio.Future | None = None
        self._prev_without_preserves: NameMap[bool] | None = None
        self.batch = UpdateBatch()
        self._watcher = WatcherCenter(self, scheduler)

        self._hooks = InternalHooks(
            dispatch=self.dispatch,
            register_field=self.register_field,
            use_subscribe=self.use_subscribe,
            set_initial_values=self.set_initial_values,
            get_initial_value=self.get_initial_value,
            set_callbacks=self.set_callbacks,
            set_validate_messages=self.set_validate_messages,
            set_preserve=self.set_preserve,
            get_fields=self.get_fields,
            register_watch=self.register_watch,
            destroy_form=self.destroy_form,
            get_field_entities=self.get_field_entities,
            get_form_store=lambda: self,
        )
        self._form = FormInstance(
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
            submit=self.submit,
            get_internal_hooks=self.get_internal_hooks,
        )

    def get_form(self) -> FormInstance:
        return self._form

    # ─── Internal hooks ──────────────────────────────────────────────────

    def get_internal_hooks(self, key: str) -> InternalHooks | None:
        if key == HOOK_MARK:
            self._form_hooked = True
            return self._hooks

        logger.warning("`get_internal_hooks` is internal usage. Should not call directly.")
        return None

    def use_subscribe(self, subscribable: bool) -> None:
        self._subscribable = subscribable

    def set_initial_values(self, initial_values: Any, init: bool) -> None:
        """Record form-level initial values; on init, seed them under the current store."""
        self._initial_values = initial_values or {}
        if init:
            next_store = merge(self._initial_values, self._store)
            if self._prev_without_preserves is not None:
                for name_path in self._prev_without_preserves:
                    next_store = set_value(next_store, name_path, get_value(self._initial_values, name_path))
                self._prev_without_preserves = None
            self._update_store(next_store)

    def destroy_form(self, clear_on_destroy: bool = False) -> None:
        if clear_on_destroy:
            self._update_store({})
            return

        prev_without_preserves: NameMap[bool] = NameMap()
        for entity in self.get_field_entities(True):
            if not self._is_merged_preserve(entity.is_preserve()):
                prev_without_preserves.set(entity.get_name_path(), True)
        self._prev_without_preserves = prev_without_preserves

    def get_initial_value(self, name_path: NamePath) -> Any:
        return get_value(self._initial_values, name_path)

    def set_callbacks(self, callbacks: Callbacks) -> None:
        self._callbacks = callbacks

    def set_validate_messages(self, validate_messages: dict | None) -> None:
        self._validate_messages = validate_messages

    def set_preserve(self, preserve: bool | None) -> None:
        self._preserve = preserve

    def register_watch(self, callback: WatchCallback) -> Callable[[], None]:
        return self._watcher.register(callback)

    def _notify_watch(self, name_paths: list[NamePath] | None = None) -> None:
        self._watcher.notify(name_paths or [])

    def flush_watch(self) -> None:
        """Deliver watch notifications queued while no event loop was running."""
        self._watcher.flush()

    def _is_merged_preserve(self, field_preserve: bool | None) -> bool:
        merged = field_preserve if field_preserve is not None else self._preserve
        return True if merged is None else merged

    def _update_store(self, next_store: Any) -> None:
        self._store = next_store

    # ─── Fields ──────────────────────────────────────────────────────────

    def get_field_entities(self, pure: bool = False) -> list[FieldEntity]:
        """Registered fields. With pure, only fields that have a name path."""
        if not pure:
            return list(self._field_entities)
        return [field for field in self._field_entities if field.get_name_path()]

    def _get_fields_map(self, pure: bool = False) -> NameMap[FieldEntity]:
        cache: NameMap[FieldEntity] = NameMap()
        for field in self.get_field_entities(pure):
            cache.set(field.get_name_path(), field)
        return cache

    def _get_field_entities_for_name_path_list(self, name_list: list | None) -> list[FieldEntity | _InvalidEntity]:
        if name_list is None:
            return self.get_field_entities(True)
        cache = self._get_fields_map(True)
        result: list[FieldEntity | _InvalidEntity] = []
        for name in name_list:
            name_path = to_name_path(name)
            result.append(cache.get(name_path) or _InvalidEntity(name_path))
        return result

    def get_fields_value(self, name_list: Any = None, filter_func: Callable | None = None) -> Any:
        """Values of registered fields.

        True without a filter returns the whole store, unregistered paths
        included. A list restricts the result to those paths.
        """
        if name_list is True and filter_func is None:
            return self._store

        explicit = isinstance(name_list, (list, tuple))
        entities = self._get_field_entities_for_name_path_list(list(name_list) if explicit else None)

        filtered: list[NamePath] = []
        for entity in entities:
            if isinstance(entity, _InvalidEntity):
                name_path, meta = entity.name_path, None
            else:
                # The list itself already covers its items.
                if not explicit and entity.is_list_field():
                    continue
                name_path = entity.get_name_path()
                meta = entity.get_meta() if filter_func is not None else None

            if filter_func is None or filter_func(meta):
                filtered.append(name_path)

        return clone_by_paths(self._store, filtered)

    def get_field_value(self, name: Any) -> Any:
        return get_value(self._store, to_name_path(name))

    def get_fields_error(self, name_list: list | None = None) -> list[FieldError]:
        entities = self._get_field_entities_for_name_path_list(name_list)
        result: list[FieldError] = []
        for index, entity in enumerate(entities):
            if isinstance(entity, _InvalidEntity):
                result.append(FieldError(name=to_name_path(name_list[index])))
            else:
                result.append(
                    FieldError(
                        name=entity.get_name_path(),
                        errors=list(entity.get_errors()),
                        warnings=list(entity.get_warnings()),
                    )
                )
        return result

    def get_field_error(self, name: Any) -> list[str]:
        return self.get_fields_error([to_name_path(name)])[0].errors

    def get_field_warning(self, name: Any) -> list[str]:
        return self.get_fields_error([to_name_path(name)])[0].warnings

    def is_fields_touched(self, name_list: Any = None, all_fields_touched: bool = False) -> bool:
        """Whether any (or, with all_fields_touched, every) field is touched.

        A bare bool as the first argument is the all_fields_touched flag.
        A requested path covers every field under it; in all mode each
        requested path needs at least one touched field.
        """
        if isinstance(name_list, bool):
            name_list, all_fields_touched = None, name_list

        field_entities = self.get_field_entities(True)
        if name_list is None:
            if all_fields_touched:
                return all(field.is_field_touched() or field.is_list() for field in field_entities)
            return any(field.is_field_touched() for field in field_entities)

        cache: NameMap[list[FieldEntity]] = NameMap()
        name_path_list = [to_name_path(name) for name in name_list]
        for short_name_path in name_path_list:
            cache.set(short_name_path, [])
        for field in field_entities:
            field_name_path = field.get_name_path()
            for short_name_path in name_path_list:
                if match_name_path(field_name_path, short_name_path, True):
                    cache.get(short_name_path).append(field)

        touched = [any(field.is_field_touched() for field in fields) for fields in cache.map(lambda _, v: v)]
        return all(touched) if all_fields_touched else any(touched)

    def is_field_touched(self, name: Any) -> bool:
        return self.is_fields_touched([name])

    def is_fields_validating(self, name_list: list | None = None) -> bool:
        entities = self.get_field_entities()
        if name_list is None:
            return any(field.is_field_validating() for field in entities)

        name_path_list = [to_name_path(name) for name in name_list]
        return any(
            contains_name_path(name_path_list, field.get_name_path()) and field.is_field_validating()
            for field in entities
        )

    def is_field_validating(self, name: Any) -> bool:
        return self.is_fields_validating([name])

    def _reset_with_field_initial_value(
        self,
        entities: list[FieldEntity] | None = None,
        name_path_list: list[NamePath] | None = None,
        skip_exist: bool = False,
    ) -> None:
        """Write field-level initial values back into the store.

        skip_exist keeps a value already present; registration uses it.
        """
        cache: NameMap[list[FieldEntity]] = NameMap()
        field_entities = self.get_field_entities(True)
        for field in field_entities:
            if field.initial_value is not None:
                cache.update(field.get_name_path(), lambda records, field=field: [*(records or []), field])

        def reset_with_fields(targets: list[FieldEntity]) -> None:
            for field in targets:
                if field.initial_value is None:
                    continue
                name_path = field.get_name_path()
                if self.get_initial_value(name_path) is not None:
                    logger.warning(
                        "Form already set 'initial_values' with path '%s'. Field can not overwrite it.",
                        _dotted(name_path),
                    )
                    continue

                records = cache.get(name_path)
                if records and len(records) > 1:
                    logger.warning(
                        "Multiple Field with path '%s' set 'initial_value'. Can not decide which one to pick.",
                        _dotted(name_path),
                    )
                elif records:
                    origin_value = self.get_field_value(name_path)
                    if not field.is_list_field() and (not skip_exist or origin_value is None):
                        self._update_store(set_value(self._store, name_path, records[0].initial_value))

        if entities is not None:
            required = entities
        elif name_path_list is not None:
            required = []
            for name_path in name_path_list:
                required.extend(cache.get(name_path) or [])
        else:
            required = field_entities

        reset_with_fields(required)

    def reset_fields(self, name_list: list | None = None) -> None:
        prev_store = self._store
        if name_list is None:
            self._update_store(merge(self._initial_values))
            self._reset_with_field_initial_value()
            self._notify_observers(prev_store, None, NotifyInfo("reset"))
            self._notify_watch()
            return

        name_path_list = [to_name_path(name) for name in name_list]
        for name_path in name_path_list:
            self._update_store(set_value(self._store, name_path, self.get_initial_value(name_path)))
        self._reset_with_field_initial_value(name_path_list=name_path_list)
        self._notify_observers(prev_store, name_path_list, NotifyInfo("reset"))
        self._notify_watch(name_path_list)

    def set_fields(self, fields: list[FieldData]) -> None:
        """Patch values and meta of several fields at once."""
        prev_store = self._store
        name_path_list: list[NamePath] = []
        for field_data in fields:
            name_path = to_name_path(field_data.get("name"))
            name_path_list.append(name_path)
            if "value" in field_data:
                self._update_store(set_value(self._store, name_path, field_data["value"]))
            self._notify_observers(prev_store, [name_path], NotifyInfo("set_field", data=field_data))
        self._notify_watch(name_path_list)

    def get_fields(self) -> list[dict]:
        fields = []
        for field in self.get_field_entities(True):
            name_path = field.get_name_path()
            meta = field.get_meta()
            fields.append(
                {
                    "touched": meta.touched,
                    "validating": meta.validating,
                    "validated": meta.validated,
                    "errors": meta.errors,
                    "warnings": meta.warnings,
                    "name": name_path,
                    "value": self.get_field_value(name_path),
                }
            )
        return fields

    # ─── Observer ────────────────────────────────────────────────────────

    def register_field(self, entity: FieldEntity) -> Callable[..., None]:
        """Register a live field. Returns its unregister function.

        unregister(is_list_field=False, preserve=None, sub_name_path=())
        """
        self._field_entities.append(entity)
        self._notify_watch([entity.get_name_path()])

        if entity.initial_value is not None:
            prev_store = self._store
            self._reset_with_field_initial_value(entities=[entity], skip_exist=True)
            self._notify_observers(prev_store, [entity.get_name_path()], NotifyInfo("value_update", source="internal"))

        def unregister(is_list_field: bool = False, preserve: bool | None = None, sub_name_path: Any = ()) -> None:
            name_path = entity.get_name_path()
            self._field_entities = [item for item in self._field_entities if item is not entity]
            self.batch.schedule(
                lambda: self._sweep_unregistered(name_path, is_list_field, preserve, list(sub_name_path))
            )

        return unregister

    def _sweep_unregistered(self, name_path: NamePath, is_list_field: bool, preserve: bool | None, sub_name_path: NamePath) -> None:
        """Clean up a removed field's value unless preserved or still occupied."""
        if not self._is_merged_preserve(preserve) and (not is_list_field or len(sub_name_path) > 1):
            default_value = None if is_list_field else self.get_initial_value(name_path)
            occupied = any(match_name_path(field.get_name_path(), name_path) for field in self._field_entities)
            if name_path and self.get_field_value(name_path) != default_value and not occupied:
                prev_store = self._store
                self._update_store(set_value(prev_store, name_path, default_value, remove_if_none=True))
                self._notify_observers(prev_store, [name_path], NotifyInfo("remove"))
                self._trigger_dependencies_update(prev_store, name_path)

        self._notify_watch([name_path])

    def dispatch(self, action: ReducerAction) -> None:
        if isinstance(action, UpdateValue):
            self._update_value(action.name_path, action.value)
        elif isinstance(action, ValidateField):
            self._validate_in_background([action.name_path], ValidateOptions(trigger_name=action.trigger_name))

    def _validate_in_background(self, name_path_list: list[NamePath], options: ValidateOptions | None = None) -> None:
        """Start validation triggered by a value change, if any of the fields has rules.

        Without a running event loop the validation is skipped, so a plain
        value update never fails halfway through its notifications.
        """
        if not any(
            field.rules
            for field in self.get_field_entities(True)
            if contains_name_path(name_path_list, field.get_name_path())
        ):
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "No running event loop; skipped validating %s.",
                ", ".join(_dotted(name_path) for name_path in name_path_list),
            )
            return
        self.validate_fields(name_path_list, options)

    def _notify_observers(self, prev_store: Any, name_path_list: list[NamePath] | None, info: NotifyInfo) -> None:
        if self._subscribable:
            merged_info = replace(info, store=self.get_fields_value(True))
            for entity in list(self._field_entities):
                entity.on_store_change(prev_store, name_path_list, merged_info)
        else:
            self._force_root_update()

    def _trigger_dependencies_update(self, prev_store: Any, name_path: NamePath) -> list[NamePath]:
        children_fields = self.get_dependency_children_fields(name_path)
        if children_fields:
            self._validate_in_background(children_fields)

        self._notify_observers(
            prev_store,
            children_fields,
            NotifyInfo("dependencies_update", related_fields=[name_path, *children_fields]),
        )
        return children_fields

    def _update_value(self, name: Any, value: Any) -> None:
        name_path = to_name_path(name)
        prev_store = self._store
        self._update_store(set_value(self._store, name_path, value))

        self._notify_observers(prev_store, [name_path], NotifyInfo("value_update", source="internal"))
        self._notify_watch([name_path])

        children_fields = self._trigger_dependencies_update(prev_store, name_path)

        on_values_change = self._callbacks.on_values_change
        if on_values_change is not None:
            changed_values = clone_by_paths(self._store, [name_path])
            on_values_change(changed_values, self.get_fields_value())

        self._trigger_on_fields_change([name_path, *children_fields])

    def set_fields_value(self, values: Any) -> None:
        """Merge partial values into the store. Arrays are replaced, not spliced."""
        prev_store = self._store
        if values:
            self._update_store(merge(self._store, values))

        self._notify_observers(prev_store, None, NotifyInfo("value_update", source="external"))
        self._notify_watch()

    def set_field_value(self, name: Any, value: Any) -> None:
        self.set_fields([{"name": name, "value": value, "errors": [], "warnings": []}])

    def get_dependency_children_fields(self, root_name_path: NamePath) -> list[NamePath]:
        return get_dependency_children_fields(self._field_entities, root_name_path)

    def _trigger_on_fields_change(self, name_path_list: list[NamePath], field_errors: list[FieldError] | None = None) -> None:
        on_fields_change = self._callbacks.on_fields_change
        if on_fields_change is None:
            return

        fields = self.get_fields()
        if field_errors:
            cache: NameMap[FieldError] = NameMap()
            for field_error in field_errors:
                cache.set(field_error.name, field_error)
            for field in fields:
                field_error = cache.get(field["name"])
                if field_error is not None:
                    field["errors"] = field_error.errors
                    field["warnings"] = field_error.warnings

        changed_fields = [field for field in fields if contains_name_path(name_path_list, field["name"])]
        if changed_fields:
            on_fields_change(changed_fields, fields)

    # ─── Validate ────────────────────────────────────────────────────────

    def validate_fields(self, name_list: list | None = None, options: ValidateOptions | None = None, **kwargs: Any) -> asyncio.Future:
        """Validate fields; returns a future of the validated values.

        Without name_list every named field with rules is validated. The
        future raises ValidateError when any field has blocking errors or
        a newer validation superseded this one.

        Usage:
            values = await form.validate_fields()
            values = await form.validate_fields([["user", "name"]], recursive=True)
        """
        loop = asyncio.get_running_loop()
        options = replace(options or ValidateOptions(), **kwargs)
        options = replace(options, validate_messages=merge_messages(self._validate_messages, options.validate_messages))

        provide_name_list = name_list is not None
        name_path_list = [to_name_path(name) for name in name_list] if provide_name_list else []

        field_futures = []
        validated_paths: NameMap[bool] = NameMap()
        for field in self.get_field_entities(True):
            if not provide_name_list:
                name_path_list.append(field.get_name_path())

            if not field.rules:
                continue
            if options.dirty and not field.is_field_dirty():
                continue

            field_name_path = field.get_name_path()
            validated_paths.set(field_name_path, True)

            if not provide_name_list or contains_name_path(name_path_list, field_name_path, options.recursive):
                field_futures.append(_field_result(field_name_path, field.validate_rules(options)))

        summary = loop.create_task(finish_all(field_futures))
        self._last_validate_future = summary
        summary.add_done_callback(self._on_validate_finish)

        result = loop.create_task(self._resolve_validation(summary, name_path_list))
        result.add_done_callback(_consume_exception)

        self._trigger_on_fields_change([path for path in name_path_list if path in validated_paths])
        return result

    def _on_validate_finish(self, summary: asyncio.Future) -> None:
        if summary.cancelled() or summary.exception() is not None:
            return
        results: list[FieldError] = summary.result()
        result_name_paths = [result.name for result in results]
        self._notify_observers(self._store, result_name_paths, NotifyInfo("validate_finish"))
        self._trigger_on_fields_change(result_name_paths, results)

    async def _resolve_validation(self, summary: asyncio.Future, name_path_list: list[NamePath]) -> Any:
        results: list[FieldError] = await summary
        error_list = [result for result in results if result.errors]
        out_of_date = self._last_validate_future is not summary
        if not error_list and not out_of_date:
            return self.get_fields_value(name_path_list)

        raise ValidateError(
            values=self.get_fields_value(name_path_list),
            error_fields=error_list,
            out_of_date=out_of_date,
        )

    # ─── Submit ──────────────────────────────────────────────────────────

    def submit(self) -> asyncio.Task:
        """Validate everything, then call on_finish or on_finish_failed."""
        task = asyncio.get_running_loop().create_task(self._submit())
        task.add_done_callback(_consume_exception)
        return task

    async def _submit(self) -> None:
        try:
            values = await self.validate_fields()
        except ValidateError as error:
            on_finish_failed = self._callbacks.on_finish_failed
            if on_finish_failed is not None:
                on_finish_failed(error)
            return

        on_finish = self._callbacks.on_finish
        if on_finish is not None:
            try:
                on_finish(values)
            except Exception:
                logger.exception("on_finish callback failed")


async def _field_result(name_path: NamePath, future: asyncio.Future) -> FieldError:
    """Split one field's rule errors into blocking errors and warnings."""
    errors: list[str] = []
    warnings: list[str] = []
    for rule_error in await future:
        if rule_error.rule.warning_only:
            warnings.extend(rule_error.errors)
        else:
            errors.extend(rule_error.errors)
    return FieldError(name=name_path, errors=errors, warnings=warnings)
