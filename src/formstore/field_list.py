"""FieldList: a dynamic array of fields with stable item keys.

The list registers itself as one field at its path and owns the array
value. Items are addressed by index, but each item also carries a key that
survives add/remove/move, so a renderer can keep per-item widgets alive
while indices shift underneath them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable

from formstore._namepath import NamePath, move, to_name_path
from formstore.context import resolve_form
from formstore.field import Field
from formstore.interface import FormInstance, Meta, NotifyInfo

logger = logging.getLogger("formstore.field_list")


@dataclass(frozen=True)
class ListField:
    """One item of a FieldList: its index, stable key, and list-field flag."""

    name: int
    key: int
    is_list_field: bool = True


def _list_should_update(prev_store: Any, next_store: Any, info: NotifyInfo) -> bool:
    # The list re-renders itself after its own operations.
    if info.source == "internal":
        return False
    return prev_store != next_store


class FieldList:
    """Array field with add/remove/move.

    Usage:
        users = FieldList(form, "users", initial_value=["a", "b"])
        users.mount()
        first = users.field(0).mount()
        users.remove(0)
        [item.key for item in users.fields()]  # [1]
    """

    def __init__(
        self,
        form: FormInstance | None = None,
        name: Any = None,
        *,
        initial_value: list | None = None,
        rules: list | None = None,
        validate_trigger: str | list[str] | None = None,
        is_list_field: bool = False,
        on_render: Callable[[FieldList], None] | None = None,
        on_meta_change: Callable[[Meta], None] | None = None,
    ) -> None:
        form = resolve_form(form)
        self._parent_form = form
        self.prefix_name: NamePath = [*form.prefix_name, *to_name_path(name)]
        # Item fields resolve their names under the list path.
        self.context = replace(form, prefix_name=tuple(self.prefix_name))
        self._keys: list[int] = []
        self._id = 0
        self.on_render = on_render
        self._field = Field(
            self.context,
            [],
            rules=rules,
            validate_trigger=validate_trigger,
            initial_value=initial_value,
            should_update=_list_should_update,
            is_list=True,
            is_list_field=is_list_field,
            on_render=self._render,
            on_meta_change=on_meta_change,
        )

    def __repr__(self) -> str:
        return f"FieldList({self.prefix_name!r}, keys={self._keys!r})"

    def _render(self, _field: Field) -> None:
        if self.on_render is not None:
            self.on_render(self)

    def mount(self) -> FieldList:
        self._field.mount()
        return self

    def unmount(self) -> None:
        self._field.unmount()

    @property
    def field_entity(self) -> Field:
        return self._field

    @property
    def meta(self) -> Meta:
        return self._field.get_meta()

    @property
    def value(self) -> list:
        list_value = self._field.value
        if list_value is None:
            return []
        if not isinstance(list_value, list):
            logger.warning("Current value of '%s' is not an array type.", " > ".join(map(str, self.prefix_name)))
            return []
        return list_value

    def _get_new_value(self) -> list:
        values = self._parent_form.get_field_value(self.prefix_name)
        return list(values or [])

    def fields(self) -> list[ListField]:
        """Current items, each with a key that is stable across operations."""
        items = []
        for index in range(len(self.value)):
            if index >= len(self._keys):
                self._keys.append(self._id)
                self._id += 1
            items.append(ListField(name=index, key=self._keys[index]))
        return items

    def get_key(self, name_path: NamePath) -> tuple[int | None, NamePath]:
        """Split a full item path into (item key, path inside the item)."""
        length = len(self.prefix_name)
        index = name_path[length]
        key = self._keys[index] if isinstance(index, int) and 0 <= index < len(self._keys) else None
        return key, list(name_path[length + 1:])

    # ─── Operations ──────────────────────────────────────────────────────

    def add(self, default_value: Any = None, index: int | None = None) -> None:
        """Insert default_value at index, or append when index is omitted or out of range."""
        self.fields()
        new_value = self._get_new_value()
        if index is not None and 0 <= index <= len(new_value):
            self._keys = [*self._keys[:index], self._id, *self._keys[index:]]
            self._field.on_change([*new_value[:index], default_value, *new_value[index:]])
        else:
            if index is not None:
                logger.warning("The second parameter of the add function should be a valid positive number.")
            self._keys = [*self._keys, self._id]
            self._field.on_change([*new_value, default_value])
        self._id += 1

    def remove(self, index: int | list[int]) -> None:
        """Remove one or several items by index."""
        self.fields()
        new_value = self._get_new_value()
        index_set = set(index if isinstance(index, (list, tuple, set)) else [index])
        if not index_set:
            return
        self._keys = [key for position, key in enumerate(self._keys) if position not in index_set]
        self._field.on_change([item for position, item in enumerate(new_value) if position not in index_set])

    def move(self, from_index: int, to_index: int) -> None:
        """Move an item. Out-of-range indices are ignored."""
        if from_index == to_index:
            return
        self.fields()
        new_value = self._get_new_value()
        if not (0 <= from_index < len(new_value) and 0 <= to_index < len(new_value)):
            return
        self._keys = move(self._keys, from_index, to_index)
        self._field.on_change(move(new_value, from_index, to_index))

    # ─── Items ───────────────────────────────────────────────────────────

    def field(self, index: int, name: Any = None, **props: Any) -> Field:
        """Build the field for item index, or for name inside that item."""
        return Field(self.context, [index, *to_name_path(name)], is_list_field=True, **props)

    def sub_list(self, index: int, name: Any = None, **props: Any) -> FieldList:
        """Build a nested FieldList living inside item index."""
        return FieldList(self.context, [index, *to_name_path(name)], is_list_field=True, **props)
