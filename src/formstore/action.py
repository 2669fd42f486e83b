"""Actions and transactions: how the rendering layer drives the store.

Fields send their input through dispatch() as one of two actions:

    UpdateValue(name_path, value)         # user changed the value
    ValidateField(name_path, trigger)     # a validate trigger fired

Wrapping a burst of register/unregister calls in `with transaction(form)`
defers removed fields' cleanup until the outermost scope exits, so a
field that re-registers at the same path in the same pass keeps its value.
Watch notifications queued while no event loop was running are delivered
at that exit too.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

from formstore._namepath import NamePath
from formstore.context import HOOK_MARK, resolve_form
from formstore.interface import FormInstance


@dataclass(frozen=True)
class UpdateValue:
    name_path: NamePath
    value: Any


@dataclass(frozen=True)
class ValidateField:
    name_path: NamePath
    trigger_name: str


ReducerAction = UpdateValue | ValidateField


@contextmanager
def transaction(form: FormInstance) -> Iterator[None]:
    """Batch field registration changes on form.

    Usage:
        with transaction(form):
            old_field.unmount()
            new_field.mount()
            # cleanup for old_field runs here, after new_field registered
    """
    hooks = resolve_form(form).get_internal_hooks(HOOK_MARK)
    store = hooks.get_form_store() if hooks is not None else None
    if store is None:
        yield
        return

    batch = store.batch
    batch.begin_batch()
    try:
        yield
    finally:
        batch.end_batch()
        if not batch.active:
            store.flush_watch()
