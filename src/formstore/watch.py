"""Watch: observe form values without being a field.

WatcherCenter is the batching side channel. Every store mutation calls
notify(paths); paths are queued (deduplicated by path equality) and one
flush is scheduled. When several mutations land in the same tick, only the
last scheduled flush runs, so watchers see one callback with every changed
path instead of one per mutation.

watch() builds a value-change reaction on top of it: select a value out of
the form (by name path or selector function) and call effect only when the
selected value actually changes.

Flushes go through loop.call_soon on the running asyncio loop. With no
running loop they wait: the next mutation made inside a loop, the exit of
the outermost `transaction(form)`, or an explicit `flush_watchers(form)`
delivers them. Pass `scheduler=` to the form to route flushes elsewhere
(a UI toolkit's call_later, a test queue).
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Callable

from formstore._namepath import NamePath, get_value, match_name_path, to_name_path
from formstore.context import HOOK_MARK, resolve_form
from formstore.interface import FormInstance

if TYPE_CHECKING:
    from formstore.store import FormStore


WatchCallback = Callable[[Any, Any, list[NamePath]], None]
Scheduler = Callable[[Callable[[], None]], None]


class WatcherCenter:
    """Coalesces store change notifications into one callback per tick."""

    def __init__(self, store: FormStore, scheduler: Scheduler | None = None) -> None:
        self._store = store
        self._scheduler = scheduler
        self._watchers: list[WatchCallback] = []
        self.name_path_list: list[NamePath] = []
        self.task_id = 0
        # Flush waiting for a running loop or an explicit flush().
        self._deferred_id: int | None = None

    def register(self, callback: WatchCallback) -> Callable[[], None]:
        """Add a watcher. Returns a function that removes it."""
        self._watchers.append(callback)

        def _unregister() -> None:
            try:
                self._watchers.remove(callback)
            except ValueError:
                pass  # already removed

        return _unregister

    def notify(self, name_paths: list[NamePath] | None = None) -> None:
        for path in name_paths or []:
            if all(not match_name_path(exist, path) for exist in self.name_path_list):
                self.name_path_list.append(list(path))
        self._do_batch()

    def _do_batch(self) -> None:
        self.task_id += 1
        current_id = self.task_id
        if self._scheduler is not None:
            self._scheduler(lambda: self._flush(current_id))
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deferred_id = current_id
            return
        self._deferred_id = None
        loop.call_soon(self._flush, current_id)

    def flush(self) -> None:
        """Deliver a flush that was queued while no loop was running."""
        if self._deferred_id is None:
            return
        task_id, self._deferred_id = self._deferred_id, None
        self._flush(task_id)

    def _flush(self, task_id: int) -> None:
        if task_id != self.task_id:
            return

        name_paths = self.name_path_list
        self.name_path_list = []
        if not self._watchers:
            return

        values = self._store.get_fields_value()
        all_values = self._store.get_fields_value(True)
        for callback in list(self._watchers):
            callback(values, all_values, name_paths)


class WatchHandle:
    """Disposable handle for a watch() subscription."""

    __slots__ = ("_disposed", "_cancel", "value")

    def __init__(self, value: Any = None) -> None:
        self._disposed = False
        self._cancel: Callable[[], None] | None = None
        self.value = value

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        """Stop watching. The effect will not fire again."""
        self._disposed = True
        if self._cancel is not None:
            self._cancel()
            self._cancel = None

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "active"
        return f"WatchHandle({self.value!r}, {state})"


def watch(
    form: FormInstance,
    dependencies: Any,
    effect: Callable[[Any], None],
    *,
    preserve: bool = False,
    fire_immediately: bool = False,
) -> WatchHandle:
    """Call effect(value) whenever the watched value changes.

    `dependencies` is a name path, or a callable that selects a value out
    of the form values. With preserve, values of unregistered paths that
    remain in the store are visible too.

    Usage:
        handle = watch(form, ["user", "name"], lambda name: print(name))
        form.set_field_value(["user", "name"], "Bamboo")
        # effect fires on the next loop tick with "Bamboo"

        handle.dispose()
    """
    if callable(dependencies):
        select = dependencies
    else:
        name_path = to_name_path(dependencies)

        def select(values: Any) -> Any:
            return get_value(values, name_path)

    form = resolve_form(form)
    hooks = form.get_internal_hooks(HOOK_MARK)
    if hooks is None:
        return WatchHandle()

    source = form.get_fields_value(True) if preserve else form.get_fields_value()
    handle = WatchHandle(select(source) if source is not None else None)

    def _on_change(values: Any, all_values: Any, _name_paths: list[NamePath]) -> None:
        if handle.disposed:
            return
        next_value = select(all_values if preserve else values)
        if next_value != handle.value:
            handle.value = next_value
            effect(next_value)

    handle._cancel = hooks.register_watch(_on_change)
    if fire_immediately:
        effect(handle.value)
    return handle


def flush_watchers(form: FormInstance) -> None:
    """Deliver watch notifications queued while no event loop was running.

    Usage:
        form.set_field_value("a", 1)
        form.set_field_value("b", 2)
        flush_watchers(form)  # watchers see one call for both changes
    """
    hooks = resolve_form(form).get_internal_hooks(HOOK_MARK)
    store = hooks.get_form_store() if hooks is not None else None
    if store is not None:
        store.flush_watch()
