"""Textual integration for formstore. Opt-in: requires textual.

Form callbacks fire synchronously from whatever code mutated the form.
The helpers here keep those callbacks away from a widget tree that is
being rebuilt, tolerate widgets that are already gone, and hop back to
the app thread when a worker thread changed the form.

A worker thread has no running event loop, so watch notifications from
its changes wait for a flush point: wrap the changes in
`with transaction(form):` or call `flush_watchers(form)` afterwards.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from textual.css.query import NoMatches

from formstore.watch import WatchHandle
from formstore.watch import watch as _watch

# Module-owned pause state, keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app: Any) -> Iterator[None]:
    """Suspend guarded callbacks during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app: Any) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def guard(app: Any, fn: Callable[..., None]) -> Callable[..., None]:
    """Wrap fn so it only runs while app is safe, on the app's thread."""
    main = threading.get_ident()

    def _safe(*args: Any) -> None:
        try:
            fn(*args)
        except NoMatches:
            pass

    def _guarded(*args: Any) -> None:
        if not is_safe(app):
            return
        if threading.get_ident() != main:
            app.call_from_thread(_safe, *args)
        else:
            _safe(*args)

    return _guarded


def watch(app: Any, form: Any, dependencies: Any, effect: Callable[[Any], None], *, preserve: bool = False) -> WatchHandle:
    """watch() whose effect safely updates Textual widgets.

    Usage:
        watch(app, form, "name", lambda name: app.query_one("#title", Label).update(name))
    """
    return _watch(form, dependencies, guard(app, effect), preserve=preserve)


def bind(app: Any, field: Any, render: Callable[[Any], None]) -> Any:
    """Route a Field's (or FieldList's) re-renders to render, guarded for app."""
    field.on_render = guard(app, render)
    return field
