"""Name paths and the immutable value document they address.

A name path is an ordered list of str/int segments: ``["users", 0, "name"]``.
The store document is plain nested dicts and lists. Every write copies the
containers along the written path and shares everything else, so a
snapshot taken before a write stays valid for diffing afterwards.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, Iterable, Iterator, TypeVar

T = TypeVar("T")
U = TypeVar("U")

Segment = str | int
NamePath = list[Segment]


def to_name_path(path: Any) -> NamePath:
    """Normalise a user-supplied name into an internal name path.

    'a' -> ['a'], 0 -> [0], ('a', 0) -> ['a', 0], None -> []
    """
    if path is None:
        return []
    if isinstance(path, (list, tuple)):
        return list(path)
    return [path]


def _child(container: Any, segment: Segment) -> Any:
    if isinstance(container, dict):
        return container.get(segment)
    if isinstance(container, list) and isinstance(segment, int):
        if -len(container) <= segment < len(container):
            return container[segment]
    return None


def get_value(store: Any, name_path: Iterable[Segment]) -> Any:
    """Read the value at name_path. Missing segments yield None."""
    current = store
    for segment in name_path:
        if current is None:
            return None
        current = _child(current, segment)
    return current


def set_value(store: Any, name_path: Iterable[Segment], value: Any, remove_if_none: bool = False) -> Any:
    """Return a new document with value written at name_path.

    The input document is never mutated. Containers missing along the path
    are created: a list when the segment is an int, otherwise a dict.
    With remove_if_none, writing None deletes the key instead.
    """
    path = list(name_path)
    if not path:
        return value
    return _set(store, path, value, remove_if_none)


def _set(entity: Any, path: NamePath, value: Any, remove_if_none: bool) -> Any:
    head, rest = path[0], path[1:]
    removing = remove_if_none and value is None and not rest

    if isinstance(entity, list) and isinstance(head, int) and head >= 0:
        clone: Any = list(entity)
    elif isinstance(entity, list):
        clone = dict(enumerate(entity))
    elif isinstance(entity, dict):
        clone = dict(entity)
    elif isinstance(head, int) and head >= 0:
        clone = []
    else:
        clone = {}

    if rest:
        value = _set(_child(clone, head), rest, value, remove_if_none)

    if isinstance(clone, list):
        if head >= len(clone):
            if removing:
                return clone
            clone.extend([None] * (head + 1 - len(clone)))
        clone[head] = value
        return clone

    if removing:
        clone.pop(head, None)
    else:
        clone[head] = value
    return clone


def clone_by_paths(store: Any, name_paths: Iterable[Iterable[Segment]]) -> dict:
    """Build a minimal document holding only the values at name_paths."""
    new_store: Any = {}
    for name_path in name_paths:
        path = list(name_path)
        new_store = set_value(new_store, path, get_value(store, path))
    return new_store


def _merge_into(target: Any, source: Any) -> Any:
    clone = list(target) if isinstance(target, list) else dict(target)
    if source is None:
        return clone

    items = enumerate(source) if isinstance(source, list) else source.items()
    for key, value in items:
        if isinstance(clone, list):
            if isinstance(key, int) and key < len(clone):
                clone[key] = value
            else:
                clone.append(value)
            continue
        prev = clone.get(key)
        # Only plain dicts merge deeply. Lists are replaced wholesale.
        if type(prev) is dict and type(value) is dict:
            clone[key] = _merge_into(prev, value)
        else:
            clone[key] = value
    return clone


def merge(*sources: Any) -> Any:
    """Deep-merge documents left to right; last writer wins per leaf.

    merge({'a': 1, 'b': {'c': 2}}, {'a': 4, 'b': {'d': 5}})
        == {'a': 4, 'b': {'c': 2, 'd': 5}}

    Lists are never unioned: a later list replaces an earlier one.
    """
    if not sources:
        return {}
    first = sources[0]
    result: Any = list(first) if isinstance(first, list) else dict(first or {})
    for source in sources[1:]:
        result = _merge_into(result, source)
    return result


def match_name_path(name_path: Iterable[Segment] | None, changed: Iterable[Segment] | None, match_prefix: bool = False) -> bool:
    """True when both paths are segment-wise equal.

    With match_prefix, `changed` only has to be a prefix of `name_path`.
    """
    if name_path is None or changed is None:
        return False
    name_path = list(name_path)
    changed = list(changed)
    if not match_prefix and len(name_path) != len(changed):
        return False
    if len(changed) > len(name_path):
        return False
    return all(_same_segment(name_path[i], unit) for i, unit in enumerate(changed))


def _same_segment(a: Segment, b: Segment) -> bool:
    return type(a) is type(b) and a == b


def contains_name_path(name_paths: Iterable[Iterable[Segment]] | None, name_path: Iterable[Segment], match_prefix: bool = False) -> bool:
    if not name_paths:
        return False
    return any(match_name_path(name_path, path, match_prefix) for path in name_paths)


def is_similar(source: Any, target: Any) -> bool:
    """Shallow equality that ignores differences between callables."""
    if source is target:
        return True
    if not isinstance(source, dict) or not isinstance(target, dict):
        return source == target

    for key in set(source) | set(target):
        a, b = source.get(key), target.get(key)
        if callable(a) and callable(b):
            continue
        if a is not b and a != b:
            return False
    return True


def move(items: list[T], move_index: int, to_index: int) -> list[T]:
    """Return a copy of items with the entry at move_index moved to to_index."""
    length = len(items)
    if move_index < 0 or move_index >= length or to_index < 0 or to_index >= length:
        return items
    if move_index == to_index:
        return items
    result = list(items)
    item = result.pop(move_index)
    result.insert(to_index, item)
    return result


def _key(name_path: Iterable[Segment]) -> tuple:
    return tuple((type(segment).__name__, segment) for segment in name_path)


class NameMap(Generic[T]):
    """A dict that accepts name paths as keys."""

    __slots__ = ("_kvs",)

    def __init__(self) -> None:
        self._kvs: dict[tuple, tuple[NamePath, T]] = {}

    def set(self, key: Iterable[Segment], value: T) -> None:
        path = list(key)
        self._kvs[_key(path)] = (path, value)

    def get(self, key: Iterable[Segment], default: T | None = None) -> T | None:
        entry = self._kvs.get(_key(key))
        return entry[1] if entry is not None else default

    def update(self, key: Iterable[Segment], updater: Callable[[T | None], T | None]) -> None:
        """Replace the value with updater(old). A falsy result deletes the key."""
        next_value = updater(self.get(key))
        if not next_value:
            self.delete(key)
        else:
            self.set(key, next_value)

    def delete(self, key: Iterable[Segment]) -> None:
        self._kvs.pop(_key(key), None)

    def map(self, callback: Callable[[NamePath, T], U]) -> list[U]:
        return [callback(list(path), value) for path, value in self._kvs.values()]

    def to_dict(self) -> dict[str, T]:
        return {".".join(str(s) for s in path): value for path, value in self._kvs.values()}

    def __contains__(self, key: Iterable[Segment]) -> bool:
        return _key(key) in self._kvs

    def __iter__(self) -> Iterator[NamePath]:
        return (list(path) for path, _ in self._kvs.values())

    def __len__(self) -> int:
        return len(self._kvs)

    def __repr__(self) -> str:
        return f"NameMap({self.to_dict()!r})"
