"""Dependency cascade: which fields are affected when a path changes.

Fields declare `dependencies`: paths whose change should re-validate and
re-render them. Given a changed root path, the resolver walks the reverse
index dependency -> fields. A dependent only joins the cascade when it is
itself dirty and has a name; its own path then becomes the next search
key. A clean dependent stops the walk there.

    a <- b <- c     change a: [b, c] when b and c are dirty
"""

from __future__ import annotations

from typing import Iterable

from formstore._namepath import NameMap, NamePath, match_name_path, to_name_path
from formstore.interface import FieldEntity


def build_dependency_index(entities: Iterable[FieldEntity]) -> NameMap[list[FieldEntity]]:
    index: NameMap[list[FieldEntity]] = NameMap()
    for entity in entities:
        for dependency in entity.dependencies or []:
            path = to_name_path(dependency)

            def _add(fields: list[FieldEntity] | None, entity: FieldEntity = entity) -> list[FieldEntity]:
                fields = fields or []
                if entity not in fields:
                    fields.append(entity)
                return fields

            index.update(path, _add)
    return index


def get_dependency_children_fields(entities: Iterable[FieldEntity], root: NamePath) -> list[NamePath]:
    """Affected paths in discovery order, excluding root itself.

    Each entity is visited once, so a dependency cycle terminates.
    """
    index = build_dependency_index(entities)
    visited: set[int] = set()
    children: list[NamePath] = []

    def fill_children(name_path: NamePath) -> None:
        for field in index.get(name_path) or []:
            if id(field) in visited:
                continue
            visited.add(id(field))

            field_path = field.get_name_path()
            if field.is_field_dirty() and field_path and not match_name_path(field_path, root):
                children.append(field_path)
                fill_children(field_path)

    fill_children(list(root))
    return children
