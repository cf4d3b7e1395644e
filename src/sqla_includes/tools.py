from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable, Sequence
from functools import lru_cache
from typing import Any, TypeVar

import sqlalchemy as sa

from .conventions import DEFAULT_CONVENTION, NamingConvention
from .keys import resolve_primary_key


_R = TypeVar("_R")


def distinct_by(items: Iterable[_R], key: Callable[[_R], Hashable]) -> list[_R]:
    """Keep the first item for each distinct *key*, preserving order of first appearance.

    Example:
        >>> distinct_by([order1, order2, order1], lambda o: o.order_id)
        [order1, order2]
    """
    seen: set[Hashable] = set()
    out: list[_R] = []
    for item in items:
        value = key(item)
        if value not in seen:
            seen.add(value)
            out.append(item)

    return out


@lru_cache
def _get_table_name(entity: type[Any], convention: NamingConvention) -> str:
    """Return the table name for *entity*, preferring ``__tablename__`` (cached)."""
    result = getattr(entity, "__tablename__", None) or convention.table_name(entity.__name__)
    if not result:
        raise ValueError(f"Cannot determine tablename for {entity}")

    return result


def get_table_name(entity: type[Any], convention: NamingConvention = DEFAULT_CONVENTION) -> str:
    """Get the table name for an entity.

    Args:
        entity: Dataclass entity.
        convention: Naming convention used when ``__tablename__`` is not set.

    Returns:
        The table name as a string.
    """
    return _get_table_name(entity, convention)


def get_primary_key(entity: type[Any], convention: NamingConvention = DEFAULT_CONVENTION) -> str:
    """Get the primary-key column name for an entity.

    Raises:
        KeyNotFoundError: If the key cannot be resolved.
    """
    return resolve_primary_key(entity, convention=convention).column


def get_aliases(statement: sa.Select[Any]) -> Sequence[str]:
    """List table and alias names in the FROM tree of *statement*, left to right.

    Use it to discover the alias to pass as ``alias=`` to ``where`` or
    ``order_by`` when an entity is joined more than once.
    """
    out: list[str] = []
    for root in statement.get_final_froms():
        stack: list[Any] = [root]
        while stack:
            node = stack.pop()
            if isinstance(node, sa.Join):
                stack.extend([node.right, node.left])
                continue

            if (name := getattr(node, "name", None)) and name not in out:
                out.append(name)

    return out
