from __future__ import annotations

import operator
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Final, Literal

import sqlalchemy as sa

from .conventions import DEFAULT_CONVENTION, NamingConvention
from .entity import get_entity_info
from .exceptions import UnresolvedForeignKeyError
from .graph import IncludeGraph
from .keys import KeyAccessor
from .mapping import Link, Segment
from .tools import get_table_name


_Conjunction = Literal["where", "and", "or"]

_OPERATORS: Final[Mapping[str, Callable[[Any, Any], Any]]] = {
    "=": operator.eq,
    "==": operator.eq,
    "!=": operator.ne,
    "<>": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "like": lambda col, value: col.like(value),
    "not like": lambda col, value: col.not_like(value),
    "ilike": lambda col, value: col.ilike(value),
    "in": lambda col, value: col.in_(value),
    "not in": lambda col, value: col.not_in(value),
    "is": lambda col, value: col.is_(value),
    "is not": lambda col, value: col.is_not(value),
}


@dataclass(frozen=True, slots=True)
class Condition:
    conjunction: _Conjunction
    entity: type[Any] | None = None
    field: str | None = None
    value: Any = None
    op: str = "="
    alias: str | None = None
    raw: str | None = None


@dataclass(frozen=True, slots=True)
class Ordering:
    entity: type[Any] | None = None
    field: str | None = None
    ascending: bool = True
    alias: str | None = None
    raw: str | None = None


@dataclass(frozen=True, slots=True)
class RawFragment:
    text: str
    after_from: bool = True


@dataclass(frozen=True, slots=True)
class Clauses:
    """Filtering, ordering and raw SQL requested on a query, in call order."""

    conditions: tuple[Condition, ...] = ()
    orderings: tuple[Ordering, ...] = ()
    fragments: tuple[RawFragment, ...] = ()
    transforms: tuple[Callable[[sa.Select[Any]], sa.Select[Any]], ...] = ()


@dataclass(frozen=True, slots=True)
class Rendered:
    statement: sa.Select[Any]
    segments: tuple[Segment, ...]
    links: tuple[Link, ...]


def _table(entity: type[Any], convention: NamingConvention) -> sa.TableClause:
    info = get_entity_info(entity)
    return sa.table(get_table_name(entity, convention), *(sa.column(f.column) for f in info.scalars))


def _project(
    entity: type[Any],
    from_: sa.FromClause,
    pk: KeyAccessor,
    skip: set[str],
    convention: NamingConvention,
) -> tuple[list[sa.Label[Any]], Segment]:
    """Label the columns of one segment, primary key first."""
    info = get_entity_info(entity)
    name = from_.name  # type: ignore[attr-defined]
    fields = [pk.name, *(f.name for f in info.scalars if f.name != pk.name and f.name not in skip)]
    columns = [
        from_.c[info.scalar(field).column].label(convention.label(name, info.scalar(field).column))
        for field in fields
    ]

    return columns, Segment(entity=entity, split_on=columns[0].name, fields=tuple(fields))


def _compare(column: sa.ColumnElement[Any], op: str, value: Any) -> sa.ColumnElement[bool]:
    if (fn := _OPERATORS.get(" ".join(op.lower().split()))) is not None:
        return fn(column, value)

    return column.op(op)(value)


class _Froms:
    """FROM elements of a rendered query, addressable by entity or alias name."""

    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[tuple[type[Any], sa.FromClause]] = []

    def add(self, entity: type[Any], from_: sa.FromClause) -> None:
        self._items.append((entity, from_))

    def __getitem__(self, index: int) -> sa.FromClause:
        return self._items[index][1]

    def column(
        self, entity: type[Any], field: str, alias: str | None = None
    ) -> sa.ColumnElement[Any]:
        if alias is not None:
            found = next((f for _, f in self._items if f.name == alias), None)  # type: ignore[attr-defined]
        else:
            found = next((f for e, f in self._items if e is entity), None)

        if found is None:
            raise ValueError(
                f"{entity.__name__} (alias {alias!r}) is not part of the query. "
                f"Available: {[f.name for _, f in self._items]}"  # type: ignore[attr-defined]
            )

        return found.c[get_entity_info(entity).scalar(field).column]


def render(
    graph: IncludeGraph[Any],
    clauses: Clauses = Clauses(),
    convention: NamingConvention = DEFAULT_CONVENTION,
) -> Rendered:
    """Realise an include graph into a single SELECT.

    The root table keeps its name; every navigation target is aliased
    ``{table}_{n}`` where ``n`` is its position in the graph.  Joins are
    emitted as LEFT OUTER JOINs in graph order, so the segment order of a
    result row matches ``graph.split_on``.

    Raises:
        UnresolvedForeignKeyError: If a join key was not resolved when the
            include was declared.
    """
    froms = _Froms()
    root = _table(graph.root, convention)
    froms.add(graph.root, root)

    columns, segment = _project(
        graph.root, root, graph.primary_key, {k.name for k in graph.withheld}, convention
    )
    segments = [segment]
    links: list[Link] = []
    joined: sa.FromClause = root

    for index, nav in enumerate(graph.navigations, 1):
        if nav.owner_key is None or nav.target_key is None:
            raise UnresolvedForeignKeyError(
                f"Cannot join {nav.owner.__name__}.{nav.name}: foreign key is not resolved. "
                "Pass it explicitly or declare it with foreign_key()/inverse_property()."
            )

        target = _table(nav.target, convention)
        alias = target.alias(f"{target.name}_{index}")
        owner_index = graph.owner_index(nav)
        owner = froms[owner_index]
        joined = joined.outerjoin(
            alias, owner.c[nav.owner_key.column] == alias.c[nav.target_key.column]
        )
        froms.add(nav.target, alias)

        cols, segment = _project(nav.target, alias, nav.target_pk, set(nav.exclude), convention)
        columns.extend(cols)
        segments.append(segment)
        links.append(Link(index=index, owner=owner_index, name=nav.name, uselist=nav.uselist))

    statement: sa.Select[Any] = sa.select(*columns).select_from(joined)

    clause: sa.ColumnElement[bool] | None = None
    for condition in clauses.conditions:
        expr = (
            sa.text(condition.raw)
            if condition.raw is not None
            else _compare(
                froms.column(condition.entity, condition.field, condition.alias),  # type: ignore[arg-type]
                condition.op,
                condition.value,
            )
        )
        if clause is None:
            clause = expr
        elif condition.conjunction == "or":
            clause = sa.or_(clause, expr)
        else:
            clause = sa.and_(clause, expr)

    if clause is not None:
        statement = statement.where(clause)

    for ordering in clauses.orderings:
        by = (
            sa.literal_column(ordering.raw)
            if ordering.raw is not None
            else froms.column(ordering.entity, ordering.field, ordering.alias)  # type: ignore[arg-type]
        )
        statement = statement.order_by(sa.asc(by) if ordering.ascending else sa.desc(by))

    for fragment in clauses.fragments:
        if fragment.after_from:
            statement = statement.suffix_with(fragment.text)
        else:
            statement = statement.add_columns(sa.literal_column(fragment.text))

    for transform in clauses.transforms:
        statement = transform(statement)

    return Rendered(statement=statement, segments=tuple(segments), links=tuple(links))
