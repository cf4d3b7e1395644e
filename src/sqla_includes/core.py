from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar, overload


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

import sqlalchemy as sa

from .conventions import DEFAULT_CONVENTION, NamingConvention, to_snake_case
from .entity import Cardinality, get_entity_info
from .exceptions import InvalidOperationError
from .graph import ChildNavigation, IncludeGraph, RootNavigation
from .keys import resolve_collection_foreign_key, resolve_foreign_key, resolve_primary_key
from .mapping import RowMaterializer
from .pipeline import BackfillForeignKey, DistinctChildren, process
from .sql import Clauses, Condition, Ordering, RawFragment, Rendered, _Conjunction, render


if TYPE_CHECKING:
    from sqlalchemy import orm
    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession

T = TypeVar("T")

logger = logging.getLogger(__name__)

_RowCallback = Callable[[list[Any]], None]


class QueryState(str, Enum):
    ROOT = "root"
    BUILDING = "building"
    EXECUTING = "executing"


class IncludeQuery(Generic[T]):
    """Fluent builder for a root entity query with eagerly joined navigations.

    Every ``include_*`` call resolves the keys it needs, records a navigation
    in the :class:`IncludeGraph` and registers the post-processing it
    requires.  Nothing is rendered until the query is executed; a query can be
    executed once.

    Navigations are limited to two levels: :meth:`include_many` and
    :meth:`include_one` add relationships of the root, and
    :meth:`then_include_one` adds a single relationship of the most recent
    one (the anchor).

    Example:
        >>> customers = await (
        ...     select_include(Customer)
        ...     .include_many("orders")
        ...     .then_include_one("category")
        ...     .include_one("address")
        ...     .where(Customer, "name", "alice")
        ...     .query_async(connection)
        ... )
    """

    __slots__ = ("_clauses", "_graph", "_state", "convention", "entity")

    def __init__(
        self,
        entity: type[T],
        primary_key: str | None = None,
        *,
        convention: NamingConvention = DEFAULT_CONVENTION,
    ) -> None:
        self.entity = entity
        self.convention = convention
        self._graph: IncludeGraph[T] = IncludeGraph(
            root=entity,
            primary_key=resolve_primary_key(entity, primary_key, convention=convention),
        )
        self._clauses = Clauses()
        self._state = QueryState.ROOT

    @property
    def graph(self) -> IncludeGraph[T]:
        return self._graph

    @property
    def clauses(self) -> Clauses:
        return self._clauses

    @property
    def state(self) -> QueryState:
        return self._state

    def _check_open(self) -> None:
        if self._state is QueryState.EXECUTING:
            raise InvalidOperationError(
                f"Query for {self.entity.__name__} has already been executed; build a new one"
            )

    def _exclude(self, entity: type[Any], columns: Sequence[str]) -> tuple[str, ...]:
        info = get_entity_info(entity)
        return tuple(info.scalar(name).name for name in columns)

    def include_many(
        self,
        navigation: str,
        foreign_key: str | None = None,
        child_primary_key: str | None = None,
        exclude_columns: Sequence[str] = (),
    ) -> IncludeChain[T]:
        """Join a one-to-many navigation of the root.

        Args:
            navigation: Collection field on the root entity.
            foreign_key: Field on the child referencing the root key.
                Resolved from metadata or convention when omitted.
            child_primary_key: Primary-key field of the child.
            exclude_columns: Child fields to leave out of the projection.

        Raises:
            KeyNotFoundError: If the child primary key cannot be resolved.
            ValueError: If *navigation* is not a collection of the root.
        """
        self._check_open()
        nav = get_entity_info(self.entity).navigation(navigation)
        if not nav.uselist:
            raise ValueError(
                f"'{navigation}' on {self.entity.__name__} is not a collection; use include_one()"
            )

        child_pk = resolve_primary_key(nav.target, child_primary_key, convention=self.convention)
        fk = resolve_collection_foreign_key(
            self.entity, navigation, foreign_key, convention=self.convention
        )
        descriptor = RootNavigation(
            owner=self.entity,
            name=navigation,
            target=nav.target,
            cardinality=Cardinality.MANY,
            owner_key=self._graph.primary_key,
            target_key=fk,
            target_pk=child_pk,
            exclude=self._exclude(nav.target, exclude_columns),
        )
        self._graph = self._graph.append(descriptor, dedup=DistinctChildren(navigation, child_pk))
        self._state = QueryState.BUILDING
        logger.debug("include_many %s.%s on %r", self.entity.__name__, navigation, fk)

        return IncludeChain(self)

    def include_one(
        self,
        navigation: str,
        foreign_key: str | None = None,
        child_primary_key: str | None = None,
        include_foreign_key: bool = False,
        exclude_columns: Sequence[str] = (),
    ) -> IncludeChain[T]:
        """Join a single (many-to-one / one-to-one) navigation of the root.

        Unless *include_foreign_key* is set, the root's foreign-key column is
        not selected; it is filled from the joined child's primary key after
        materialization and keeps its default where the join found no row.

        Args:
            navigation: Single navigation field on the root entity.
            foreign_key: Field on the root referencing the child key.
            child_primary_key: Primary-key field of the child.
            include_foreign_key: Select the foreign-key column as well.
            exclude_columns: Child fields to leave out of the projection.

        Raises:
            KeyNotFoundError: If the child primary key cannot be resolved.
            ValueError: If *navigation* is a collection.
        """
        self._check_open()
        nav = get_entity_info(self.entity).navigation(navigation)
        if nav.uselist:
            raise ValueError(
                f"'{navigation}' on {self.entity.__name__} is a collection; use include_many()"
            )

        child_pk = resolve_primary_key(nav.target, child_primary_key, convention=self.convention)
        fk = resolve_foreign_key(self.entity, navigation, foreign_key, convention=self.convention)
        descriptor = RootNavigation(
            owner=self.entity,
            name=navigation,
            target=nav.target,
            cardinality=Cardinality.ONE,
            owner_key=fk,
            target_key=child_pk,
            target_pk=child_pk,
            exclude=self._exclude(nav.target, exclude_columns),
        )
        backfill = (
            BackfillForeignKey(navigation, fk, child_pk)
            if fk is not None and not include_foreign_key
            else None
        )
        self._graph = self._graph.append(
            descriptor,
            backfill=backfill,
            withhold=fk if backfill is not None else None,
        )
        self._state = QueryState.BUILDING
        logger.debug("include_one %s.%s on %r", self.entity.__name__, navigation, fk)

        return IncludeChain(self)

    def then_include_one(
        self,
        navigation: str,
        foreign_key: str | None = None,
        grandchild_primary_key: str | None = None,
    ) -> Self:
        """Join a single navigation of the most recently included entity.

        When the anchor is a collection, the grandchild is joined for every
        element of it.

        Raises:
            InvalidOperationError: If no first-level include precedes it.
            KeyNotFoundError: If the grandchild primary key cannot be resolved.
        """
        self._check_open()
        if (anchor := self._graph.anchor) is None:
            raise InvalidOperationError(
                "then_include_one() has no preceding first-level include; "
                "call include_one() or include_many() first"
            )

        owner = anchor.target
        nav = get_entity_info(owner).navigation(navigation)
        if nav.uselist:
            raise ValueError(
                f"'{navigation}' on {owner.__name__} is a collection; only single "
                "navigations can be included on the second level"
            )

        grandchild_pk = resolve_primary_key(
            nav.target, grandchild_primary_key, convention=self.convention
        )
        fk = resolve_foreign_key(owner, navigation, foreign_key, convention=self.convention)
        descriptor = ChildNavigation(
            anchor=anchor,
            owner=owner,
            name=navigation,
            target=nav.target,
            cardinality=Cardinality.ONE,
            owner_key=fk,
            target_key=grandchild_pk,
            target_pk=grandchild_pk,
        )
        backfill = (
            BackfillForeignKey(
                navigation,
                fk,
                grandchild_pk,
                anchor=anchor.name,
                anchor_uselist=anchor.uselist,
            )
            if fk is not None
            else None
        )
        self._graph = self._graph.append(descriptor, backfill=backfill)
        logger.debug("then_include_one %s.%s on %r", owner.__name__, navigation, fk)

        return self

    def _condition(
        self,
        conjunction: _Conjunction,
        target: type[Any] | str,
        field: str | None,
        value: Any,
        op: str,
        alias: str | None,
    ) -> Self:
        self._check_open()
        if isinstance(target, str):
            condition = Condition(conjunction, raw=target)
        else:
            if field is None:
                raise ValueError("field is required when filtering on an entity")
            get_entity_info(target).scalar(field)
            condition = Condition(conjunction, target, field, value, op, alias)

        self._clauses = replace(self._clauses, conditions=(*self._clauses.conditions, condition))

        return self

    @overload
    def where(self, target: str) -> Self: ...

    @overload
    def where(
        self,
        target: type[Any],
        field: str,
        value: Any,
        op: str = "=",
        *,
        alias: str | None = None,
    ) -> Self: ...

    def where(
        self,
        target: type[Any] | str,
        field: str | None = None,
        value: Any = None,
        op: str = "=",
        *,
        alias: str | None = None,
    ) -> Self:
        """Filter on a column of any entity in the query, or on raw SQL.

        Values are sent as bound parameters; pass ``sa.bindparam("name")`` to
        reference a key of the ``params`` given at execution.

        Example:
            >>> query.where(Customer, "name", "%Test%", "LIKE")
            >>> query.where("customers.name IS NOT NULL")
        """
        return self._condition("where", target, field, value, op, alias)

    @overload
    def and_(self, target: str) -> Self: ...

    @overload
    def and_(
        self,
        target: type[Any],
        field: str,
        value: Any,
        op: str = "=",
        *,
        alias: str | None = None,
    ) -> Self: ...

    def and_(
        self,
        target: type[Any] | str,
        field: str | None = None,
        value: Any = None,
        op: str = "=",
        *,
        alias: str | None = None,
    ) -> Self:
        """AND a condition onto the accumulated WHERE clause.

        Conditions group left to right: ``where(a).or_(b).and_(c)`` renders
        ``(a OR b) AND c``, not ``a OR (b AND c)``.
        """
        return self._condition("and", target, field, value, op, alias)

    @overload
    def or_(self, target: str) -> Self: ...

    @overload
    def or_(
        self,
        target: type[Any],
        field: str,
        value: Any,
        op: str = "=",
        *,
        alias: str | None = None,
    ) -> Self: ...

    def or_(
        self,
        target: type[Any] | str,
        field: str | None = None,
        value: Any = None,
        op: str = "=",
        *,
        alias: str | None = None,
    ) -> Self:
        """OR a condition onto the accumulated WHERE clause.

        Everything accumulated so far is one operand: ``where(a).and_(b).or_(c)``
        renders ``(a AND b) OR c``.
        """
        return self._condition("or", target, field, value, op, alias)

    @overload
    def order_by(self, target: str, ascending: bool = True) -> Self: ...

    @overload
    def order_by(
        self,
        target: type[Any],
        field: str,
        ascending: bool = True,
        *,
        alias: str | None = None,
    ) -> Self: ...

    def order_by(
        self,
        target: type[Any] | str,
        field: str | bool | None = None,
        ascending: bool = True,
        *,
        alias: str | None = None,
    ) -> Self:
        """Order roots by a column of any entity in the query, or by raw SQL."""
        self._check_open()
        if isinstance(target, str):
            ordering = Ordering(raw=target, ascending=ascending if field is None else bool(field))
        else:
            if not isinstance(field, str):
                raise ValueError("field is required when ordering by an entity column")
            get_entity_info(target).scalar(field)
            ordering = Ordering(target, field, ascending, alias)

        self._clauses = replace(self._clauses, orderings=(*self._clauses.orderings, ordering))

        return self

    def raw_sql(self, text: str, after_from: bool = True) -> Self:
        """Append raw SQL to the statement.

        With *after_from* the text is appended at the end of the statement
        (after FROM and the joins when no WHERE or ORDER BY was added);
        otherwise it is added to the select list, right before FROM.
        """
        self._check_open()
        self._clauses = replace(
            self._clauses, fragments=(*self._clauses.fragments, RawFragment(text, after_from))
        )

        return self

    def use_select(self, transform: Callable[[sa.Select[Any]], sa.Select[Any]]) -> Self:
        """Register a function applied to the rendered SELECT (e.g. ``.with_for_update()``)."""
        self._check_open()
        self._clauses = replace(self._clauses, transforms=(*self._clauses.transforms, transform))

        return self

    def to_statement(self) -> sa.Select[Any]:
        """Render the SELECT without executing (the query stays open)."""
        return render(self._graph, self._clauses, self.convention).statement

    def _prepare(self) -> Rendered:
        self._check_open()
        self._state = QueryState.EXECUTING
        rendered = render(self._graph, self._clauses, self.convention)
        logger.debug("Include query for %s:\n%s", self.entity.__name__, rendered.statement)

        return rendered

    def _materializer(
        self, rendered: Rendered, on_row: _RowCallback | None
    ) -> RowMaterializer[T]:
        return RowMaterializer(
            rendered.segments,
            rendered.links,
            key=self._graph.primary_key.get,
            on_row=on_row,
        )

    def _finish(self, materializer: RowMaterializer[T]) -> list[T]:
        return process(
            materializer.results(),
            backfills=self._graph.backfills,
            dedups=self._graph.dedups,
        )

    def query(
        self,
        connection: sa.Connection | orm.Session,
        params: Mapping[str, Any] | None = None,
        *,
        buffered: bool = True,
        execution_options: Mapping[str, Any] | None = None,
        on_row: _RowCallback | None = None,
    ) -> list[T]:
        """Execute on a sync ``Connection`` or ``Session`` and return the roots.

        Args:
            connection: Connection or session; its transaction is used.
            params: Values for ``bindparam`` / ``:name`` placeholders.
            buffered: When false, rows are streamed from the cursor.
            execution_options: Forwarded to ``execute`` unchanged.
            on_row: Called with the materialized segments of every row,
                before they are wired together.

        Raises:
            InvalidOperationError: If the query was already executed.
            UnresolvedForeignKeyError: If a join key was never resolved.
        """
        rendered = self._prepare()
        options = dict(execution_options or {})
        if not buffered:
            options["stream_results"] = True

        result = connection.execute(rendered.statement, dict(params or {}), execution_options=options)
        materializer = self._materializer(rendered, on_row)
        try:
            materializer.bind(list(result.keys()))
            materializer.feed_all(result)
        finally:
            result.close()

        return self._finish(materializer)

    async def query_async(
        self,
        connection: AsyncConnection | AsyncSession,
        params: Mapping[str, Any] | None = None,
        *,
        buffered: bool = True,
        timeout: float | None = None,
        execution_options: Mapping[str, Any] | None = None,
        on_row: _RowCallback | None = None,
    ) -> list[T]:
        """Execute on an ``AsyncConnection`` or ``AsyncSession`` and return the roots.

        Same as :meth:`query`; *timeout* (seconds) bounds the execution and
        the fetching of all rows.
        """
        rendered = self._prepare()
        materializer = self._materializer(rendered, on_row)
        fetch = _fetch_async(
            connection,
            rendered.statement,
            dict(params or {}),
            materializer,
            buffered=buffered,
            execution_options=dict(execution_options or {}),
        )
        if timeout is not None:
            await asyncio.wait_for(fetch, timeout)
        else:
            await fetch

        return self._finish(materializer)


async def _fetch_async(
    connection: AsyncConnection | AsyncSession,
    statement: sa.Select[Any],
    params: dict[str, Any],
    materializer: RowMaterializer[Any],
    *,
    buffered: bool,
    execution_options: dict[str, Any],
) -> None:
    if buffered:
        result = await connection.execute(statement, params, execution_options=execution_options)
        materializer.bind(list(result.keys()))
        materializer.feed_all(result)
        return

    stream = await connection.stream(statement, params, execution_options=execution_options)
    try:
        materializer.bind(list(stream.keys()))
        async for row in stream:
            materializer.feed(row)
    finally:
        await stream.close()


class IncludeChain(Generic[T]):
    """Builder state right after a first-level include.

    Exposes :meth:`then_include_one` for the just-included entity and
    forwards everything else to the underlying :class:`IncludeQuery`.
    """

    __slots__ = ("_query",)

    def __init__(self, query: IncludeQuery[T]) -> None:
        self._query = query

    @property
    def query_builder(self) -> IncludeQuery[T]:
        return self._query

    @property
    def graph(self) -> IncludeGraph[T]:
        return self._query.graph

    def then_include_one(
        self,
        navigation: str,
        foreign_key: str | None = None,
        grandchild_primary_key: str | None = None,
    ) -> Self:
        self._query.then_include_one(navigation, foreign_key, grandchild_primary_key)
        return self

    def include_many(
        self,
        navigation: str,
        foreign_key: str | None = None,
        child_primary_key: str | None = None,
        exclude_columns: Sequence[str] = (),
    ) -> IncludeChain[T]:
        return self._query.include_many(navigation, foreign_key, child_primary_key, exclude_columns)

    def include_one(
        self,
        navigation: str,
        foreign_key: str | None = None,
        child_primary_key: str | None = None,
        include_foreign_key: bool = False,
        exclude_columns: Sequence[str] = (),
    ) -> IncludeChain[T]:
        return self._query.include_one(
            navigation, foreign_key, child_primary_key, include_foreign_key, exclude_columns
        )

    def where(self, *args: Any, **kwargs: Any) -> IncludeQuery[T]:
        return self._query.where(*args, **kwargs)

    def and_(self, *args: Any, **kwargs: Any) -> IncludeQuery[T]:
        return self._query.and_(*args, **kwargs)

    def or_(self, *args: Any, **kwargs: Any) -> IncludeQuery[T]:
        return self._query.or_(*args, **kwargs)

    def order_by(self, *args: Any, **kwargs: Any) -> IncludeQuery[T]:
        return self._query.order_by(*args, **kwargs)

    def raw_sql(self, text: str, after_from: bool = True) -> IncludeQuery[T]:
        return self._query.raw_sql(text, after_from)

    def use_select(
        self, transform: Callable[[sa.Select[Any]], sa.Select[Any]]
    ) -> IncludeQuery[T]:
        return self._query.use_select(transform)

    def to_statement(self) -> sa.Select[Any]:
        return self._query.to_statement()

    def query(self, *args: Any, **kwargs: Any) -> list[T]:
        return self._query.query(*args, **kwargs)

    async def query_async(self, *args: Any, **kwargs: Any) -> list[T]:
        return await self._query.query_async(*args, **kwargs)


def select_include(
    entity: type[T],
    primary_key: str | None = None,
    *,
    convention: NamingConvention = DEFAULT_CONVENTION,
) -> IncludeQuery[T]:
    """Start an include query for *entity*.

    Args:
        entity: Root dataclass entity.
        primary_key: Root primary-key field; resolved from ``key()`` metadata
            or the naming convention when omitted.
        convention: Naming convention for keys and table names.

    Raises:
        KeyNotFoundError: If the root primary key cannot be resolved.

    Examples:
        One-to-many plus a single navigation::

            customers = select_include(Customer).include_many("orders").include_one("address").query(conn)

        Second-level include on every order::

            query = (
                select_include(Customer, "customer_id")
                .include_many("orders", "customer_id")
                .then_include_one("detail", "order_id", "order_id")
            )

        Filtering and ordering::

            query = (
                select_include(Customer)
                .include_many("orders")
                .where(Customer, "name", "%Test%", "LIKE")
                .order_by(Customer, "name")
            )
    """
    return IncludeQuery(entity, primary_key, convention=convention)


def sqla_cache_info() -> dict[str, Any]:
    """Return LRU cache statistics for all internal caches."""
    from .tools import _get_table_name

    return {
        fn.__name__: fn.cache_info()
        for fn in (
            get_entity_info,
            resolve_primary_key,
            resolve_foreign_key,
            resolve_collection_foreign_key,
            to_snake_case,
            _get_table_name,
        )
    }


def sqla_cache_clear() -> None:
    """Clear all internal LRU caches."""
    from .tools import _get_table_name

    for fn in (
        get_entity_info,
        resolve_primary_key,
        resolve_foreign_key,
        resolve_collection_foreign_key,
        to_snake_case,
        _get_table_name,
    ):
        fn.cache_clear()
