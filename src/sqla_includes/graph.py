from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any, ClassVar, Generic, TypeVar, Union

from .entity import Cardinality
from .keys import KeyAccessor


T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RootNavigation:
    """First-level navigation: a relationship of the root entity.

    ``owner_key`` is the join column on the root side, ``target_key`` the join
    column on the target side.  Either may be ``None`` when a foreign key
    could not be resolved; joins are only checked when they are rendered.
    """

    level: ClassVar[int] = 1

    owner: type[Any]
    name: str
    target: type[Any]
    cardinality: Cardinality
    owner_key: KeyAccessor | None
    target_key: KeyAccessor | None
    target_pk: KeyAccessor
    exclude: tuple[str, ...] = ()

    @property
    def uselist(self) -> bool:
        return self.cardinality is Cardinality.MANY


@dataclass(frozen=True, slots=True)
class ChildNavigation:
    """Second-level navigation hanging off the target of *anchor*."""

    level: ClassVar[int] = 2

    anchor: RootNavigation
    owner: type[Any]
    name: str
    target: type[Any]
    cardinality: Cardinality
    owner_key: KeyAccessor | None
    target_key: KeyAccessor | None
    target_pk: KeyAccessor
    exclude: tuple[str, ...] = ()

    @property
    def uselist(self) -> bool:
        return self.cardinality is Cardinality.MANY


NavigationDescriptor = Union[RootNavigation, ChildNavigation]


@dataclass(frozen=True, slots=True)
class IncludeGraph(Generic[T]):
    """Ordered include graph of one query.

    ``navigations`` and ``split_on`` always have the same length: the i-th
    split boundary is the primary key of the i-th navigation target, which
    is the first column of its segment in a result row.

    The graph is a value; :meth:`append` returns a new graph.
    """

    root: type[T]
    primary_key: KeyAccessor
    navigations: tuple[NavigationDescriptor, ...] = ()
    split_on: tuple[KeyAccessor, ...] = ()
    withheld: tuple[KeyAccessor, ...] = ()
    backfills: tuple[Callable[[T], None], ...] = ()
    dedups: tuple[Callable[[T], None], ...] = ()
    anchor: RootNavigation | None = field(default=None)

    def append(
        self,
        navigation: NavigationDescriptor,
        *,
        backfill: Callable[[T], None] | None = None,
        dedup: Callable[[T], None] | None = None,
        withhold: KeyAccessor | None = None,
    ) -> IncludeGraph[T]:
        """Return a graph extended by *navigation* and its split boundary.

        A :class:`RootNavigation` becomes the new anchor.

        Args:
            navigation: Descriptor to add.
            backfill: Foreign-key backfill callback to register.
            dedup: Dedup callback to register.
            withhold: Root column to leave out of the projection.
        """
        return replace(
            self,
            navigations=(*self.navigations, navigation),
            split_on=(*self.split_on, navigation.target_pk),
            withheld=self.withheld if withhold is None else (*self.withheld, withhold),
            backfills=self.backfills if backfill is None else (*self.backfills, backfill),
            dedups=self.dedups if dedup is None else (*self.dedups, dedup),
            anchor=navigation if isinstance(navigation, RootNavigation) else self.anchor,
        )

    def owner_index(self, navigation: NavigationDescriptor) -> int:
        """Segment index of the object *navigation* attaches to (0 is the root)."""
        if isinstance(navigation, RootNavigation):
            return 0

        return next(i for i, nav in enumerate(self.navigations, 1) if nav is navigation.anchor)
