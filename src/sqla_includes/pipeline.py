from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from .keys import KeyAccessor
from .tools import distinct_by


T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class BackfillForeignKey:
    """Copy a materialized child's primary key into its owner's foreign-key field.

    Registered for single navigations whose foreign-key column was left out of
    the projection.  When *anchor* is set, the owner is reached through that
    first-level navigation of the root; for a collection anchor the key is set
    on each element.
    """

    navigation: str
    foreign_key: KeyAccessor
    child_key: KeyAccessor
    anchor: str | None = None
    anchor_uselist: bool = False

    def __call__(self, root: Any) -> None:
        if self.anchor is None:
            self._apply(root)
            return

        if (owner := getattr(root, self.anchor)) is None:
            return

        for item in owner if self.anchor_uselist else (owner,):
            if item is not None:
                self._apply(item)

    def _apply(self, owner: Any) -> None:
        if (child := getattr(owner, self.navigation)) is not None:
            self.foreign_key.set(owner, self.child_key.get(child))


@dataclass(frozen=True, slots=True)
class DistinctChildren:
    """Collapse a root collection to one element per primary key, first seen wins."""

    navigation: str
    child_key: KeyAccessor

    def __call__(self, root: Any) -> None:
        if children := getattr(root, self.navigation):
            setattr(root, self.navigation, distinct_by(children, self.child_key.get))


def process(
    roots: Iterable[T],
    *,
    backfills: Sequence[Callable[[T], None]] = (),
    dedups: Sequence[Callable[[T], None]] = (),
) -> list[T]:
    """Run post-materialization callbacks on every root, in place.

    Backfills always run, in registration order.  Dedup callbacks run only
    when more than one collection was joined, since a single one-to-many join
    cannot produce cartesian duplicates.

    Returns:
        The roots, in their original order.
    """
    out = list(roots)
    dedup = len(dedups) > 1

    for root in out:
        for backfill in backfills:
            backfill(root)

        if dedup:
            for distinct in dedups:
                distinct(root)

    return out
