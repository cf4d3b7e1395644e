from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from .entity import get_entity_info


T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Segment:
    """Columns of one entity inside a flat joined row.

    ``split_on`` is the result label of the segment's first column (its
    primary key); ``fields`` are the entity fields in projection order.
    """

    entity: type[Any]
    split_on: str
    fields: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class Link:
    """Attach segment ``index`` to navigation ``name`` of segment ``owner``."""

    index: int
    owner: int
    name: str
    uselist: bool


class RowMaterializer(Generic[T]):
    """Split flat rows into segments and assemble one object tree per root.

    Rows are fed one at a time.  Segment boundaries are found once from the
    result keys: each segment starts at the first occurrence of its
    ``split_on`` label after the previous boundary.  A segment whose first
    column is ``NULL`` (no match in a left join) materializes as ``None``.

    Roots are deduplicated by primary key in order of first appearance.
    Children are appended to collections and assigned to single navigations
    as they are met, so joining more than one collection leaves cartesian
    duplicates that the post-processing step removes.

    Example:
        >>> materializer = RowMaterializer(segments, links, key=pk.get)
        >>> for row in result:
        ...     materializer.feed(row)
        >>> customers = materializer.results()
    """

    __slots__ = ("_bounds", "_infos", "_key", "_links", "_on_row", "_roots", "segments")

    def __init__(
        self,
        segments: Sequence[Segment],
        links: Sequence[Link],
        key: Callable[[T], Hashable],
        *,
        on_row: Callable[[list[Any]], None] | None = None,
    ) -> None:
        if not segments:
            raise ValueError("at least the root segment is required")

        self.segments = tuple(segments)
        self._links = tuple(links)
        self._key = key
        self._on_row = on_row
        self._infos = tuple(get_entity_info(s.entity) for s in self.segments)
        self._bounds: tuple[int, ...] | None = None
        self._roots: dict[Hashable, T] = {}

    def bind(self, keys: Sequence[str]) -> None:
        """Locate segment boundaries in the result *keys*."""
        bounds: list[int] = []
        position = 0
        for segment in self.segments:
            try:
                position = list(keys).index(segment.split_on, position)
            except ValueError:
                raise ValueError(
                    f"Split column {segment.split_on!r} not found in result columns"
                ) from None
            bounds.append(position)
            position += 1

        self._bounds = tuple(bounds)

    def split(self, row: Sequence[Any]) -> list[Any]:
        """Materialize each segment of *row*; unmatched segments are ``None``."""
        if self._bounds is None:
            raise RuntimeError("Materializer is not bound to result columns")

        out: list[Any] = []
        for segment, info, start in zip(self.segments, self._infos, self._bounds):
            values = row[start : start + len(segment.fields)]
            if values[0] is None:
                out.append(None)
                continue

            out.append(info.create(dict(zip(segment.fields, values))))

        return out

    def feed(self, row: Sequence[Any]) -> None:
        objects = self.split(row)
        if self._on_row is not None:
            self._on_row(objects)

        if (root := objects[0]) is None:
            return

        root = self._roots.setdefault(self._key(root), root)
        objects[0] = root

        for link in self._links:
            owner, child = objects[link.owner], objects[link.index]
            if owner is None or child is None:
                continue

            if link.uselist:
                children = getattr(owner, link.name)
                if not isinstance(children, list):
                    children = list(children or ())
                    setattr(owner, link.name, children)
                children.append(child)
            else:
                setattr(owner, link.name, child)

    def feed_all(self, rows: Iterable[Sequence[Any]]) -> None:
        for row in rows:
            self.feed(row)

    def results(self) -> list[T]:
        return list(self._roots.values())
