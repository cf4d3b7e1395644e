from __future__ import annotations

import dataclasses
import types
from collections.abc import Collection, Mapping, MutableSequence, Sequence
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Final, TypeVar, Union, get_args, get_origin, get_type_hints


T = TypeVar("T")

KEY_METADATA: Final[str] = "sqla_includes.key"
FOREIGN_KEY_METADATA: Final[str] = "sqla_includes.foreign_key"
INVERSE_PROPERTY_METADATA: Final[str] = "sqla_includes.inverse_property"
COLUMN_METADATA: Final[str] = "sqla_includes.column"

_COLLECTION_ORIGINS: Final[frozenset[Any]] = frozenset({list, Sequence, MutableSequence, Collection})


class Cardinality(str, Enum):
    ONE = "one"
    MANY = "many"


@dataclass(frozen=True, slots=True)
class ScalarField:
    name: str
    column: str
    is_key: bool = False
    foreign_key: str | None = None


@dataclass(frozen=True, slots=True)
class NavigationField:
    name: str
    target: type[Any]
    cardinality: Cardinality
    foreign_key: str | None = None
    inverse_property: str | None = None

    @property
    def uselist(self) -> bool:
        return self.cardinality is Cardinality.MANY


@dataclass(frozen=True, slots=True)
class EntityInfo:
    """Column and navigation layout of one dataclass entity.

    Built once per type by :func:`get_entity_info`.  Fields keep their
    declaration order, which is the order primary-key metadata is scanned in
    and the order columns are projected in.
    """

    entity: type[Any]
    scalars: tuple[ScalarField, ...]
    navigations: tuple[NavigationField, ...]

    def find_scalar(self, name: str) -> ScalarField | None:
        """Case-insensitive lookup of a scalar field."""
        lowered = name.lower()
        return next((f for f in self.scalars if f.name.lower() == lowered), None)

    def scalar(self, name: str) -> ScalarField:
        if (found := next((f for f in self.scalars if f.name == name), None)) is None:
            raise ValueError(
                f"No column field '{name}' on {self.entity.__name__}. "
                f"Available: {[f.name for f in self.scalars]}"
            )

        return found

    def find_navigation(self, name: str) -> NavigationField | None:
        return next((n for n in self.navigations if n.name == name), None)

    def navigation(self, name: str) -> NavigationField:
        if (found := self.find_navigation(name)) is None:
            raise ValueError(
                f"No navigation '{name}' on {self.entity.__name__}. "
                f"Available: {[n.name for n in self.navigations]}"
            )

        return found

    def create(self, values: Mapping[str, Any]) -> Any:
        """Instantiate the entity from a partial set of column values.

        Fields missing from *values* keep their declared default; collection
        navigations without a default start as an empty list, other fields
        without a default are set to ``None``.
        """
        collections = {n.name for n in self.navigations if n.uselist}
        kwargs: dict[str, Any] = {}
        late: dict[str, Any] = {}
        for f in dataclasses.fields(self.entity):
            if f.name in values:
                (kwargs if f.init else late)[f.name] = values[f.name]
            elif f.init and f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
                kwargs[f.name] = [] if f.name in collections else None

        obj = self.entity(**kwargs)
        for name, value in late.items():
            setattr(obj, name, value)

        return obj


def _field(kwargs: dict[str, Any], metadata: Mapping[str, Any]) -> Any:
    return dataclasses.field(metadata={**kwargs.pop("metadata", {}), **metadata}, **kwargs)


def key(**kwargs: Any) -> Any:
    """Declare the primary-key field of an entity.

    Example:
        >>> @dataclass
        ... class Category:
        ...     category_id: int = key(default=0)
        ...     name: str = ""
    """
    return _field(kwargs, {KEY_METADATA: True})


def foreign_key(name: str, **kwargs: Any) -> Any:
    """Declare a foreign-key link.

    On a single navigation field, *name* is the sibling field holding the
    key.  On a column field, *name* is the navigation the column backs.
    """
    return _field(kwargs, {FOREIGN_KEY_METADATA: name})


def inverse_property(name: str, **kwargs: Any) -> Any:
    """Name the back-reference field on the child type of a collection navigation."""
    return _field(kwargs, {INVERSE_PROPERTY_METADATA: name})


def column(name: str, **kwargs: Any) -> Any:
    """Map a field to a column whose name differs from the field name."""
    return _field(kwargs, {COLUMN_METADATA: name})


def is_entity(tp: Any) -> bool:
    return isinstance(tp, type) and dataclasses.is_dataclass(tp)


def _navigation_target(annotation: Any) -> tuple[type[Any], Cardinality] | None:
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        return _navigation_target(args[0]) if len(args) == 1 else None

    if origin in _COLLECTION_ORIGINS:
        args = get_args(annotation)
        return (args[0], Cardinality.MANY) if args and is_entity(args[0]) else None

    return (annotation, Cardinality.ONE) if is_entity(annotation) else None


@lru_cache(maxsize=256)
def get_entity_info(entity: type[T]) -> EntityInfo:
    """Inspect a dataclass entity (cached).

    Annotations are resolved with :func:`typing.get_type_hints`, so entities
    referencing each other must be importable from their module namespace.

    Raises:
        TypeError: If *entity* is not a dataclass or its annotations cannot
            be resolved.
    """
    if not is_entity(entity):
        raise TypeError(f"{entity!r} is not a dataclass entity")

    try:
        hints = get_type_hints(entity)
    except NameError as exc:
        raise TypeError(f"Cannot resolve annotations of {entity.__name__}: {exc}") from exc

    scalars: list[ScalarField] = []
    navigations: list[NavigationField] = []
    for f in dataclasses.fields(entity):
        meta = f.metadata
        if (target := _navigation_target(hints.get(f.name))) is not None:
            navigations.append(
                NavigationField(
                    name=f.name,
                    target=target[0],
                    cardinality=target[1],
                    foreign_key=meta.get(FOREIGN_KEY_METADATA),
                    inverse_property=meta.get(INVERSE_PROPERTY_METADATA),
                )
            )
            continue

        scalars.append(
            ScalarField(
                name=f.name,
                column=meta.get(COLUMN_METADATA, f.name),
                is_key=bool(meta.get(KEY_METADATA, False)),
                foreign_key=meta.get(FOREIGN_KEY_METADATA),
            )
        )

    return EntityInfo(entity=entity, scalars=tuple(scalars), navigations=tuple(navigations))
