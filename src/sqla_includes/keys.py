"""Primary and foreign key resolution.

Every resolver follows the same precedence: an explicit field name given by
the caller, then key metadata declared on the entity fields, then the naming
convention.  A missing primary key is an error; a missing foreign key is
reported as ``None`` and left for the caller to deal with.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from .conventions import DEFAULT_CONVENTION, NamingConvention
from .entity import EntityInfo, NavigationField, ScalarField, get_entity_info
from .exceptions import KeyNotFoundError


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class KeyAccessor:
    """Getter/setter pair for the single key field of an entity."""

    entity: type[Any]
    name: str
    column: str

    def get(self, obj: Any) -> Any:
        return getattr(obj, self.name)

    def set(self, obj: Any, value: Any) -> None:
        setattr(obj, self.name, value)

    def __repr__(self) -> str:
        return f"<KeyAccessor {self.entity.__name__}.{self.name}>"


def _accessor(info: EntityInfo, scalar: ScalarField) -> KeyAccessor:
    return KeyAccessor(entity=info.entity, name=scalar.name, column=scalar.column)


def _by_names(info: EntityInfo, names: tuple[str, ...]) -> KeyAccessor | None:
    for name in names:
        if (scalar := info.find_scalar(name)) is not None:
            return _accessor(info, scalar)

    return None


def _explicit(info: EntityInfo, name: str) -> KeyAccessor:
    return _accessor(info, info.scalar(name))


@lru_cache(maxsize=1024)
def resolve_primary_key(
    entity: type[Any],
    explicit: str | None = None,
    *,
    convention: NamingConvention = DEFAULT_CONVENTION,
) -> KeyAccessor:
    """Resolve the primary key of *entity* (cached).

    Args:
        entity: Dataclass entity.
        explicit: Field name chosen by the caller.
        convention: Naming convention for the fallback tier.

    Returns:
        Accessor to the key field.

    Raises:
        KeyNotFoundError: If no tier produces a key.

    Example:
        >>> resolve_primary_key(Customer).name
        'id'
        >>> resolve_primary_key(Customer, "customer_id").name
        'customer_id'
    """
    info = get_entity_info(entity)

    if explicit is not None:
        if (scalar := next((f for f in info.scalars if f.name == explicit), None)) is None:
            raise KeyNotFoundError(entity, f"no column field named {explicit!r}")
        return _accessor(info, scalar)

    if (scalar := next((f for f in info.scalars if f.is_key), None)) is not None:
        return _accessor(info, scalar)

    if (accessor := _by_names(info, convention.primary_key_candidates(entity.__name__))) is not None:
        logger.debug("Primary key of %s resolved by convention: %s", entity.__name__, accessor.name)
        return accessor

    raise KeyNotFoundError(entity)


def _single_foreign_key(
    info: EntityInfo,
    navigation: NavigationField,
    convention: NamingConvention,
) -> KeyAccessor | None:
    if navigation.foreign_key is not None:
        scalar = info.find_scalar(navigation.foreign_key)
        return _accessor(info, scalar) if scalar is not None else None

    lowered = navigation.name.lower()
    for scalar in info.scalars:
        if scalar.foreign_key is not None and scalar.foreign_key.lower() == lowered:
            return _accessor(info, scalar)

    return _by_names(
        info,
        (
            convention.foreign_key_name(navigation.name),
            convention.foreign_key_name(navigation.target.__name__),
        ),
    )


@lru_cache(maxsize=1024)
def resolve_foreign_key(
    entity: type[Any],
    navigation: str,
    explicit: str | None = None,
    *,
    convention: NamingConvention = DEFAULT_CONVENTION,
) -> KeyAccessor | None:
    """Resolve the foreign key on *entity* backing a single navigation (cached).

    Precedence: explicit name, ``foreign_key`` metadata on the navigation,
    a column whose ``foreign_key`` metadata names the navigation, then
    ``{navigation}_id`` and ``{target}_id``.

    Returns:
        Accessor on *entity*, or ``None`` if unresolved.

    Raises:
        ValueError: If *navigation* is not a navigation field of *entity*, or
            *explicit* is not a column field of it.
    """
    info = get_entity_info(entity)
    nav = info.navigation(navigation)

    accessor = _explicit(info, explicit) if explicit is not None else _single_foreign_key(info, nav, convention)
    if accessor is None:
        logger.debug("Foreign key for %s.%s is unresolved", entity.__name__, navigation)

    return accessor


@lru_cache(maxsize=1024)
def resolve_collection_foreign_key(
    entity: type[Any],
    navigation: str,
    explicit: str | None = None,
    *,
    convention: NamingConvention = DEFAULT_CONVENTION,
) -> KeyAccessor | None:
    """Resolve the foreign key on the child type of a collection navigation (cached).

    Precedence: explicit name, ``inverse_property`` metadata naming a
    back-reference on the child, any child navigation targeting *entity*,
    then ``{parent}_id`` and ``{navigation without trailing s}_id``.

    Returns:
        Accessor on the child type, or ``None`` if unresolved.

    Raises:
        ValueError: If *navigation* is not a navigation field of *entity*.
    """
    nav = get_entity_info(entity).navigation(navigation)
    child = get_entity_info(nav.target)

    if explicit is not None:
        return _explicit(child, explicit)

    if nav.inverse_property is not None and (
        back := child.find_navigation(nav.inverse_property)
    ) is not None:
        return _single_foreign_key(child, back, convention)

    back = next(
        (n for n in child.navigations if not n.uselist and n.target is entity),
        None,
    )
    if back is not None:
        return _single_foreign_key(child, back, convention)

    accessor = _by_names(
        child,
        (
            convention.foreign_key_name(entity.__name__),
            convention.foreign_key_name(navigation.rstrip("s")),
        ),
    )
    if accessor is None:
        logger.debug("Foreign key for %s.%s is unresolved", entity.__name__, navigation)

    return accessor
