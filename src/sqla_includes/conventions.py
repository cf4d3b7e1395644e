from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Final


_CAMEL_BOUNDARY: Final = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


@lru_cache(maxsize=512)
def to_snake_case(name: str) -> str:
    """Convert ``CamelCase`` class names to ``snake_case`` (``OrderLine`` -> ``order_line``)."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def pluralize(word: str) -> str:
    """Naive English plural used for conventional table names."""
    if word.endswith(("s", "x", "z", "ch", "sh")):
        return f"{word}es"
    if len(word) > 1 and word.endswith("y") and word[-2] not in "aeiou":
        return f"{word[:-1]}ies"

    return f"{word}s"


@dataclass(frozen=True, slots=True)
class NamingConvention:
    """Naming rules consulted when keys, tables and labels are not given explicitly.

    A convention is an immutable value passed to every resolver and builder
    call.  Patterns use ``{name}`` as the placeholder for the snake-cased type
    or navigation name.

    Attributes:
        plural_table_names: Pluralise conventional table names
            (``Customer`` -> ``customers``).
        primary_key_names: Primary-key field names tried in order.
        foreign_key_pattern: Foreign-key field name built from a navigation
            or type name.
        label_separator: Separator between alias and column in result labels.

    Example:
        >>> convention = NamingConvention(plural_table_names=True)
        >>> convention.table_name("OrderLine")
        'order_lines'
        >>> convention.primary_key_candidates("OrderLine")
        ('id', 'order_line_id')
    """

    plural_table_names: bool = False
    primary_key_names: tuple[str, ...] = ("id", "{name}_id")
    foreign_key_pattern: str = "{name}_id"
    label_separator: str = "__"

    def table_name(self, class_name: str) -> str:
        name = to_snake_case(class_name)
        return pluralize(name) if self.plural_table_names else name

    def primary_key_candidates(self, class_name: str) -> tuple[str, ...]:
        name = to_snake_case(class_name)
        return tuple(pattern.format(name=name) for pattern in self.primary_key_names)

    def foreign_key_name(self, name: str) -> str:
        return self.foreign_key_pattern.format(name=to_snake_case(name))

    def label(self, alias: str, column: str) -> str:
        return f"{alias}{self.label_separator}{column}"


DEFAULT_CONVENTION: Final[NamingConvention] = NamingConvention()
