from __future__ import annotations

from typing import Any


class SqlaIncludesError(Exception):
    """Base class for errors raised by sqla_includes."""


class KeyNotFoundError(SqlaIncludesError, LookupError):
    """Raised when the primary key of an entity cannot be resolved."""

    def __init__(self, entity: type[Any], detail: str = "") -> None:
        self.entity = entity
        message = f"Primary key not found for entity {entity.__name__}"
        super().__init__(f"{message}: {detail}" if detail else message)


class InvalidOperationError(SqlaIncludesError, RuntimeError):
    """Raised when a builder method is called in a state that does not allow it."""


class UnresolvedForeignKeyError(SqlaIncludesError, ValueError):
    """Raised while rendering a join whose key could not be resolved."""
