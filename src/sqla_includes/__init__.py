"""Declarative eager loading of related entities for dataclass models.

sqla_includes builds one SQLAlchemy SELECT joining a root entity with the
navigations requested through a fluent builder, then splits the joined rows
back into an object tree.  Keys are resolved from ``key()`` /
``foreign_key()`` / ``inverse_property()`` field metadata or from the naming
convention, foreign keys left out of the projection are backfilled, and
cartesian duplicates from sibling one-to-many joins are collapsed.
"""

from ._version import __version__, __version_tuple__
from .conventions import DEFAULT_CONVENTION, NamingConvention
from .core import (
    IncludeChain,
    IncludeQuery,
    QueryState,
    select_include,
    sqla_cache_clear,
    sqla_cache_info,
)
from .entity import Cardinality, column, foreign_key, get_entity_info, inverse_property, key
from .exceptions import (
    InvalidOperationError,
    KeyNotFoundError,
    SqlaIncludesError,
    UnresolvedForeignKeyError,
)
from .graph import ChildNavigation, IncludeGraph, RootNavigation
from .keys import (
    KeyAccessor,
    resolve_collection_foreign_key,
    resolve_foreign_key,
    resolve_primary_key,
)
from .tools import distinct_by, get_aliases, get_primary_key, get_table_name


__all__ = (
    "DEFAULT_CONVENTION",
    "Cardinality",
    "ChildNavigation",
    "IncludeChain",
    "IncludeGraph",
    "IncludeQuery",
    "InvalidOperationError",
    "KeyAccessor",
    "KeyNotFoundError",
    "NamingConvention",
    "QueryState",
    "RootNavigation",
    "SqlaIncludesError",
    "UnresolvedForeignKeyError",
    "__version__",
    "__version_tuple__",
    "column",
    "distinct_by",
    "foreign_key",
    "get_aliases",
    "get_entity_info",
    "get_primary_key",
    "get_table_name",
    "inverse_property",
    "key",
    "resolve_collection_foreign_key",
    "resolve_foreign_key",
    "resolve_primary_key",
    "select_include",
    "sqla_cache_clear",
    "sqla_cache_info",
)
