"""Minimal entities for sqla-includes examples."""

from __future__ import annotations

from dataclasses import dataclass, field

from sqla_includes import NamingConvention, column, foreign_key, inverse_property, key


CONVENTION = NamingConvention(plural_table_names=True)


@dataclass
class Author:
    id: int = 0
    name: str = ""
    profile_id: int | None = None

    posts: list[Post] = inverse_property("author", default_factory=list)
    roles: list[Role] = field(default_factory=list)
    profile: Profile | None = None


@dataclass
class Post:
    id: int = 0
    title: str = ""
    written_by: int = 0
    category_id: int | None = None

    author: Author | None = foreign_key("written_by", default=None)
    category: Category | None = None


@dataclass
class Role:
    role_id: int = key(default=0)
    author_id: int = 0
    level: int = column("role_level", default=0)


@dataclass
class Profile:
    __tablename__ = "author_profiles"

    id: int = 0
    bio: str = ""


@dataclass
class Category:
    id: int = 0
    name: str = ""
