"""Basic sqla-includes usage examples.

Demonstrates collections, single navigations, second-level includes,
filtering, ordering and raw SQL.

NOTE: This file is illustrative; it won't run standalone
without a database and seeded data.
"""

from __future__ import annotations

import logging

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession, create_async_engine

from sqla_includes import select_include

from .models import CONVENTION, Author, Post, Role


# ── 1. Engine ────────────────────────────────────────────────────────

engine = create_async_engine("sqlite+aiosqlite:///:memory:")

# rendered statements are logged at DEBUG
logging.getLogger("sqla_includes").setLevel(logging.DEBUG)


# ── 2. Collections and single navigations ───────────────────────────


async def get_authors_with_posts(connection: AsyncConnection) -> list[Author]:
    # Post.author names written_by as its key, Author.posts points back at it
    return await select_include(Author, convention=CONVENTION).include_many("posts").query_async(connection)


async def get_authors_with_all(session: AsyncSession) -> list[Author]:
    # posts and roles are joined side by side, duplicates are collapsed
    return await (
        select_include(Author, convention=CONVENTION)
        .include_many("posts")
        .include_many("roles")
        .include_one("profile")
        .query_async(session)
    )


# ── 3. Second level ─────────────────────────────────────────────────


async def get_authors_with_categorised_posts(connection: AsyncConnection) -> list[Author]:
    return await (
        select_include(Author, convention=CONVENTION)
        .include_many("posts")
        .then_include_one("category")
        .query_async(connection)
    )


# ── 4. Conditions ────────────────────────────────────────────────────


async def get_authors_with_senior_roles(connection: AsyncConnection) -> list[Author]:
    return await (
        select_include(Author, convention=CONVENTION)
        .include_many("roles")
        .where(Role, "level", 3, ">")  # noqa: PLR2004
        .query_async(connection)
    )


async def find_authors(connection: AsyncConnection, pattern: str) -> list[Author]:
    return await (
        select_include(Author, convention=CONVENTION)
        .include_many("posts")
        .where(Author, "name", sa.bindparam("pattern"), "LIKE")
        .or_(Post, "title", sa.bindparam("pattern"), "LIKE")
        .query_async(connection, {"pattern": pattern}, timeout=5)
    )


# ── 5. Ordering and raw SQL ──────────────────────────────────────────


async def get_first_authors(connection: AsyncConnection) -> list[Author]:
    # LIMIT counts joined rows, not authors
    return await (
        select_include(Author, convention=CONVENTION)
        .include_one("profile")
        .order_by(Author, "name")
        .raw_sql("LIMIT 10")
        .query_async(connection)
    )


# ── 6. M2O from the child side ───────────────────────────────────────


def get_posts_with_author(connection: sa.Connection) -> list[Post]:
    return (
        select_include(Post, convention=CONVENTION)
        .include_one("author")
        .include_one("category", include_foreign_key=True)
        .query(connection, buffered=False)
    )
