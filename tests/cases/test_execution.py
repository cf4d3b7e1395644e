from __future__ import annotations

import asyncio
import logging
import time

import pytest
import sqlalchemy as sa
from sqlalchemy import orm
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession

from sqla_includes import InvalidOperationError, QueryState, select_include

from ..models import PLURAL, Customer, Note, Order

pytestmark = pytest.mark.anyio


def _by_id(customers: list[Customer], id_: int) -> Customer:
    return next(c for c in customers if c.id == id_)


class TestAsyncExecution:
    async def test_unbuffered(self, async_connection: AsyncConnection) -> None:
        customers = await (
            select_include(Customer, convention=PLURAL)
            .include_many("notes")
            .include_many("orders")
            .query_async(async_connection, buffered=False)
        )

        assert len(_by_id(customers, 1).notes) == 3
        assert len(_by_id(customers, 1).orders) == 2

    async def test_unbuffered_callback_error_releases_cursor(self, async_connection: AsyncConnection) -> None:
        def boom(objects: list[object]) -> None:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await (
                select_include(Customer, convention=PLURAL)
                .include_many("orders")
                .query_async(async_connection, buffered=False, on_row=boom)
            )

        customers = await select_include(Customer, convention=PLURAL).query_async(async_connection)

        assert len(customers) == 2

    async def test_timeout_expires(self, async_connection: AsyncConnection) -> None:
        def slow(objects: list[object]) -> None:
            time.sleep(0.1)

        query = select_include(Customer, convention=PLURAL).include_many("notes").include_many("orders")

        with pytest.raises(asyncio.TimeoutError):
            await query.query_async(async_connection, buffered=False, timeout=0.2, on_row=slow)

        assert query.state is QueryState.EXECUTING
        customers = await select_include(Customer, convention=PLURAL).query_async(async_connection)

        assert len(customers) == 2

    async def test_timeout(self, async_connection: AsyncConnection) -> None:
        customers = await (
            select_include(Customer, convention=PLURAL)
            .include_many("orders")
            .query_async(async_connection, timeout=10)
        )

        assert len(customers) == 2

    async def test_execution_options(self, async_connection: AsyncConnection) -> None:
        customers = await select_include(Customer, convention=PLURAL).query_async(
            async_connection, execution_options={"compiled_cache": None}
        )

        assert len(customers) == 2

    async def test_on_row(self, async_connection: AsyncConnection) -> None:
        rows: list[list[object]] = []
        await (
            select_include(Customer, convention=PLURAL)
            .include_many("notes")
            .include_many("orders")
            .where(Customer, "id", 1)
            .query_async(async_connection, on_row=rows.append)
        )

        assert len(rows) == 6
        assert all(isinstance(row[0], Customer) for row in rows)
        assert all(isinstance(row[1], Note) and isinstance(row[2], Order) for row in rows)

    async def test_session(self, async_connection: AsyncConnection) -> None:
        async with AsyncSession(bind=async_connection) as session:
            customers = await (
                select_include(Customer, convention=PLURAL)
                .include_one("address")
                .query_async(session)
            )

        assert _by_id(customers, 1).address is not None

    async def test_sees_uncommitted_rows(self, async_connection: AsyncConnection) -> None:
        await async_connection.execute(
            sa.text("INSERT INTO notes (id, customer_id, text) VALUES (4, 2, 'pending')")
        )
        customers = await (
            select_include(Customer, convention=PLURAL)
            .include_many("notes")
            .query_async(async_connection)
        )

        assert [n.text for n in _by_id(customers, 2).notes] == ["pending"]

    async def test_executes_once(self, async_connection: AsyncConnection) -> None:
        query = select_include(Customer, convention=PLURAL)
        await query.query_async(async_connection)

        assert query.state is QueryState.EXECUTING
        with pytest.raises(InvalidOperationError):
            await query.query_async(async_connection)


class TestSyncExecution:
    def test_connection(self, connection: sa.Connection) -> None:
        customers = (
            select_include(Customer, convention=PLURAL)
            .include_many("notes")
            .include_many("orders")
            .include_one("address")
            .query(connection)
        )
        customer = _by_id(customers, 1)

        assert len(customer.notes) == 3
        assert len(customer.orders) == 2
        assert customer.address_id == 1

    def test_unbuffered(self, connection: sa.Connection) -> None:
        customers = select_include(Customer, convention=PLURAL).include_many("orders").query(connection, buffered=False)

        assert len(_by_id(customers, 1).orders) == 2

    def test_unbuffered_callback_error_releases_cursor(self, connection: sa.Connection) -> None:
        def boom(objects: list[object]) -> None:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            select_include(Customer, convention=PLURAL).include_many("orders").query(
                connection, buffered=False, on_row=boom
            )

        assert len(select_include(Customer, convention=PLURAL).query(connection)) == 2

    def test_session(self, connection: sa.Connection) -> None:
        with orm.Session(bind=connection) as session:
            customers = select_include(Customer, convention=PLURAL).include_many("orders").query(session)

        assert len(_by_id(customers, 1).orders) == 2

    def test_params(self, connection: sa.Connection) -> None:
        customers = (
            select_include(Customer, convention=PLURAL)
            .where(Customer, "id", sa.bindparam("customer"))
            .query(connection, {"customer": 2})
        )

        assert [c.id for c in customers] == [2]

    def test_builder_closed_after_execution(self, connection: sa.Connection) -> None:
        query = select_include(Customer, convention=PLURAL)
        query.query(connection)

        with pytest.raises(InvalidOperationError):
            query.include_many("orders")
        with pytest.raises(InvalidOperationError):
            query.where(Customer, "id", 1)
        with pytest.raises(InvalidOperationError):
            query.query(connection)

    def test_statement_logged(self, connection: sa.Connection, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.DEBUG, logger="sqla_includes"):
            select_include(Customer, convention=PLURAL).include_many("orders").query(connection)

        assert any("LEFT OUTER JOIN orders" in r.getMessage() for r in caplog.records)
