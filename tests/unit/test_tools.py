from __future__ import annotations

import pytest

from sqla_includes import (
    KeyNotFoundError,
    NamingConvention,
    distinct_by,
    get_aliases,
    get_primary_key,
    get_table_name,
    select_include,
)
from sqla_includes.conventions import pluralize, to_snake_case
from sqla_includes.tools import _get_table_name

from ..models import PLURAL, Category, Customer, CustomerAddress, Note, Order, OrderDetail


class TestNamingConvention:
    def test_snake_case(self) -> None:
        assert to_snake_case("Customer") == "customer"
        assert to_snake_case("OrderDetail") == "order_detail"
        assert to_snake_case("HTTPRequest") == "http_request"

    def test_pluralize(self) -> None:
        assert pluralize("customer") == "customers"
        assert pluralize("category") == "categories"
        assert pluralize("address") == "addresses"
        assert pluralize("day") == "days"

    def test_primary_key_candidates(self) -> None:
        assert NamingConvention().primary_key_candidates("OrderDetail") == ("id", "order_detail_id")

    def test_foreign_key_name(self) -> None:
        assert NamingConvention().foreign_key_name("CustomerAddress") == "customer_address_id"
        assert NamingConvention(foreign_key_pattern="{name}_ref").foreign_key_name("order") == (
            "order_ref"
        )

    def test_label(self) -> None:
        assert NamingConvention().label("orders_1", "order_id") == "orders_1__order_id"
        assert NamingConvention(label_separator=".").label("orders_1", "order_id") == (
            "orders_1.order_id"
        )


class TestGetTableName:
    def test_singular_by_default(self) -> None:
        assert get_table_name(Customer) == "customer"
        assert get_table_name(OrderDetail) == "order_detail"

    def test_plural_convention(self) -> None:
        assert get_table_name(Customer, PLURAL) == "customers"
        assert get_table_name(Category, PLURAL) == "categories"
        assert get_table_name(Note, PLURAL) == "notes"

    def test_tablename_attribute_wins(self) -> None:
        assert get_table_name(CustomerAddress) == "customer_addresses"
        assert get_table_name(CustomerAddress, PLURAL) == "customer_addresses"

    def test_cached(self) -> None:
        _get_table_name.cache_clear()
        get_table_name(Order, PLURAL)
        get_table_name(Order, PLURAL)

        assert _get_table_name.cache_info().hits >= 1


class TestGetPrimaryKey:
    def test_customer_pk(self) -> None:
        assert get_primary_key(Customer) == "id"

    def test_order_pk(self) -> None:
        assert get_primary_key(Order) == "order_id"

    def test_no_pk(self) -> None:
        with pytest.raises(KeyNotFoundError):
            get_primary_key(OrderDetail)


class TestDistinctBy:
    def test_first_wins_in_order(self) -> None:
        items = [(1, "a"), (2, "b"), (1, "c"), (3, "d"), (2, "e")]

        assert distinct_by(items, lambda i: i[0]) == [(1, "a"), (2, "b"), (3, "d")]

    def test_empty(self) -> None:
        assert distinct_by([], lambda i: i) == []


class TestGetAliases:
    def test_root_then_joins(self) -> None:
        statement = (
            select_include(Customer, convention=PLURAL)
            .include_many("orders")
            .then_include_one("category")
            .include_one("address")
            .to_statement()
        )

        assert get_aliases(statement) == ["customers", "orders_1", "categories_2", "customer_addresses_3"]
