from __future__ import annotations

from sqla_includes import (
    get_entity_info,
    resolve_collection_foreign_key,
    resolve_primary_key,
    sqla_cache_clear,
    sqla_cache_info,
)

from ..models import PLURAL, Customer


class TestLruCaching:
    def test_same_params_return_same_object(self) -> None:
        assert resolve_primary_key(Customer) is resolve_primary_key(Customer)
        assert resolve_collection_foreign_key(Customer, "orders") is resolve_collection_foreign_key(
            Customer, "orders"
        )

    def test_convention_is_part_of_the_key(self) -> None:
        resolve_primary_key.cache_clear()
        resolve_primary_key(Customer)
        resolve_primary_key(Customer, convention=PLURAL)

        assert resolve_primary_key.cache_info().currsize == 2

    def test_cache_info_lists_all_caches(self) -> None:
        info = sqla_cache_info()

        assert set(info) == {
            "get_entity_info",
            "resolve_primary_key",
            "resolve_foreign_key",
            "resolve_collection_foreign_key",
            "to_snake_case",
            "_get_table_name",
        }

    def test_cache_clear_resets(self) -> None:
        get_entity_info(Customer)
        resolve_primary_key(Customer)
        sqla_cache_clear()

        assert all(info.currsize == 0 for info in sqla_cache_info().values())
