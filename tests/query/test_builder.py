"""
Tests for SQL clause compilation.
"""

import pytest

from photobase.errors import ColumnNotAllowed, UnknownTable
from photobase.query.builder import (
    SqlValueBuilder,
    compile_columns,
    compile_filter,
    compile_limit,
    compile_order,
    compile_where,
    normalize_write_value,
)
from photobase.query.models import Filter, Order, QueryRequest


class TestValueBuilder:
    def test_placeholders_are_sequential(self):
        builder = SqlValueBuilder()
        assert builder.add("a") == "{{v_0}}"
        assert builder.add(2) == "{{v_1}}"
        assert builder.build() == {"v_0": "a", "v_1": 2}

    def test_build_returns_a_copy(self):
        builder = SqlValueBuilder()
        builder.add(1)
        values = builder.build()
        values["v_0"] = 99
        assert builder.build() == {"v_0": 1}


class TestColumns:
    """Projection lists."""

    def test_defaults_to_star(self):
        assert compile_columns("poses", None) == "*"
        assert compile_columns("poses", "*") == "*"

    def test_string_and_list_forms(self):
        assert compile_columns("bookings", "id, status") == "`id`, `status`"
        assert compile_columns("bookings", ["id", "status"]) == "`id`, `status`"

    def test_relation_syntax_is_dropped(self):
        assert compile_columns("bookings", "id, booking_types(name)") == "`id`"
        assert compile_columns("bookings", "*, booking_types(name)") == "*"

    def test_unknown_column_rejected(self):
        with pytest.raises(ColumnNotAllowed):
            compile_columns("bookings", "id, password_hash")

    def test_unknown_table_rejected(self):
        with pytest.raises(UnknownTable):
            compile_columns("secrets", "id")


class TestFilters:
    """WHERE clause compilation."""

    def test_empty_where_only_without_filters(self):
        assert compile_where("poses", [], SqlValueBuilder()) == ""

    def test_filters_are_and_combined(self):
        builder = SqlValueBuilder()
        where = compile_where(
            "bookings",
            [
                Filter(column="user_id", operator="eq", value="u1"),
                Filter(column="booking_date", operator="gte", value="2025-03-01"),
            ],
            builder,
        )
        assert where == "WHERE `user_id` = {{v_0}} AND `booking_date` >= {{v_1}}"
        assert builder.build() == {"v_0": "u1", "v_1": "2025-03-01"}

    def test_booleans_become_integers(self):
        builder = SqlValueBuilder()
        assert compile_filter("album_photos", Filter(column="is_public", operator="eq", value=True), builder) == (
            "`is_public` = {{v_0}}"
        )
        assert builder.build() == {"v_0": 1}

    def test_empty_in_matches_nothing(self):
        builder = SqlValueBuilder()
        assert compile_filter("bookings", Filter(column="status", operator="in", value=[]), builder) == "1 = 0"
        assert builder.build() == {}

    def test_in_wraps_scalars(self):
        builder = SqlValueBuilder()
        sql = compile_filter("bookings", Filter(column="status", operator="in", value="pending"), builder)
        assert sql == "`status` IN ({{v_0}})"

    def test_json_contains_and_overlaps(self):
        builder = SqlValueBuilder()
        assert compile_filter("poses", Filter(column="tags", operator="contains", value=["站姿"]), builder) == (
            "JSON_CONTAINS(`tags`, CAST({{v_0}} AS JSON))"
        )
        assert compile_filter("poses", Filter(column="tags", operator="overlaps", value=["a", "b"]), builder) == (
            "JSON_OVERLAPS(`tags`, CAST({{v_1}} AS JSON))"
        )
        assert builder.build() == {"v_0": '["站姿"]', "v_1": '["a", "b"]'}

    @pytest.mark.parametrize("value", [[], None])
    def test_empty_json_sets(self, value):
        builder = SqlValueBuilder()
        assert compile_filter("poses", Filter(column="tags", operator="contains", value=value), builder) == "1 = 1"
        assert compile_filter("poses", Filter(column="tags", operator="overlaps", value=value), builder) == "1 = 0"
        assert builder.build() == {}

    def test_filter_column_must_be_registered(self):
        with pytest.raises(ColumnNotAllowed):
            compile_filter("poses", Filter(column="secret", operator="eq", value=1), SqlValueBuilder())


class TestOrderAndLimit:
    def test_order(self):
        orders = [Order(column="created_at", ascending=False), Order(column="id")]
        assert compile_order("poses", orders) == "ORDER BY `created_at` DESC, `id` ASC"
        assert compile_order("poses", []) == ""

    def test_range_is_inclusive(self):
        request = QueryRequest.model_validate(
            {"table": "poses", "action": "select", "range": {"from": 20, "to": 39}}
        )
        assert compile_limit(request) == "LIMIT 20 OFFSET 20"

    def test_limit(self):
        assert compile_limit(QueryRequest(table="poses", action="select", limit=5)) == "LIMIT 5"
        assert compile_limit(QueryRequest(table="poses", action="select")) == ""

    def test_single_row_modes_fetch_two(self):
        assert compile_limit(QueryRequest(table="poses", action="select", wantSingleRow=True)) == "LIMIT 2"
        assert compile_limit(QueryRequest.model_validate({"table": "poses", "action": "select", "maybeSingle": True})) == (
            "LIMIT 2"
        )


class TestWriteValues:
    def test_normalize_write_value(self):
        assert normalize_write_value(True) == 1
        assert normalize_write_value(False) == 0
        assert normalize_write_value(["站姿", "户外"]) == '["站姿", "户外"]'
        assert normalize_write_value("text") == "text"
        assert normalize_write_value(None) is None
