"""
Tests for the table metadata registry.
"""

import pytest

from photobase.db.metadata import (
    allowed_tables,
    assert_column_allowed,
    boolean_columns,
    get_metadata,
    is_column_allowed,
    json_columns,
)
from photobase.errors import ColumnNotAllowed, UnknownTable


class TestRegistry:
    """Static allow-list lookups."""

    def test_known_tables(self):
        tables = allowed_tables()
        assert "bookings" in tables
        assert "poses" in tables
        assert len(tables) == len(set(tables)) == 22

    def test_unknown_table_raises(self):
        with pytest.raises(UnknownTable):
            get_metadata("secrets")

    def test_column_checks(self):
        assert is_column_allowed("bookings", "booking_date") is True
        assert is_column_allowed("bookings", "password_hash") is False
        assert assert_column_allowed("poses", "tags") == "tags"
        with pytest.raises(ColumnNotAllowed):
            assert_column_allowed("poses", "nope")

    def test_primary_key_kinds(self):
        assert get_metadata("bookings").primary_key_kind == "uuid"
        assert get_metadata("poses").primary_key_kind == "auto"
        assert get_metadata("analytics_daily").primary_key == "date"
        assert get_metadata("analytics_daily").primary_key_kind == "string"
        assert get_metadata("user_active_logs").primary_key is None

    def test_typed_columns(self):
        assert json_columns("poses") == frozenset({"tags"})
        assert "is_public" in boolean_columns("album_photos")
        assert boolean_columns("bookings") == frozenset()
