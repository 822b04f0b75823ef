"""
Tests for input normalization helpers.
"""

from datetime import date

import pytest

from photobase.tools.normalize import (
    city_matches,
    dedupe,
    is_valid_china_mobile,
    normalize_china_mobile,
    normalize_city_name,
    normalize_tags,
    parse_booking_date,
    to_bool,
    to_number,
)


class TestChinaMobile:
    """Mainland mobile numbers."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("13800138000", "13800138000"),
            ("+86 138-0013-8000", "13800138000"),
            ("+8613800138000", "13800138000"),
            (" 138 0013 8000 ", "13800138000"),
        ],
    )
    def test_accepts_mainland_forms(self, raw, expected):
        assert normalize_china_mobile(raw) == expected
        assert is_valid_china_mobile(raw) is True

    @pytest.mark.parametrize("raw", ["+1 4155550100", "0086 13800138000", "8613800138000"])
    def test_rejects_other_country_codes(self, raw):
        assert normalize_china_mobile(raw) == ""
        assert is_valid_china_mobile(raw) is False

    def test_rejects_wrong_prefix_and_length(self):
        assert is_valid_china_mobile("12800138000") is False
        assert is_valid_china_mobile("1380013800") is False
        assert is_valid_china_mobile(None) is False


class TestCityNames:
    """Administrative suffix stripping and matching."""

    def test_strips_longest_suffix(self):
        assert normalize_city_name("广西壮族自治区") == "广西"
        assert normalize_city_name("新疆维吾尔自治区") == "新疆"
        assert normalize_city_name(" 杭州市 ") == "杭州"
        assert normalize_city_name("香港特别行政区") == "香港"

    def test_never_strips_to_empty(self):
        assert normalize_city_name("市") == "市"

    def test_matches_in_both_directions(self):
        assert city_matches("广西壮族自治区", "广西") is True
        assert city_matches("杭州", "杭州市") is True
        assert city_matches("浙江省杭州市", "杭州") is True
        assert city_matches("上海市", "杭州市") is False

    def test_blank_never_matches(self):
        assert city_matches("", "杭州") is False
        assert city_matches(None, "杭州") is False


class TestDatesAndValues:
    """Loosely typed values from the store and from clients."""

    def test_parse_booking_date_is_strict(self):
        assert parse_booking_date("2025-03-01") == date(2025, 3, 1)
        assert parse_booking_date("2025-3-1") is None
        assert parse_booking_date("2025-02-30") is None
        assert parse_booking_date("") is None

    def test_to_number(self):
        assert to_number("12") == 12
        assert isinstance(to_number("12"), int)
        assert to_number("4.5") == 4.5
        assert to_number("abc", 7) == 7
        assert to_number("nan") == 0
        assert to_number(None) == 0

    def test_to_bool(self):
        assert to_bool(1) is True
        assert to_bool("1") is True
        assert to_bool("0") is False
        assert to_bool(None) is False

    def test_normalize_tags(self):
        assert normalize_tags('["站姿", "坐姿"]') == ["站姿", "坐姿"]
        assert normalize_tags(["a", 1]) == ["a", "1"]
        assert normalize_tags("not json") == []
        assert normalize_tags('{"a": 1}') == []
        assert normalize_tags(None) == []

    def test_dedupe_keeps_first_seen_order(self):
        assert dedupe(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]
