"""
Photobase - Input Normalization.

Utilities for normalizing user input (phones, cities, dates, tags) and the
loosely typed values the store returns (numbers and flags as text).
"""

import json
import re
from datetime import date, datetime
from typing import Any

CHINA_MOBILE_PATTERN = re.compile(r"^1[3-9]\d{9}$")

# Longest first so "壮族自治区" is stripped before "自治区" or "区"
ADMINISTRATIVE_SUFFIXES = (
    "维吾尔自治区",
    "壮族自治区",
    "回族自治区",
    "特别行政区",
    "自治区",
    "自治州",
    "地区",
    "省",
    "市",
    "盟",
    "县",
    "区",
)

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def today() -> date:
    """Current local business date."""
    return date.today()


# =============================================================================
# Phone numbers
# =============================================================================


def normalize_china_mobile(raw: Any) -> str:
    """
    Normalize a mainland China mobile number.

    Operations:
    - Accept an optional "+86" prefix
    - Reject any other country code ("+..." or "00...")
    - Keep digits only (length is not clamped)

    Returns:
        Digits, or "" when the input cannot be a mainland number

    Examples:
        normalize_china_mobile("+86 138-0013-8000") -> "13800138000"
        normalize_china_mobile("+1 4155550100") -> ""
        normalize_china_mobile("8613800138000") -> ""
    """
    text = str(raw if raw is not None else "").strip()
    if not text:
        return ""

    if text.startswith("+") and not text.startswith("+86"):
        return ""
    if text.startswith("00"):
        return ""

    has_country_code = text.startswith("+86")
    digits = re.sub(r"\D", "", text[3:] if has_country_code else text)

    # A bare "86" prefix without "+" is treated as malformed
    if not has_country_code and digits.startswith("86") and len(digits) > 11:
        return ""

    return digits


def is_valid_china_mobile(raw: Any) -> bool:
    return bool(CHINA_MOBILE_PATTERN.match(normalize_china_mobile(raw)))


# =============================================================================
# Cities
# =============================================================================


def normalize_city_name(name: Any) -> str:
    """
    Strip one administrative suffix from a city / province name.

    Never strips down to an empty string: "市" stays "市".

    Examples:
        normalize_city_name("广西壮族自治区") -> "广西"
        normalize_city_name(" 杭州市 ") -> "杭州"
    """
    text = "".join(str(name if name is not None else "").split())
    for suffix in ADMINISTRATIVE_SUFFIXES:
        if text.endswith(suffix) and len(text) > len(suffix):
            return text[: -len(suffix)]
    return text


def city_matches(requested: Any, allowed: Any) -> bool:
    """Suffix-stripped containment in either direction."""
    a = normalize_city_name(requested)
    b = normalize_city_name(allowed)
    if not a or not b:
        return False
    return a == b or a in b or b in a


# =============================================================================
# Dates
# =============================================================================


def parse_booking_date(raw: Any) -> date | None:
    """Parse a strict YYYY-MM-DD string; anything else is None."""
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    text = str(raw if raw is not None else "").strip()
    if not _DATE_PATTERN.match(text):
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


# =============================================================================
# Loosely typed store values
# =============================================================================


def to_number(value: Any, default: float = 0) -> float:
    """Coerce store text / Decimal to a number; ints stay ints."""
    if isinstance(value, bool):
        return int(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number or number in (float("inf"), float("-inf")):
        return default
    return int(number) if number.is_integer() else number


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return to_number(value, 0) > 0


def normalize_tags(value: Any) -> list[str]:
    """A JSON array column as a list of strings (malformed -> [])."""
    if isinstance(value, list):
        return [str(item) for item in value]
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return []
        if isinstance(parsed, list):
            return [str(item) for item in parsed]
    return []


def dedupe(items: list[Any]) -> list[Any]:
    """Drop repeats, keeping first-seen order."""
    seen = set()
    result = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result
