"""
Photobase - SQL clause builder.

Compiles the pieces of a QueryRequest into SQL fragments. Values only ever
become {{v_N}} placeholders; identifiers are checked against the metadata
registry AND the identifier regex before they are interpolated.
"""

import json
from datetime import date, datetime, timezone
from typing import Any

from photobase.db.executor import escape_identifier
from photobase.db.metadata import assert_column_allowed
from photobase.errors import ValidationError
from photobase.query.models import Filter, Order, QueryRequest


class SqlValueBuilder:
    """Collects named parameters and hands out their placeholders."""

    def __init__(self, prefix: str = "v"):
        self._prefix = prefix
        self._index = 0
        self._values: dict[str, Any] = {}

    def add(self, value: Any) -> str:
        key = f"{self._prefix}_{self._index}"
        self._index += 1
        self._values[key] = value
        return "{{" + key + "}}"

    def build(self) -> dict[str, Any]:
        return dict(self._values)


# =============================================================================
# Value normalization
# =============================================================================


def normalize_boolean(value: Any) -> Any:
    if isinstance(value, bool):
        return 1 if value else 0
    return value


def normalize_write_value(value: Any) -> Any:
    """Booleans become 0/1; lists and dicts become JSON text."""
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return value


def utc_timestamp() -> str:
    """Current UTC time in the store's DATETIME text form."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def _json_param(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


# =============================================================================
# Clause compilation
# =============================================================================


def projection_columns(columns: str | list[str] | None) -> list[str] | None:
    """
    Plain column names named by a projection, or None for "all columns".

    Relation syntax such as `booking_types(name)` is dropped; joins are
    composed by the caller with separate requests.
    """
    if columns is None:
        return None

    tokens = [c.strip() for c in columns.split(",")] if isinstance(columns, str) else [str(c).strip() for c in columns]

    names: list[str] = []
    for token in tokens:
        if not token:
            continue
        if token == "*":
            return None
        if "(" in token or ")" in token:
            continue
        names.append(token.replace('"', "").replace("`", ""))
    return names


def compile_columns(table: str, columns: str | list[str] | None) -> str:
    """Compile the projection list. "*" (or nothing) passes through."""
    names = projection_columns(columns)
    if not names:
        return "*"
    for column in names:
        assert_column_allowed(table, column)
    return ", ".join(escape_identifier(column) for column in names)


def assert_request_columns(request: QueryRequest) -> None:
    """
    Check every column a request names, whether or not its action compiles it.

    Raises:
        ValidationError: filters on insert, or a payload on select / delete
        ColumnNotAllowed: any projected, filtered, ordered or written column
            outside the table's metadata
    """
    table = request.table
    if request.action == "insert" and request.filters:
        raise ValidationError("Filters are not allowed on insert")
    if request.action in ("select", "delete") and request.values is not None:
        raise ValidationError(f"Values are not allowed on {request.action}")

    for column in projection_columns(request.columns) or []:
        assert_column_allowed(table, column)
    for f in request.filters:
        assert_column_allowed(table, f.column)
    for order in request.orders:
        assert_column_allowed(table, order.column)
    for row in request.value_rows():
        for column in row:
            assert_column_allowed(table, column)


def compile_filter(table: str, f: Filter, builder: SqlValueBuilder) -> str:
    assert_column_allowed(table, f.column)
    column = escape_identifier(f.column)

    match f.operator:
        case "eq":
            return f"{column} = {builder.add(normalize_boolean(f.value))}"
        case "neq":
            return f"{column} <> {builder.add(normalize_boolean(f.value))}"
        case "gt":
            return f"{column} > {builder.add(f.value)}"
        case "gte":
            return f"{column} >= {builder.add(f.value)}"
        case "lt":
            return f"{column} < {builder.add(f.value)}"
        case "lte":
            return f"{column} <= {builder.add(f.value)}"
        case "in":
            values = _as_list(f.value) if f.value is not None else []
            if not values:
                return "1 = 0"
            placeholders = ", ".join(builder.add(normalize_boolean(v)) for v in values)
            return f"{column} IN ({placeholders})"
        # Set semantics: every array contains the empty set, none overlaps it.
        # None is the empty set.
        case "contains":
            values = _as_list(f.value) if f.value is not None else []
            if not values:
                return "1 = 1"
            payload = json.dumps([_json_param(v) for v in values], ensure_ascii=False)
            return f"JSON_CONTAINS({column}, CAST({builder.add(payload)} AS JSON))"
        case "overlaps":
            values = _as_list(f.value) if f.value is not None else []
            if not values:
                return "1 = 0"
            payload = json.dumps([_json_param(v) for v in values], ensure_ascii=False)
            return f"JSON_OVERLAPS({column}, CAST({builder.add(payload)} AS JSON))"

    raise ValueError(f"Unsupported filter operator: {f.operator}")


def compile_where(table: str, filters: list[Filter], builder: SqlValueBuilder) -> str:
    """AND-combine every filter. Empty string if and only if there are no filters."""
    if not filters:
        return ""
    clauses = [compile_filter(table, f, builder) for f in filters]
    return "WHERE " + " AND ".join(clauses)


def compile_order(table: str, orders: list[Order]) -> str:
    if not orders:
        return ""
    items = []
    for order in orders:
        assert_column_allowed(table, order.column)
        direction = "ASC" if order.ascending else "DESC"
        items.append(f"{escape_identifier(order.column)} {direction}")
    return "ORDER BY " + ", ".join(items)


def compile_limit(request: QueryRequest) -> str:
    if request.range is not None:
        start = max(0, request.range.start)
        end = max(start, request.range.end)
        return f"LIMIT {end - start + 1} OFFSET {start}"

    if request.limit is not None and request.limit > 0:
        return f"LIMIT {int(request.limit)}"

    # Enough to tell "one" from "more than one"
    if request.want_single_row or request.want_at_most_one_row:
        return "LIMIT 2"

    return ""


def join_sql(*parts: str) -> str:
    """Join non-empty clauses into one statement."""
    return " ".join(part for part in parts if part)
