"""
Photobase - Query Engine.

Compiles an enforced QueryRequest into parameterized SQL, executes it, and
shapes the result. `execute_query` is the outer dispatch: it runs the whole
enforce -> compile -> execute -> shape pipeline and never raises.

Writes re-derive dependent state:
- any write to `poses` recounts `pose_tags.usage_count`
- renaming or deleting a `pose_tags` row rewrites `poses.tags` first
"""

import asyncio
import logging
import uuid
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from photobase.db import executor
from photobase.db.executor import escape_identifier
from photobase.db.metadata import TableMetadata, assert_column_allowed, get_metadata
from photobase.errors import (
    EmptyInsertPayload,
    EmptySetClause,
    MissingWhereClause,
    PhotobaseError,
    ValidationError,
    normalize_error,
)
from photobase.identity import CallerIdentity, get_request_identity
from photobase.query import derived
from photobase.query.builder import (
    SqlValueBuilder,
    assert_request_columns,
    compile_columns,
    compile_limit,
    compile_order,
    compile_where,
    join_sql,
    normalize_write_value,
    utc_timestamp,
)
from photobase.query.models import ExecutionResult, QueryRequest
from photobase.query.permissions import enforce
from photobase.tools.normalize import normalize_tags, to_number

logger = logging.getLogger(__name__)

SINGLE_ROW_NONE_CODE = "PGRST116"
SINGLE_ROW_MULTIPLE_CODE = "PGRST117"

TIMESTAMP_COLUMNS = ("created_at", "updated_at")

# Tables whose writes feed the tag usage aggregate
TAG_SOURCE_TABLES = {"poses", "pose_tags"}


# =============================================================================
# Result shaping
# =============================================================================


def normalize_row(table: str, row: dict[str, Any]) -> dict[str, Any]:
    """Convert store text back to Python types (flags, JSON arrays, floats)."""
    metadata = get_metadata(table)
    normalized = dict(row)

    for column in metadata.boolean_columns:
        if normalized.get(column) is not None:
            normalized[column] = bool(to_number(normalized[column], 0))

    for column in metadata.json_columns:
        if column in normalized:
            normalized[column] = normalize_tags(normalized[column])

    if table == "poses" and normalized.get("rand_key") is not None:
        try:
            normalized["rand_key"] = float(normalized["rand_key"])
        except (TypeError, ValueError):
            pass

    return normalized


def normalize_rows(table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [normalize_row(table, row) for row in rows]


def shape_rows(request: QueryRequest, rows: list[dict[str, Any]]) -> ExecutionResult:
    """Apply the single-row modes; otherwise return the full row list."""
    if request.want_single_row:
        if not rows:
            return ExecutionResult.failure(
                "Expected a single row, but got none", SINGLE_ROW_NONE_CODE, count=0
            )
        if len(rows) > 1:
            return ExecutionResult.failure(
                "Expected a single row, but got multiple", SINGLE_ROW_MULTIPLE_CODE, count=len(rows)
            )
        return ExecutionResult(data=rows[0], count=1)

    if request.want_at_most_one_row:
        if not rows:
            return ExecutionResult(data=None, count=0)
        if len(rows) > 1:
            return ExecutionResult.failure(
                "Expected at most one row, but got multiple", SINGLE_ROW_MULTIPLE_CODE, count=len(rows)
            )
        return ExecutionResult(data=rows[0], count=1)

    return ExecutionResult(data=rows, count=len(rows))


# =============================================================================
# SELECT
# =============================================================================


async def run_select(request: QueryRequest) -> ExecutionResult:
    get_metadata(request.table)
    table = escape_identifier(request.table)

    builder = SqlValueBuilder()
    columns = compile_columns(request.table, request.columns)
    where = compile_where(request.table, request.filters, builder)
    order = compile_order(request.table, request.orders)
    limit = compile_limit(request)
    values = builder.build()

    select_sql = join_sql(f"SELECT {columns} FROM {table}", where, order, limit)

    if request.want_count:
        count_sql = join_sql(f"SELECT COUNT(*) AS total FROM {table}", where)
        result, count_result = await asyncio.gather(
            executor.execute_sql(select_sql, values),
            executor.execute_sql(count_sql, values),
        )
        total = int(to_number(count_result.rows[0].get("total") if count_result.rows else 0, 0))
    else:
        result = await executor.execute_sql(select_sql, values)
        total = None

    shaped = shape_rows(request, normalize_rows(request.table, result.rows))
    if total is not None:
        shaped = shaped.model_copy(update={"count": total})
    return shaped


async def _select_by_keys(
    request: QueryRequest,
    metadata: TableMetadata,
    keys: list[Any],
) -> list[dict[str, Any]]:
    keys = [key for key in keys if key not in (None, "")]
    if not keys or not metadata.primary_key:
        return []

    builder = SqlValueBuilder()
    pk = escape_identifier(metadata.primary_key)
    placeholders = ", ".join(builder.add(key) for key in keys)
    sql = join_sql(
        f"SELECT {compile_columns(request.table, request.columns)}",
        f"FROM {escape_identifier(request.table)}",
        f"WHERE {pk} IN ({placeholders})",
        f"ORDER BY {pk} ASC",
    )
    result = await executor.execute_sql(sql, builder.build())
    return result.rows


async def _select_auto_range(
    request: QueryRequest,
    metadata: TableMetadata,
    first_id: int,
    row_count: int,
) -> list[dict[str, Any]]:
    builder = SqlValueBuilder()
    pk = escape_identifier(metadata.primary_key)
    condition = f"{pk} >= {builder.add(first_id)}"
    if row_count > 1:
        condition += f" AND {pk} <= {builder.add(first_id + row_count - 1)}"
    sql = join_sql(
        f"SELECT {compile_columns(request.table, request.columns)}",
        f"FROM {escape_identifier(request.table)}",
        f"WHERE {condition}",
        f"ORDER BY {pk} ASC",
    )
    result = await executor.execute_sql(sql, builder.build())
    return result.rows


async def _select_column(table: str, column: str, where: str, values: dict[str, Any]) -> list[Any]:
    sql = join_sql(f"SELECT {escape_identifier(column)} FROM {escape_identifier(table)}", where)
    result = await executor.execute_sql(sql, values)
    return [row.get(column) for row in result.rows]


# =============================================================================
# INSERT
# =============================================================================


def prepare_insert_rows(request: QueryRequest) -> list[dict[str, Any]]:
    """
    Copy the payload rows and fill in what the store will not.

    - generated UUID for uuid primary keys that are missing or blank
    - created_at / updated_at when the table has them and they are missing or blank
    """
    metadata = get_metadata(request.table)
    rows = request.value_rows()
    if not rows:
        raise EmptyInsertPayload()

    now = utc_timestamp()
    for row in rows:
        if metadata.primary_key and metadata.primary_key_kind == "uuid":
            if row.get(metadata.primary_key) in (None, ""):
                row[metadata.primary_key] = str(uuid.uuid4())
        for column in TIMESTAMP_COLUMNS:
            if metadata.has_column(column) and row.get(column) in (None, ""):
                row[column] = now

    return rows


async def run_insert(request: QueryRequest) -> ExecutionResult:
    metadata = get_metadata(request.table)
    rows = prepare_insert_rows(request)

    columns: list[str] = []
    for row in rows:
        for column in row:
            if column not in columns:
                assert_column_allowed(request.table, column)
                columns.append(column)
    if not columns:
        raise EmptyInsertPayload("Insert payload must contain at least one column")

    builder = SqlValueBuilder()
    tuples = []
    for row in rows:
        placeholders = [builder.add(normalize_write_value(row.get(column))) for column in columns]
        tuples.append("(" + ", ".join(placeholders) + ")")

    sql = (
        f"INSERT INTO {escape_identifier(request.table)} "
        f"({', '.join(escape_identifier(c) for c in columns)}) "
        f"VALUES {', '.join(tuples)}"
    )
    result = await executor.execute_sql(sql, builder.build())

    await _after_write(request.table)

    if not request.return_written_rows:
        return ExecutionResult(data=None, count=None)

    written: list[dict[str, Any]] = []
    if metadata.primary_key_kind in ("uuid", "string"):
        written = await _select_by_keys(request, metadata, [row.get(metadata.primary_key) for row in rows])
    elif metadata.primary_key_kind == "auto" and result.insert_id is not None:
        written = await _select_auto_range(request, metadata, result.insert_id, len(rows))

    return shape_rows(request, normalize_rows(request.table, written))


# =============================================================================
# UPDATE
# =============================================================================


async def run_update(request: QueryRequest) -> ExecutionResult:
    metadata = get_metadata(request.table)
    if not isinstance(request.values, dict):
        raise ValidationError("Update payload must be a single record")

    payload = dict(request.values)
    if not payload:
        raise EmptySetClause()
    if metadata.has_column("updated_at") and "updated_at" not in payload:
        payload["updated_at"] = utc_timestamp()

    builder = SqlValueBuilder()
    set_clauses = []
    for column, value in payload.items():
        assert_column_allowed(request.table, column)
        set_clauses.append(f"{escape_identifier(column)} = {builder.add(normalize_write_value(value))}")

    where = compile_where(request.table, request.filters, builder)
    if not where:
        raise MissingWhereClause("update")
    values = builder.build()

    # Captured before the write: the WHERE may no longer match afterwards
    keys: list[Any] | None = None
    if request.return_written_rows and metadata.primary_key:
        keys = await _select_column(request.table, metadata.primary_key, where, values)

    renamed_from: list[str] = []
    if request.table == "pose_tags" and payload.get("name"):
        renamed_from = [name for name in await _select_column("pose_tags", "name", where, values) if name]

    sql = f"UPDATE {escape_identifier(request.table)} SET {', '.join(set_clauses)} {where}"
    await executor.execute_sql(sql, values)

    for old_name in renamed_from:
        await derived.cascade_tag_rename(old_name, payload["name"])
    await _after_write(request.table)

    if not request.return_written_rows:
        return ExecutionResult(data=None, count=None)

    if keys is not None:
        rows = await _select_by_keys(request, metadata, keys)
        return shape_rows(request, normalize_rows(request.table, rows))

    # No primary key to pin the rows down: re-run the same filters
    return await run_select(
        request.model_copy(update={"action": "select", "return_written_rows": False})
    )


# =============================================================================
# DELETE
# =============================================================================


async def run_delete(request: QueryRequest) -> ExecutionResult:
    get_metadata(request.table)
    builder = SqlValueBuilder()
    where = compile_where(request.table, request.filters, builder)
    if not where:
        raise MissingWhereClause("delete")
    values = builder.build()

    deleted: list[dict[str, Any]] = []
    if request.return_written_rows:
        sql = join_sql(
            f"SELECT {compile_columns(request.table, request.columns)} FROM {escape_identifier(request.table)}",
            where,
        )
        deleted = normalize_rows(request.table, (await executor.execute_sql(sql, values)).rows)

    removed_tags: list[str] = []
    if request.table == "pose_tags":
        removed_tags = [name for name in await _select_column("pose_tags", "name", where, values) if name]

    await executor.execute_sql(f"DELETE FROM {escape_identifier(request.table)} {where}", values)

    if removed_tags:
        await derived.cascade_tag_removal(removed_tags)
    await _after_write(request.table)

    if not request.return_written_rows:
        return ExecutionResult(data=None, count=None)
    return shape_rows(request, deleted)


async def _after_write(table: str) -> None:
    if table in TAG_SOURCE_TABLES:
        await derived.recount_pose_tag_usage()


# =============================================================================
# Dispatch
# =============================================================================


async def run_query(request: QueryRequest) -> ExecutionResult:
    """Compile and execute an already-enforced request. Raises on failure."""
    assert_request_columns(request)
    match request.action:
        case "select":
            return await run_select(request)
        case "insert":
            return await run_insert(request)
        case "update":
            return await run_update(request)
        case "delete":
            return await run_delete(request)
    raise ValidationError(f"Unsupported action: {request.action}")


async def execute_query(
    request: QueryRequest | dict[str, Any],
    identity: CallerIdentity | None = None,
) -> ExecutionResult:
    """
    Outer dispatch for structured queries.

    Never raises: every failure becomes ExecutionResult(data=None, error=...).

    Args:
        request: QueryRequest or its JSON form
        identity: Caller; defaults to the current request's identity
    """
    identity = identity or get_request_identity()

    try:
        if not isinstance(request, QueryRequest):
            request = QueryRequest.model_validate(request)
        scoped = enforce(request, identity)
        return await run_query(scoped)
    except PydanticValidationError as e:
        return ExecutionResult.failure(str(e), ValidationError.code)
    except PhotobaseError as e:
        logger.info(f"Query failed ({e.code}): {e.message}")
        return ExecutionResult(data=None, error=normalize_error(e, "Database query failed"))
    except Exception as e:
        logger.exception("Unexpected error executing query")
        return ExecutionResult(data=None, error=normalize_error(e, "Database query failed"))
