"""
Photobase - SQL Executor.

Submits parameterized SQL through the channel, retries transient transport
failures with backoff, and normalizes the store's heterogeneous response
into rows / affected count / insert id.

This module is the only place raw channel responses are parsed.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any
from uuid import UUID

from photobase.config import settings
from photobase.db import client
from photobase.errors import InvalidIdentifier, TransientStoreError

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass
class SqlExecuteResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    affected_rows: int = 0
    insert_id: int | None = None


def escape_identifier(name: str) -> str:
    """
    Quote a table or column name for interpolation into SQL text.

    Regex-validated on its own, independently of the metadata registry.
    """
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise InvalidIdentifier(str(name))
    return f"`{name}`"


# =============================================================================
# Response normalization
# =============================================================================


def _to_plain_object(record: Any) -> dict[str, Any]:
    if record is None:
        return {}
    if isinstance(record, str):
        try:
            parsed = json.loads(record)
        except ValueError:
            return {"value": record}
        return parsed if isinstance(parsed, dict) else {"value": parsed}
    if isinstance(record, dict):
        return record
    return {"value": record}


def _to_rows(records: Any) -> list[dict[str, Any]]:
    if not records:
        return []
    if isinstance(records, list):
        return [_to_plain_object(item) for item in records]
    return [_to_plain_object(records)]


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def normalize_response(response: Any) -> SqlExecuteResult:
    """
    Normalize a raw channel response.

    Expected envelope: {"data": {"executeResultList": [{"records", "count", "insertId"}]}}.
    Records may arrive as objects, JSON strings or bare scalars; the insert id
    may sit on the result or on the first record.
    """
    data = response.get("data") if isinstance(response, dict) else None
    result_list = data.get("executeResultList") if isinstance(data, dict) else None
    execute_result = result_list[0] if isinstance(result_list, list) and result_list else {}
    if not isinstance(execute_result, dict):
        execute_result = {}

    rows = _to_rows(execute_result.get("records"))

    insert_id: int | None = None
    if execute_result.get("insertId") is not None:
        insert_id = _to_int(execute_result["insertId"])
    elif rows and rows[0].get("insertId") is not None:
        insert_id = _to_int(rows[0]["insertId"])

    return SqlExecuteResult(
        rows=rows,
        affected_rows=_to_int(execute_result.get("count"), 0),
        insert_id=insert_id,
    )


def _json_safe(value: Any) -> Any:
    """Convert parameter values the JSON transport cannot carry natively."""
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, UUID):
        return str(value)
    return value


# =============================================================================
# Execution
# =============================================================================


async def execute_sql(sql: str, values: dict[str, Any] | None = None) -> SqlExecuteResult:
    """
    Execute one parameterized statement.

    Retries up to settings.sql_retries times, with exponential backoff, and
    only on TransientStoreError. The channel is rebuilt before each retry.
    Semantic errors (constraint violations, bad SQL) propagate immediately.
    """
    params = {key: _json_safe(value) for key, value in (values or {}).items()}
    retries = max(0, settings.sql_retries)
    backoff = settings.sql_retry_backoff_seconds

    attempt = 0
    while True:
        try:
            response = await client.get_channel().run_sql(sql, params)
            return normalize_response(response)
        except TransientStoreError as e:
            if attempt >= retries:
                logger.error(f"SQL failed after {attempt + 1} attempts: {e}")
                raise
            delay = backoff * (2 ** attempt)
            attempt += 1
            logger.warning(
                f"Transient SQL failure (attempt {attempt}/{retries + 1}), "
                f"rebuilding channel and retrying in {delay:.2f}s: {e}"
            )
            await client.reset_channel()
            await asyncio.sleep(delay)


async def fetch_scalar(sql: str, values: dict[str, Any] | None = None, key: str = "value") -> float:
    """Execute a single-value aggregate query and return its number (0 when empty)."""
    result = await execute_sql(sql, values)
    if not result.rows:
        return 0
    raw = result.rows[0].get(key)
    try:
        number = float(raw)
    except (TypeError, ValueError):
        return 0
    return int(number) if number.is_integer() else number
