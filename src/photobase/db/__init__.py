"""
Photobase - Database access.

Table metadata registry, SQL channel and executor.
"""

from photobase.db.executor import SqlExecuteResult, escape_identifier, execute_sql
from photobase.db.metadata import (
    TableMetadata,
    allowed_tables,
    assert_column_allowed,
    get_metadata,
    is_column_allowed,
)

__all__ = [
    "SqlExecuteResult",
    "TableMetadata",
    "allowed_tables",
    "assert_column_allowed",
    "escape_identifier",
    "execute_sql",
    "get_metadata",
    "is_column_allowed",
]
