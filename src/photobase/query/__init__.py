"""
Photobase - Structured queries.

Permission enforcement, SQL compilation and execution for declarative
QueryRequest objects.
"""

from photobase.query.engine import execute_query, run_query
from photobase.query.models import (
    ExecutionResult,
    Filter,
    Order,
    QueryRequest,
    Range,
    RpcRequest,
)
from photobase.query.permissions import TABLE_RULES, enforce

__all__ = [
    "ExecutionResult",
    "Filter",
    "Order",
    "QueryRequest",
    "Range",
    "RpcRequest",
    "TABLE_RULES",
    "enforce",
    "execute_query",
    "run_query",
]
