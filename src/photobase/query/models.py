"""
Photobase - Query request models.

The declarative request object application code sends, and the uniform
result shape every dispatch returns.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from photobase.errors import ErrorInfo

QueryAction = Literal["select", "insert", "update", "delete"]

FilterOperator = Literal["eq", "neq", "gt", "gte", "lt", "lte", "in", "contains", "overlaps"]


class Filter(BaseModel):
    """A single filter condition. Filters are combined with AND."""

    model_config = ConfigDict(frozen=True)

    column: str
    operator: FilterOperator
    value: Any = None  # For 'in' / 'contains' / 'overlaps': a list (scalars are wrapped)


class Order(BaseModel):
    model_config = ConfigDict(frozen=True)

    column: str
    ascending: bool = True


class Range(BaseModel):
    """Inclusive row window, e.g. {from: 0, to: 19} is the first 20 rows."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    start: int = Field(alias="from")
    end: int = Field(alias="to")


# Keys used by older clients, mapped onto the current field aliases
_LEGACY_FLAGS = {
    "single": "wantSingleRow",
    "maybeSingle": "wantAtMostOneRow",
    "selectAfterWrite": "returnWrittenRows",
}


class QueryRequest(BaseModel):
    """
    Structured query request.

    Supports:
    - select with filters, ordering, range/limit, exact count, single-row modes
    - insert of a single record or a batch
    - update / delete, both requiring at least one filter
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    table: str
    action: QueryAction
    columns: str | list[str] | None = None  # None / "*" = all columns
    values: dict[str, Any] | list[dict[str, Any]] | None = None
    filters: list[Filter] = Field(default_factory=list)
    orders: list[Order] = Field(default_factory=list)
    range: Range | None = None
    limit: int | None = None
    want_count: bool = Field(default=False, alias="wantCount")
    want_single_row: bool = Field(default=False, alias="wantSingleRow")
    want_at_most_one_row: bool = Field(default=False, alias="wantAtMostOneRow")
    return_written_rows: bool = Field(default=False, alias="returnWrittenRows")

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "count" in data:
            data.setdefault("wantCount", data.pop("count") == "exact")
        for legacy, alias in _LEGACY_FLAGS.items():
            if legacy in data:
                data.setdefault(alias, bool(data.pop(legacy)))
        return data

    def value_rows(self) -> list[dict[str, Any]]:
        """Write payload as a list of (copied) records."""
        if self.values is None:
            return []
        if isinstance(self.values, list):
            return [dict(row) for row in self.values]
        return [dict(self.values)]


class RpcRequest(BaseModel):
    """Named procedure call: {functionName, args}."""

    model_config = ConfigDict(populate_by_name=True)

    function_name: str = Field(alias="functionName")
    args: dict[str, Any] = Field(default_factory=dict)


class ExecutionResult(BaseModel):
    """
    Uniform result of a query or RPC call.

    `error` and `data` are mutually exclusive. No exception does not mean
    success: callers must check `error`.
    """

    data: Any = None
    error: ErrorInfo | None = None
    count: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, message: str, code: str | None = None, count: int | None = None) -> "ExecutionResult":
        return cls(data=None, error=ErrorInfo(message=message, code=code), count=count)
