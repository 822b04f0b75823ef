"""
SQL Channel Protocol.

Defines the outbound boundary to the backing store: parameterized SQL text
plus a flat named-parameter map goes in, a store-specific response comes out.

The response shape is deliberately left as Any. Parsing it is the job of
photobase.db.executor and nothing else; no other module may look inside a
raw channel response.
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class SqlChannel(Protocol):
    """
    Abstract SQL execution channel.

    Implementations wrap a transport (e.g., an HTTP SQL endpoint) and raise:
    - TransientStoreError for timeouts, resets and gateway failures
    - StoreError for everything the store itself rejected
    """

    async def run_sql(self, sql: str, values: dict[str, Any]) -> Any:
        """
        Submit one statement.

        Placeholders in `sql` use the {{name}} form and refer to keys in
        `values`.
        """
        ...

    async def aclose(self) -> None:
        """Release the underlying connection handle."""
        ...
