"""
Photobase - SQL channel client.

HTTP transport to the backing store's SQL execution endpoint, and the
lazily-built singleton every executor call goes through.
"""

import logging
from typing import Any

import httpx

from photobase.config import settings
from photobase.db.adapter import SqlChannel
from photobase.errors import StoreError, TransientStoreError

logger = logging.getLogger(__name__)

# Gateway statuses that mean "the request never reached a healthy backend"
TRANSIENT_STATUS_CODES = {502, 503, 504}


class HttpSqlChannel:
    """
    SQL channel backed by an httpx.AsyncClient.

    Request body: {"database", "sql", "values"}. The store answers with its
    own result envelope, which is returned untouched.
    """

    def __init__(
        self,
        endpoint: str,
        database: str,
        api_key: str | None = None,
        timeout: float = 12.0,
    ):
        self.endpoint = endpoint
        self.database = database
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(timeout=timeout, headers=headers)

    async def run_sql(self, sql: str, values: dict[str, Any]) -> Any:
        try:
            response = await self._client.post(
                self.endpoint,
                json={"database": self.database, "sql": sql, "values": values},
            )
        except httpx.TimeoutException as e:
            raise TransientStoreError(f"SQL channel timed out: {e}") from e
        except (httpx.NetworkError, httpx.RemoteProtocolError) as e:
            raise TransientStoreError(f"SQL channel connection failed: {e}") from e

        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientStoreError(f"SQL channel unavailable: HTTP {response.status_code}")

        body = _parse_body(response)

        if response.is_error:
            raise _store_error_from_body(body, f"SQL endpoint returned HTTP {response.status_code}")

        # Some deployments report statement errors inside a 200 envelope
        if isinstance(body, dict) and body.get("code") and "data" not in body:
            raise _store_error_from_body(body, "SQL statement failed")

        return body

    async def aclose(self) -> None:
        await self._client.aclose()


def _parse_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"message": response.text}


def _store_error_from_body(body: Any, fallback: str) -> StoreError:
    if not isinstance(body, dict):
        return StoreError(fallback)
    message = body.get("message") if isinstance(body.get("message"), str) else fallback
    code = body.get("code")
    errno = body.get("errno")
    return StoreError(
        message or fallback,
        code=str(code) if code not in (None, "") else None,
        errno=errno if isinstance(errno, int) else None,
    )


# =============================================================================
# Singleton channel
# =============================================================================

_channel: SqlChannel | None = None
_channel_override: SqlChannel | None = None


def get_channel() -> SqlChannel:
    """
    Get the SQL channel.

    Uses singleton pattern to reuse the connection; an override set by tests
    always wins.
    """
    global _channel

    if _channel_override is not None:
        return _channel_override

    if _channel is None:
        _channel = HttpSqlChannel(
            endpoint=settings.sql_endpoint,
            database=settings.sql_database,
            api_key=settings.sql_api_key,
            timeout=settings.sql_timeout_seconds,
        )

    return _channel


async def reset_channel() -> None:
    """
    Drop the current channel so the next call builds a fresh one.

    Called before every retry: one misbehaving connection must not poison
    the calls that follow it.
    """
    global _channel

    channel, _channel = _channel, None
    if channel is None:
        return
    try:
        await channel.aclose()
    except Exception as e:
        logger.warning(f"Closing SQL channel failed: {e}")


def set_channel_override(channel: SqlChannel) -> None:
    """Use `channel` instead of the HTTP singleton (tests, alternative stores)."""
    global _channel_override
    _channel_override = channel


def clear_channel_override() -> None:
    global _channel_override
    _channel_override = None
