"""
Pytest configuration and fixtures for Photobase tests.
"""

import os

import pytest

# Set test environment before importing photobase modules
os.environ["PHOTOBASE_ENV"] = "development"
os.environ["SQL_ENDPOINT"] = "http://sql.test/execute"
os.environ["SQL_DATABASE"] = "photobase_test"
os.environ["SQL_RETRY_BACKOFF_SECONDS"] = "0"
os.environ["CRON_SECRET"] = "cron-test-secret"

from photobase.db import executor
from photobase.db.executor import SqlExecuteResult
from photobase.identity import CallerIdentity, clear_request_identity
from photobase.storage import set_asset_store


class FakeExecutor:
    """
    Scripted stand-in for the SQL executor.

    Responses are matched by SQL fragment, first registration wins. A fragment
    registered with several results hands them out in order and then keeps
    repeating the last one. Unmatched statements return an empty result.
    """

    def __init__(self):
        self.calls: list[tuple[str, dict]] = []
        self._responses: list[tuple[str, list]] = []

    def on(self, fragment: str, *results) -> "FakeExecutor":
        self._responses.append((fragment, list(results)))
        return self

    def rows(self, fragment: str, rows: list[dict]) -> "FakeExecutor":
        return self.on(fragment, SqlExecuteResult(rows=rows))

    async def execute_sql(self, sql, values=None):
        self.calls.append((sql, dict(values or {})))
        for fragment, results in self._responses:
            if fragment in sql:
                result = results.pop(0) if len(results) > 1 else results[0]
                if isinstance(result, Exception):
                    raise result
                return result
        return SqlExecuteResult()

    def sql(self) -> list[str]:
        return [" ".join(sql.split()) for sql, _ in self.calls]

    def find(self, fragment: str) -> list[tuple[str, dict]]:
        return [(sql, values) for sql, values in self.calls if fragment in sql]

    def index_of(self, fragment: str) -> int:
        for i, (sql, _) in enumerate(self.calls):
            if fragment in sql:
                return i
        raise AssertionError(f"No statement containing {fragment!r}")


class FakeAssetStore:
    """AssetStore that records what it was asked to delete."""

    def __init__(self, fail: bool = False, log: list | None = None):
        self.deleted: list[list[str]] = []
        self.fail = fail
        self.log = log

    async def delete(self, urls):
        if self.log is not None:
            self.log.append(("assets", list(urls)))
        if self.fail:
            raise RuntimeError("storage unavailable")
        self.deleted.append(list(urls))


@pytest.fixture
def fake_db(monkeypatch):
    """Replace the executor's statement runner; fetch_scalar goes through it too."""
    fake = FakeExecutor()
    monkeypatch.setattr(executor, "execute_sql", fake.execute_sql)
    return fake


@pytest.fixture
def asset_store():
    store = FakeAssetStore()
    set_asset_store(store)
    yield store
    set_asset_store(None)


@pytest.fixture(autouse=True)
def _reset_request_identity():
    yield
    clear_request_identity()


@pytest.fixture
def guest():
    return CallerIdentity.guest()


@pytest.fixture
def alice():
    return CallerIdentity.for_user("user-alice", email="alice@example.com", phone="13800138000")


@pytest.fixture
def admin():
    return CallerIdentity(role="admin", user={"id": "user-admin", "email": "admin@example.com"})
