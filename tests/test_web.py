"""
Tests for the HTTP surface and bearer-token identity resolution.
"""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from photobase.identity import CallerIdentity
from photobase.web import auth
from photobase.web.app import app


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def signed_in_as(monkeypatch):
    def install(identity):
        monkeypatch.setattr(auth, "identity_from_token", lambda token: identity)

    return install


class TestRoutes:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_guest_query(self, client, fake_db):
        fake_db.rows("FROM `poses`", [{"id": 1, "tags": "[]"}])

        response = client.post("/api/db/query", json={"table": "poses", "action": "select"})

        assert response.status_code == 200
        assert response.json() == {"data": [{"id": 1, "tags": []}], "error": None, "count": 1}

    def test_query_errors_use_200_envelope(self, client, fake_db):
        response = client.post("/api/db/query", json={"table": "bookings", "action": "select"})

        assert response.status_code == 200
        body = response.json()
        assert body["data"] is None
        assert body["error"]["code"] == "UNAUTHORIZED"

    def test_malformed_body_is_422(self, client):
        response = client.post("/api/db/query", json={"action": "select"})
        assert response.status_code == 422

    def test_bearer_token_scopes_query(self, client, fake_db, signed_in_as, alice):
        signed_in_as(alice)

        client.post(
            "/api/db/query",
            json={"table": "bookings", "action": "select"},
            headers={"Authorization": "Bearer token-abc"},
        )

        assert fake_db.calls[0][1] == {"v_0": "user-alice"}

    def test_rpc_route(self, client, fake_db):
        response = client.post("/api/db/rpc", json={"functionName": "nope", "args": {}})

        assert response.status_code == 200
        assert response.json()["error"]["code"] == "UNKNOWN_PROCEDURE"
        assert set(response.json()) == {"data", "error"}


class TestCronRoute:
    """Maintenance trigger guarded by the shared secret."""

    def test_missing_secret_is_401(self, client, fake_db):
        assert client.post("/api/cron/maintenance").status_code == 401
        assert fake_db.calls == []

    def test_wrong_secret_is_401(self, client, fake_db):
        response = client.post("/api/cron/maintenance", headers={"Authorization": "Bearer wrong"})
        assert response.status_code == 401

    def test_valid_secret_runs_maintenance(self, client, fake_db, asset_store):
        response = client.post("/api/cron/maintenance", headers={"Authorization": "Bearer cron-test-secret"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["analytics_updated"] is True


class TestIdentityFromToken:
    """Supabase user -> CallerIdentity."""

    def _client_returning(self, user):
        client = MagicMock()
        client.auth.get_user.return_value = MagicMock(user=user)
        return client

    def test_admin_role_from_app_metadata(self, monkeypatch):
        user = MagicMock(
            id="u1", email="a@example.com", phone="", app_metadata={"role": "admin"}, user_metadata={"name": "A"}
        )
        monkeypatch.setattr(auth, "get_service_client", lambda: self._client_returning(user))

        identity = auth.identity_from_token("token")

        assert identity.role == "admin"
        assert identity.user_id == "u1"
        assert identity.user.phone is None
        assert identity.user.name == "A"

    def test_plain_user(self, monkeypatch):
        user = MagicMock(id="u2", email=None, phone="13800138000", app_metadata={}, user_metadata={})
        monkeypatch.setattr(auth, "get_service_client", lambda: self._client_returning(user))

        identity = auth.identity_from_token("token")

        assert identity.role == "user"
        assert identity.user.phone == "13800138000"

    def test_invalid_token_is_guest(self, monkeypatch):
        client = MagicMock()
        client.auth.get_user.side_effect = Exception("invalid JWT")
        monkeypatch.setattr(auth, "get_service_client", lambda: client)

        assert auth.identity_from_token("bad") == CallerIdentity.guest()

    def test_no_user_is_guest(self, monkeypatch):
        monkeypatch.setattr(auth, "get_service_client", lambda: self._client_returning(None))
        assert auth.identity_from_token("token").role == "guest"
