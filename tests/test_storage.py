"""
Tests for the asset storage collaborator.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from photobase import storage
from photobase.storage import SupabaseAssetStore, delete_assets_best_effort, object_path


def run(coro):
    return asyncio.run(coro)


class TestObjectPath:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://x.supabase.co/storage/v1/object/public/photos/a/b.jpg", "a/b.jpg"),
            ("https://x.supabase.co/storage/v1/object/sign/photos/a/b.jpg?token=abc", "a/b.jpg"),
            ("https://x.supabase.co/storage/v1/object/public/photos/a/%E5%9B%BE.jpg", "a/图.jpg"),
            ("photos/a/b.jpg", "a/b.jpg"),
            ("a/b.jpg", "a/b.jpg"),
        ],
    )
    def test_resolves_paths(self, url, expected):
        assert object_path(url, "photos") == expected

    @pytest.mark.parametrize("url", ["", "   ", "photos/../secrets/key.pem"])
    def test_rejects_blank_and_escaping_paths(self, url):
        assert object_path(url, "photos") is None


class TestBestEffortDelete:
    def test_dedupes_and_skips_blanks(self, asset_store):
        count = run(delete_assets_best_effort(["a.jpg", " ", "", "b.jpg", "a.jpg"]))
        assert count == 2
        assert asset_store.deleted == [["a.jpg", "b.jpg"]]

    def test_nothing_to_delete(self, asset_store):
        assert run(delete_assets_best_effort([])) == 0
        assert asset_store.deleted == []

    def test_failures_are_swallowed(self, asset_store):
        asset_store.fail = True
        assert run(delete_assets_best_effort(["a.jpg"])) == 1


class TestSupabaseAssetStore:
    def test_removes_resolved_paths_from_bucket(self, monkeypatch):
        client = MagicMock()
        monkeypatch.setattr(storage, "get_service_client", lambda: client)

        run(
            SupabaseAssetStore(bucket="photos").delete(
                ["https://x.supabase.co/storage/v1/object/public/photos/a/b.jpg", "photos/../etc", "c.jpg"]
            )
        )

        client.storage.from_.assert_called_once_with("photos")
        client.storage.from_.return_value.remove.assert_called_once_with(["a/b.jpg", "c.jpg"])

    def test_no_valid_paths_skips_client(self, monkeypatch):
        client = MagicMock()
        monkeypatch.setattr(storage, "get_service_client", lambda: client)

        run(SupabaseAssetStore(bucket="photos").delete(["", "../x"]))

        client.storage.from_.assert_not_called()
