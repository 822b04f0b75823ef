"""
Photobase - Asset storage collaborator.

The core only ever holds asset URLs. Deleting the binaries behind them is
delegated to an AssetStore; the default one is Supabase Storage.
"""

import asyncio
import logging
from typing import Protocol, runtime_checkable
from urllib.parse import unquote, urlparse

from photobase.config import settings
from photobase.db.service import get_service_client

logger = logging.getLogger(__name__)

# Path prefixes Supabase puts in front of the bucket name in object URLs
_OBJECT_URL_MARKERS = (
    "/storage/v1/object/public/",
    "/storage/v1/object/sign/",
    "/storage/v1/object/",
)


@runtime_checkable
class AssetStore(Protocol):
    async def delete(self, urls: list[str]) -> None:
        """Delete the objects behind `urls`. May raise; callers decide."""
        ...


def object_path(url: str, bucket: str) -> str | None:
    """
    Resolve a stored URL to an object path inside `bucket`.

    Accepts full Supabase object URLs, "bucket/path" strings and bare paths.
    Returns None for blanks and for paths trying to escape the bucket.

    Examples:
        object_path("https://x.supabase.co/storage/v1/object/public/photos/a/b.jpg", "photos") -> "a/b.jpg"
        object_path("photos/a/b.jpg", "photos") -> "a/b.jpg"
    """
    text = (url or "").strip()
    if not text:
        return None

    if text.startswith(("http://", "https://")):
        path = unquote(urlparse(text).path)
        for marker in _OBJECT_URL_MARKERS:
            if marker in path:
                path = path.split(marker, 1)[1]
                break
    else:
        path = text.split("?", 1)[0]

    path = "/".join(part for part in path.replace("\\", "/").split("/") if part)
    if path.startswith(f"{bucket}/"):
        path = path[len(bucket) + 1:]

    if not path or ".." in path.split("/"):
        return None
    return path


class SupabaseAssetStore:
    """AssetStore backed by a Supabase Storage bucket."""

    def __init__(self, bucket: str | None = None):
        self.bucket = bucket or settings.storage_bucket

    async def delete(self, urls: list[str]) -> None:
        paths = [path for path in (object_path(url, self.bucket) for url in urls) if path]
        if not paths:
            return
        client = get_service_client()
        # supabase-py's storage client is synchronous
        await asyncio.to_thread(client.storage.from_(self.bucket).remove, paths)
        logger.info(f"Deleted {len(paths)} objects from bucket {self.bucket}")


# Singleton store instance
_store: AssetStore | None = None


def get_asset_store() -> AssetStore:
    global _store

    if _store is None:
        _store = SupabaseAssetStore()

    return _store


def set_asset_store(store: AssetStore | None) -> None:
    """Replace the asset store (tests, alternative backends). None restores the default."""
    global _store
    _store = store


async def delete_assets_best_effort(urls: list[str]) -> int:
    """
    Delete assets without letting a storage failure stop the caller.

    Blank and duplicate URLs are dropped. Failures are logged, never raised.

    Returns:
        Number of distinct URLs submitted for deletion
    """
    targets = list(dict.fromkeys(url.strip() for url in urls if url and url.strip()))
    if not targets:
        return 0

    try:
        await get_asset_store().delete(targets)
    except Exception as e:
        logger.warning(f"Asset deletion failed for {len(targets)} objects: {e}")

    return len(targets)
