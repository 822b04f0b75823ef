"""
Photobase - Album and gallery procedures.

Albums are opened with an access key rather than an account, so most of
these are public and check the key instead of the caller.
"""

import asyncio
import logging
import uuid
from typing import Any

from photobase.db import executor
from photobase.errors import PermissionDenied
from photobase.identity import CallerIdentity
from photobase.rpc.common import access_key_arg, effective_expiry_sql, in_clause, required_text_arg
from photobase.rpc.registry import procedure, require_user
from photobase.storage import delete_assets_best_effort
from photobase.tools.normalize import to_bool, to_number

logger = logging.getLogger(__name__)

MAX_GALLERY_PAGE_SIZE = 100

DEFAULT_COMMENT_NICKNAME = "访客"
DEFAULT_RECIPIENT_NAME = "拾光者"

GALLERY_COLUMNS = """
    p.id,
    COALESCE(p.thumbnail_url, p.url) AS thumbnail_url,
    COALESCE(p.preview_url, p.url) AS preview_url,
    p.width,
    p.height,
    p.blurhash,
    p.like_count,
    p.view_count,
    p.created_at
"""


# =============================================================================
# Public gallery
# =============================================================================


@procedure("get_public_gallery", access="public")
async def get_public_gallery(args: dict[str, Any], identity: CallerIdentity) -> dict[str, Any]:
    """
    One page of the public photo wall.

    Signed-in callers get `is_liked` from their own likes; anonymous callers
    always see `is_liked = false`.
    """
    page_no = max(1, int(to_number(args.get("page_no"), 1)))
    page_size = min(MAX_GALLERY_PAGE_SIZE, max(1, int(to_number(args.get("page_size"), 20))))
    params: dict[str, Any] = {"limit": page_size, "offset": (page_no - 1) * page_size}

    if identity.user_id:
        params["user_id"] = identity.user_id
        sql = f"""
            SELECT {GALLERY_COLUMNS}, CASE WHEN pl.id IS NULL THEN 0 ELSE 1 END AS is_liked
            FROM album_photos p
            LEFT JOIN photo_likes pl ON pl.photo_id = p.id AND pl.user_id = {{{{user_id}}}}
            WHERE p.is_public = 1
            ORDER BY p.created_at DESC
            LIMIT {{{{limit}}}} OFFSET {{{{offset}}}}
        """
    else:
        sql = f"""
            SELECT {GALLERY_COLUMNS}, 0 AS is_liked
            FROM album_photos p
            WHERE p.is_public = 1
            ORDER BY p.created_at DESC
            LIMIT {{{{limit}}}} OFFSET {{{{offset}}}}
        """

    photos, total = await asyncio.gather(
        executor.execute_sql(sql, params),
        executor.fetch_scalar("SELECT COUNT(*) AS value FROM album_photos WHERE is_public = 1"),
    )

    return {
        "photos": [
            {
                **row,
                "is_liked": to_bool(row.get("is_liked")),
                "like_count": to_number(row.get("like_count")),
                "view_count": to_number(row.get("view_count")),
                "width": to_number(row.get("width")),
                "height": to_number(row.get("height")),
            }
            for row in photos.rows
        ],
        "total": total,
    }


# =============================================================================
# Album content
# =============================================================================


async def _find_album(access_key: str, columns: str) -> dict[str, Any]:
    result = await executor.execute_sql(
        f"SELECT {columns} FROM albums WHERE access_key = {{{{access_key}}}} LIMIT 1",
        {"access_key": access_key},
    )
    if not result.rows:
        raise PermissionDenied("Invalid access key")
    return result.rows[0]


async def _comments_by_photo(photo_ids: list[str]) -> dict[str, list[dict[str, Any]]]:
    grouped: dict[str, list[dict[str, Any]]] = {}
    if not photo_ids:
        return grouped

    params: dict[str, Any] = {}
    result = await executor.execute_sql(
        f"""
            SELECT id, photo_id, nickname, content, is_admin_reply, created_at
            FROM photo_comments
            WHERE photo_id IN ({in_clause("photo_id", photo_ids, params)})
            ORDER BY created_at ASC
        """,
        params,
    )
    for row in result.rows:
        grouped.setdefault(str(row.get("photo_id")), []).append(
            {
                "id": str(row.get("id")),
                "nickname": row.get("nickname") or DEFAULT_COMMENT_NICKNAME,
                "content": row.get("content") or "",
                "is_admin": to_bool(row.get("is_admin_reply")),
                "created_at": row.get("created_at"),
            }
        )
    return grouped


@procedure("get_album_content", access="public")
async def get_album_content(args: dict[str, Any], identity: CallerIdentity) -> dict[str, Any]:
    """Album, folders and photos (with comments) for an access key."""
    access_key = access_key_arg(args, "input_key")
    expiry = effective_expiry_sql()
    album = await _find_album(
        access_key,
        f"""id, title, welcome_letter, cover_url, enable_tipping, enable_welcome_letter,
            donation_qr_code_url, recipient_name, created_at,
            {expiry} AS effective_expires_at,
            CASE WHEN {expiry} < NOW() THEN 1 ELSE 0 END AS is_expired""",
    )
    album_id = str(album["id"])

    folders, photos = await asyncio.gather(
        executor.execute_sql(
            "SELECT id, name FROM album_folders WHERE album_id = {{album_id}} ORDER BY created_at DESC",
            {"album_id": album_id},
        ),
        executor.execute_sql(
            """
                SELECT id, folder_id,
                       COALESCE(thumbnail_url, url) AS thumbnail_url,
                       COALESCE(preview_url, url) AS preview_url,
                       COALESCE(original_url, url) AS original_url,
                       width, height, blurhash, is_public, rating
                FROM album_photos
                WHERE album_id = {{album_id}}
                ORDER BY created_at DESC
            """,
            {"album_id": album_id},
        ),
    )
    comments = await _comments_by_photo([str(row.get("id")) for row in photos.rows])

    welcome_flag = album.get("enable_welcome_letter")
    return {
        "album": {
            "id": album_id,
            "title": album.get("title") or "",
            "welcome_letter": album.get("welcome_letter") or "",
            "cover_url": album.get("cover_url"),
            "enable_tipping": to_bool(album.get("enable_tipping")),
            "enable_welcome_letter": True if welcome_flag is None else to_bool(welcome_flag),
            "donation_qr_code_url": album.get("donation_qr_code_url"),
            "recipient_name": album.get("recipient_name") or DEFAULT_RECIPIENT_NAME,
            "created_at": album.get("created_at"),
            "expires_at": album.get("effective_expires_at"),
            "is_expired": to_bool(album.get("is_expired")),
        },
        "folders": [{"id": str(row.get("id")), "name": str(row.get("name") or "")} for row in folders.rows],
        "photos": [
            {
                "id": str(row.get("id")),
                "folder_id": str(row["folder_id"]) if row.get("folder_id") else None,
                "thumbnail_url": row.get("thumbnail_url"),
                "preview_url": row.get("preview_url"),
                "original_url": row.get("original_url"),
                "width": to_number(row.get("width")),
                "height": to_number(row.get("height")),
                "blurhash": row.get("blurhash"),
                "is_public": to_bool(row.get("is_public")),
                "rating": to_number(row.get("rating")),
                "comments": comments.get(str(row.get("id")), []),
            }
            for row in photos.rows
        ],
    }


# =============================================================================
# Bindings
# =============================================================================


@procedure("bind_user_to_album", access="user")
async def bind_user_to_album(args: dict[str, Any], identity: CallerIdentity) -> dict[str, Any]:
    """Remember an album on the caller's account. Binding twice is a no-op."""
    user_id = require_user(identity)
    access_key = access_key_arg(args, "p_access_key")
    album = await _find_album(access_key, "id, title, cover_url, created_at")

    # INSERT IGNORE + unique (user_id, album_id): idempotent without a read first
    await executor.execute_sql(
        """
            INSERT IGNORE INTO user_album_bindings (id, user_id, album_id, created_at)
            VALUES ({{id}}, {{user_id}}, {{album_id}}, NOW())
        """,
        {"id": str(uuid.uuid4()), "user_id": user_id, "album_id": str(album["id"])},
    )

    return {
        "id": str(album["id"]),
        "title": album.get("title") or "",
        "cover_url": album.get("cover_url"),
        "created_at": album.get("created_at"),
    }


@procedure("get_user_bound_albums", access="user")
async def get_user_bound_albums(args: dict[str, Any], identity: CallerIdentity) -> list[dict[str, Any]]:
    user_id = require_user(identity)
    expiry = effective_expiry_sql("a")
    result = await executor.execute_sql(
        f"""
            SELECT a.id, a.title, a.cover_url, a.created_at, a.access_key,
                   b.created_at AS bound_at,
                   {expiry} AS expires_at,
                   CASE WHEN {expiry} < NOW() THEN 1 ELSE 0 END AS is_expired
            FROM user_album_bindings b
            JOIN albums a ON a.id = b.album_id
            WHERE b.user_id = {{{{user_id}}}}
            ORDER BY b.created_at DESC
        """,
        {"user_id": user_id},
    )
    return [
        {
            "id": str(row.get("id")),
            "title": row.get("title") or "",
            "cover_url": row.get("cover_url"),
            "created_at": row.get("created_at"),
            "access_key": row.get("access_key") or "",
            "bound_at": row.get("bound_at"),
            "expires_at": row.get("expires_at"),
            "is_expired": to_bool(row.get("is_expired")),
        }
        for row in result.rows
    ]


# =============================================================================
# Photo management by access key
# =============================================================================


async def _find_keyed_photo(args: dict[str, Any], columns: str) -> dict[str, Any]:
    """The photo, if and only if it belongs to the album the key opens."""
    access_key = access_key_arg(args, "p_access_key")
    photo_id = required_text_arg(args, "p_photo_id")
    result = await executor.execute_sql(
        f"""
            SELECT {columns}
            FROM album_photos p
            JOIN albums a ON a.id = p.album_id
            WHERE a.access_key = {{{{access_key}}}} AND p.id = {{{{photo_id}}}}
            LIMIT 1
        """,
        {"access_key": access_key, "photo_id": photo_id},
    )
    if not result.rows:
        raise PermissionDenied("Invalid access key or photo does not belong to this album")
    return result.rows[0]


@procedure("pin_photo_to_wall", access="public")
async def pin_photo_to_wall(args: dict[str, Any], identity: CallerIdentity) -> dict[str, Any]:
    """Toggle a photo's visibility on the public wall. Returns the new state."""
    photo = await _find_keyed_photo(args, "p.id, p.is_public")
    is_public = not to_bool(photo.get("is_public"))

    await executor.execute_sql(
        "UPDATE album_photos SET is_public = {{is_public}} WHERE id = {{photo_id}}",
        {"is_public": 1 if is_public else 0, "photo_id": str(photo["id"])},
    )
    return {"id": str(photo["id"]), "is_public": is_public}


@procedure("delete_album_photo", access="public")
async def delete_album_photo(args: dict[str, Any], identity: CallerIdentity) -> dict[str, Any]:
    """Delete a photo and its stored renditions. Assets go first."""
    photo = await _find_keyed_photo(args, "p.id, p.url, p.thumbnail_url, p.preview_url, p.original_url")
    urls = [str(photo.get(key) or "") for key in ("url", "thumbnail_url", "preview_url", "original_url")]

    deleted_files = await delete_assets_best_effort(urls)
    await executor.execute_sql(
        "DELETE FROM album_photos WHERE id = {{photo_id}}",
        {"photo_id": str(photo["id"])},
    )
    logger.info(f"Deleted album photo {photo['id']} ({deleted_files} files)")
    return {"id": str(photo["id"]), "deleted_files": deleted_files}
