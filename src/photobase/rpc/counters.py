"""
Photobase - Toggle and counter procedures.

Check-then-act sequences over side tables plus denormalized counters. The
SQL channel has no transactions, so two racing calls can both pass the
check; the unique keys on the side tables are what keep the rows honest,
and counters are clamped so they never go negative.
"""

import logging
import uuid
from typing import Any

from photobase.db import executor
from photobase.errors import StoreError
from photobase.identity import CallerIdentity
from photobase.rpc.common import required_text_arg, text_arg
from photobase.rpc.registry import procedure, require_user
from photobase.tools.normalize import to_number

logger = logging.getLogger(__name__)


async def _photo_counter(photo_id: str, column: str) -> int:
    value = await executor.fetch_scalar(
        f"SELECT {column} AS value FROM album_photos WHERE id = {{{{photo_id}}}} LIMIT 1",
        {"photo_id": photo_id},
    )
    return int(value)


# =============================================================================
# Likes
# =============================================================================


@procedure("like_photo", access="user")
async def like_photo(args: dict[str, Any], identity: CallerIdentity) -> dict[str, Any]:
    """
    Toggle the caller's like on a photo.

    Returns:
        {"liked": new state, "like_count": counter after the toggle}
    """
    user_id = require_user(identity)
    photo_id = required_text_arg(args, "p_photo_id")
    params = {"user_id": user_id, "photo_id": photo_id}

    existing = await executor.execute_sql(
        "SELECT id FROM photo_likes WHERE user_id = {{user_id}} AND photo_id = {{photo_id}} LIMIT 1",
        params,
    )

    if existing.rows:
        await executor.execute_sql(
            "DELETE FROM photo_likes WHERE user_id = {{user_id}} AND photo_id = {{photo_id}}",
            params,
        )
        await executor.execute_sql(
            "UPDATE album_photos SET like_count = GREATEST(0, like_count - 1) WHERE id = {{photo_id}}",
            {"photo_id": photo_id},
        )
        liked = False
    else:
        await executor.execute_sql(
            "INSERT INTO photo_likes (user_id, photo_id, created_at) VALUES ({{user_id}}, {{photo_id}}, NOW())",
            params,
        )
        await executor.execute_sql(
            "UPDATE album_photos SET like_count = like_count + 1 WHERE id = {{photo_id}}",
            {"photo_id": photo_id},
        )
        liked = True

    return {"liked": liked, "like_count": await _photo_counter(photo_id, "like_count")}


# =============================================================================
# Views
# =============================================================================


@procedure("increment_photo_view", access="public")
async def increment_photo_view(args: dict[str, Any], identity: CallerIdentity) -> dict[str, Any]:
    """
    Count one view per (photo, viewer).

    The viewer is the signed-in user, or for anonymous callers the opaque
    `p_session_id`. Anonymous calls without a session id are never counted.
    """
    photo_id = required_text_arg(args, "p_photo_id")
    session_id = text_arg(args, "p_session_id")
    user_id = identity.user_id

    already_viewed = True
    if user_id:
        seen = await executor.execute_sql(
            "SELECT id FROM photo_views WHERE photo_id = {{photo_id}} AND user_id = {{user_id}} LIMIT 1",
            {"photo_id": photo_id, "user_id": user_id},
        )
        already_viewed = bool(seen.rows)
    elif session_id:
        seen = await executor.execute_sql(
            "SELECT id FROM photo_views WHERE photo_id = {{photo_id}} AND session_id = {{session_id}} LIMIT 1",
            {"photo_id": photo_id, "session_id": session_id},
        )
        already_viewed = bool(seen.rows)

    counted = False
    if not already_viewed:
        try:
            await executor.execute_sql(
                """
                    INSERT INTO photo_views (id, photo_id, user_id, session_id, viewed_at)
                    VALUES ({{id}}, {{photo_id}}, {{user_id}}, {{session_id}}, NOW())
                """,
                {
                    "id": str(uuid.uuid4()),
                    "photo_id": photo_id,
                    "user_id": user_id,
                    "session_id": None if user_id else session_id,
                },
            )
        except StoreError as e:
            # Lost the race to a concurrent call for the same viewer
            if not e.is_duplicate_key:
                raise
            logger.debug(f"View of {photo_id} already recorded concurrently")
        else:
            await executor.execute_sql(
                "UPDATE album_photos SET view_count = view_count + 1 WHERE id = {{photo_id}}",
                {"photo_id": photo_id},
            )
            counted = True

    return {"counted": counted, "view_count": await _photo_counter(photo_id, "view_count")}


@procedure("increment_pose_view", access="public")
async def increment_pose_view(args: dict[str, Any], identity: CallerIdentity) -> None:
    pose_id = int(to_number(args.get("p_pose_id"), 0))
    if pose_id <= 0:
        return None

    await executor.execute_sql(
        "UPDATE poses SET view_count = view_count + 1 WHERE id = {{pose_id}}",
        {"pose_id": pose_id},
    )
    return None


@procedure("batch_increment_pose_views", access="public")
async def batch_increment_pose_views(args: dict[str, Any], identity: CallerIdentity) -> dict[str, int]:
    """Apply buffered client-side view counts: [{pose_id, count}, ...]."""
    items = args.get("pose_views")
    if not isinstance(items, list):
        items = []

    updated = 0
    for item in items:
        if not isinstance(item, dict):
            continue
        pose_id = int(to_number(item.get("pose_id"), 0))
        count = max(0, int(to_number(item.get("count"), 0)))
        if pose_id <= 0 or count == 0:
            continue
        await executor.execute_sql(
            "UPDATE poses SET view_count = view_count + {{count}} WHERE id = {{pose_id}}",
            {"pose_id": pose_id, "count": count},
        )
        updated += 1

    return {"updated": updated}
