"""
Photobase - Pose library procedures.
"""

import json
import random
from typing import Any

from photobase.db import executor
from photobase.identity import CallerIdentity
from photobase.query import derived
from photobase.rpc.common import in_clause
from photobase.rpc.registry import procedure
from photobase.tools.normalize import dedupe, normalize_tags, to_number

MAX_BATCH_SIZE = 100

POSE_COLUMNS = "id, image_url, tags, storage_path, view_count, created_at, rand_key"


def _pose(row: dict[str, Any]) -> dict[str, Any]:
    rand_key = row.get("rand_key")
    return {
        "id": int(to_number(row.get("id"), 0)),
        "image_url": row.get("image_url") or "",
        "tags": normalize_tags(row.get("tags")),
        "storage_path": row.get("storage_path"),
        "view_count": to_number(row.get("view_count")),
        "created_at": row.get("created_at"),
        "rand_key": float(rand_key) if rand_key is not None else None,
    }


@procedure("get_random_poses_batch", access="public")
async def get_random_poses_batch(args: dict[str, Any], identity: CallerIdentity) -> list[dict[str, Any]]:
    """
    Sample poses by random key.

    Picks a random point on `rand_key` and reads forward from it. When that
    runs off the end before filling the batch, wraps around and reads from
    the start of the key space. Tag filter (any-of) and exclusions apply to
    both reads.
    """
    raw_tags = args.get("tag_filter")
    tag_filter = [str(tag) for tag in raw_tags] if isinstance(raw_tags, list) else []
    batch_size = min(MAX_BATCH_SIZE, max(1, int(to_number(args.get("batch_size"), 20))))
    raw_excludes = args.get("exclude_ids")
    exclude_ids = dedupe(
        [int(to_number(i, 0)) for i in raw_excludes if int(to_number(i, 0)) > 0]
        if isinstance(raw_excludes, list) else []
    )

    params: dict[str, Any] = {"limit": batch_size, "random_key": random.random()}
    conditions: list[str] = []
    if tag_filter:
        params["tag_filter"] = json.dumps(tag_filter, ensure_ascii=False)
        conditions.append("JSON_OVERLAPS(tags, CAST({{tag_filter}} AS JSON))")
    if exclude_ids:
        conditions.append(f"id NOT IN ({in_clause('exclude_id', exclude_ids, params)})")

    def select(extra: list[str]) -> str:
        where = " AND ".join(extra + conditions)
        return (
            f"SELECT {POSE_COLUMNS} FROM poses "
            + (f"WHERE {where} " if where else "")
            + "ORDER BY rand_key ASC LIMIT {{limit}}"
        )

    result = await executor.execute_sql(select(["rand_key >= {{random_key}}"]), params)
    rows = result.rows

    if len(rows) < batch_size:
        wrapped = await executor.execute_sql(select([]), params)
        merged: dict[int, dict[str, Any]] = {}
        for row in rows + wrapped.rows:
            merged.setdefault(int(to_number(row.get("id"), 0)), row)
        rows = list(merged.values())[:batch_size]

    return [_pose(row) for row in rows]


@procedure("rebuild_pose_tag_counts", access="admin")
async def rebuild_pose_tag_counts(args: dict[str, Any], identity: CallerIdentity) -> dict[str, int]:
    """Force a full tag usage recount."""
    return {"updated": await derived.recount_pose_tag_usage()}
