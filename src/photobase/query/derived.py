"""
Photobase - Derived tag state.

`pose_tags.usage_count` is a denormalized aggregate over `poses.tags` (a JSON
array of tag names). It is always recomputed from source rows in a single
statement, never incremented, so it cannot drift under concurrent edits.

The recount touches every tag and scans every pose: O(tags x poses) per write.
"""

import json
import logging

from photobase.db import executor
from photobase.query.builder import SqlValueBuilder
from photobase.tools.normalize import dedupe, normalize_tags

logger = logging.getLogger(__name__)

RECOUNT_SQL = (
    "UPDATE `pose_tags` AS t SET t.`usage_count` = ("
    "SELECT COUNT(*) FROM `poses` AS p "
    "WHERE JSON_CONTAINS(p.`tags`, JSON_QUOTE(t.`name`))"
    ")"
)


async def recount_pose_tag_usage() -> int:
    """Recompute every tag's usage count from `poses.tags`. Returns affected rows."""
    result = await executor.execute_sql(RECOUNT_SQL)
    logger.debug(f"Recounted pose tag usage ({result.affected_rows} tags changed)")
    return result.affected_rows


async def _poses_with_any_tag(names: list[str]) -> list[dict]:
    builder = SqlValueBuilder()
    placeholder = builder.add(json.dumps(names, ensure_ascii=False))
    result = await executor.execute_sql(
        f"SELECT `id`, `tags` FROM `poses` WHERE JSON_OVERLAPS(`tags`, CAST({placeholder} AS JSON))",
        builder.build(),
    )
    return result.rows


async def _write_tags(pose_id, tags: list[str]) -> None:
    builder = SqlValueBuilder()
    tags_placeholder = builder.add(json.dumps(tags, ensure_ascii=False))
    id_placeholder = builder.add(pose_id)
    await executor.execute_sql(
        f"UPDATE `poses` SET `tags` = {tags_placeholder} WHERE `id` = {id_placeholder}",
        builder.build(),
    )


async def cascade_tag_rename(old_name: str, new_name: str) -> int:
    """
    Replace `old_name` with `new_name` in every pose's tag list.

    Lists are deduplicated, so a pose already carrying `new_name` ends up with
    it once. Running the same rename twice changes nothing the second time.

    Returns:
        Number of poses rewritten
    """
    if not old_name or old_name == new_name:
        return 0

    rewritten = 0
    for row in await _poses_with_any_tag([old_name]):
        tags = normalize_tags(row.get("tags"))
        updated = dedupe([new_name if tag == old_name else tag for tag in tags])
        if updated != tags:
            await _write_tags(row.get("id"), updated)
            rewritten += 1

    logger.info(f"Renamed tag {old_name!r} -> {new_name!r} on {rewritten} poses")
    return rewritten


async def cascade_tag_removal(names: list[str]) -> int:
    """Remove the given tag names from every pose that references them."""
    names = dedupe([name for name in names if name])
    if not names:
        return 0

    removed = set(names)
    rewritten = 0
    for row in await _poses_with_any_tag(names):
        tags = normalize_tags(row.get("tags"))
        updated = [tag for tag in tags if tag not in removed]
        if updated != tags:
            await _write_tags(row.get("id"), updated)
            rewritten += 1

    logger.info(f"Removed tags {names} from {rewritten} poses")
    return rewritten
