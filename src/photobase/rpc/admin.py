"""
Photobase - Administrative procedures.

Dashboard statistics and scheduled maintenance. Both fan out independent
queries concurrently and assemble a composite report.

Maintenance deletes stored assets BEFORE the rows that reference them. A
crash in between leaves rows pointing at missing files, never files that
nothing points at.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from photobase.config import settings
from photobase.db import executor
from photobase.identity import CallerIdentity
from photobase.rpc.common import effective_expiry_sql
from photobase.rpc.registry import procedure
from photobase.storage import delete_assets_best_effort
from photobase.tools.normalize import to_number

logger = logging.getLogger(__name__)

TODAY = "CURRENT_DATE()"

# "section.field" -> single-value query aliased AS value
SCALAR_QUERIES: dict[str, str] = {
    "users.total": "SELECT COUNT(*) AS value FROM profiles",
    "users.admins": "SELECT COUNT(*) AS value FROM profiles WHERE role = 'admin'",
    "users.regular_users": "SELECT COUNT(*) AS value FROM profiles WHERE role = 'user'",
    "users.new_today": f"SELECT COUNT(*) AS value FROM profiles WHERE DATE(created_at) = {TODAY}",
    "users.active_today": (
        f"SELECT COUNT(DISTINCT user_id) AS value FROM user_active_logs WHERE active_date = {TODAY}"
    ),
    "albums.total": "SELECT COUNT(*) AS value FROM albums",
    "albums.new_today": f"SELECT COUNT(*) AS value FROM albums WHERE DATE(created_at) = {TODAY}",
    "albums.tipping_enabled": "SELECT COUNT(*) AS value FROM albums WHERE enable_tipping = 1",
    "photos.total": "SELECT COUNT(*) AS value FROM album_photos",
    "photos.new_today": f"SELECT COUNT(*) AS value FROM album_photos WHERE DATE(created_at) = {TODAY}",
    "photos.public": "SELECT COUNT(*) AS value FROM album_photos WHERE is_public = 1",
    "photos.private": "SELECT COUNT(*) AS value FROM album_photos WHERE is_public = 0",
    "photos.total_views": "SELECT COALESCE(SUM(view_count), 0) AS value FROM album_photos",
    "photos.total_likes": "SELECT COALESCE(SUM(like_count), 0) AS value FROM album_photos",
    "photos.total_comments": "SELECT COUNT(*) AS value FROM photo_comments",
    "photos.avg_rating": (
        "SELECT COALESCE(ROUND(AVG(rating), 2), 0) AS value FROM album_photos WHERE rating > 0"
    ),
    "bookings.total": "SELECT COUNT(*) AS value FROM bookings",
    "bookings.new_today": f"SELECT COUNT(*) AS value FROM bookings WHERE DATE(created_at) = {TODAY}",
    "bookings.pending": "SELECT COUNT(*) AS value FROM bookings WHERE status = 'pending'",
    "bookings.confirmed": "SELECT COUNT(*) AS value FROM bookings WHERE status = 'confirmed'",
    "bookings.finished": "SELECT COUNT(*) AS value FROM bookings WHERE status = 'finished'",
    "bookings.cancelled": "SELECT COUNT(*) AS value FROM bookings WHERE status = 'cancelled'",
    "bookings.upcoming": (
        "SELECT COUNT(*) AS value FROM bookings "
        f"WHERE status IN ('pending', 'confirmed') AND booking_date >= {TODAY}"
    ),
    "poses.total": "SELECT COUNT(*) AS value FROM poses",
    "poses.new_today": f"SELECT COUNT(*) AS value FROM poses WHERE DATE(created_at) = {TODAY}",
    "poses.total_views": "SELECT COALESCE(SUM(view_count), 0) AS value FROM poses",
    "poses.total_tags": "SELECT COUNT(*) AS value FROM pose_tags",
    "system.total_cities": "SELECT COUNT(*) AS value FROM allowed_cities WHERE is_active = 1",
    "system.total_blackout_dates": f"SELECT COUNT(*) AS value FROM booking_blackouts WHERE date >= {TODAY}",
    "system.total_releases": "SELECT COUNT(*) AS value FROM app_releases",
}

TREND_SQL = (
    "SELECT date, {column} AS count FROM analytics_daily "
    f"WHERE date >= DATE_SUB({TODAY}, INTERVAL 6 DAY) ORDER BY date DESC"
)

# analytics_daily column -> (section, field) in the dashboard report
SNAPSHOT_COLUMNS: dict[str, tuple[str, str]] = {
    "new_users_count": ("users", "new_today"),
    "active_users_count": ("users", "active_today"),
    "total_users_count": ("users", "total"),
    "admin_users_count": ("users", "admins"),
    "total_albums_count": ("albums", "total"),
    "new_albums_count": ("albums", "new_today"),
    "expired_albums_count": ("albums", "expired"),
    "tipping_enabled_albums_count": ("albums", "tipping_enabled"),
    "total_photos_count": ("photos", "total"),
    "new_photos_count": ("photos", "new_today"),
    "public_photos_count": ("photos", "public"),
    "private_photos_count": ("photos", "private"),
    "total_photo_views": ("photos", "total_views"),
    "total_photo_likes": ("photos", "total_likes"),
    "total_photo_comments": ("photos", "total_comments"),
    "total_bookings_count": ("bookings", "total"),
    "new_bookings_count": ("bookings", "new_today"),
    "pending_bookings_count": ("bookings", "pending"),
    "confirmed_bookings_count": ("bookings", "confirmed"),
    "finished_bookings_count": ("bookings", "finished"),
    "cancelled_bookings_count": ("bookings", "cancelled"),
    "total_poses_count": ("poses", "total"),
    "new_poses_count": ("poses", "new_today"),
    "total_pose_tags_count": ("poses", "total_tags"),
    "total_pose_views": ("poses", "total_views"),
}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Dashboard
# =============================================================================


def _scalar_queries() -> dict[str, str]:
    """SCALAR_QUERIES plus the ones that depend on settings."""
    queries = dict(SCALAR_QUERIES)
    queries["albums.expired"] = f"SELECT COUNT(*) AS value FROM albums WHERE {effective_expiry_sql()} < NOW()"
    return queries


async def collect_dashboard_stats() -> dict[str, Any]:
    """All dashboard numbers, queried concurrently. No identity check."""
    queries = _scalar_queries()

    scalars, booking_types, top_tags, latest_release, new_users, active_users, new_bookings = (
        await asyncio.gather(
            asyncio.gather(*(executor.fetch_scalar(sql) for sql in queries.values())),
            executor.execute_sql(
                """
                    SELECT bt.name AS type_name, COUNT(b.id) AS count
                    FROM booking_types bt
                    LEFT JOIN bookings b ON b.type_id = bt.id
                    GROUP BY bt.id, bt.name
                    ORDER BY bt.id ASC
                """
            ),
            executor.execute_sql(
                "SELECT name AS tag_name, usage_count FROM pose_tags ORDER BY usage_count DESC LIMIT 10"
            ),
            executor.execute_sql(
                "SELECT version, platform, created_at FROM app_releases ORDER BY created_at DESC LIMIT 1"
            ),
            executor.execute_sql(TREND_SQL.format(column="new_users_count")),
            executor.execute_sql(TREND_SQL.format(column="active_users_count")),
            executor.execute_sql(TREND_SQL.format(column="new_bookings_count")),
        )
    )

    report: dict[str, dict[str, Any]] = {}
    for key, value in zip(queries, scalars):
        section, field = key.split(".", 1)
        report.setdefault(section, {})[field] = value

    report["bookings"]["types"] = [
        {"type_name": row.get("type_name") or "", "count": to_number(row.get("count"))}
        for row in booking_types.rows
    ]
    report["poses"]["top_tags"] = [
        {"tag_name": row.get("tag_name") or "", "usage_count": to_number(row.get("usage_count"))}
        for row in top_tags.rows
    ]
    report["system"]["latest_version"] = latest_release.rows[0] if latest_release.rows else None
    report["trends"] = {
        "daily_new_users": new_users.rows,
        "daily_active_users": active_users.rows,
        "daily_new_bookings": new_bookings.rows,
    }
    return report


@procedure("get_admin_dashboard_stats", access="admin")
async def get_admin_dashboard_stats(args: dict[str, Any], identity: CallerIdentity) -> dict[str, Any]:
    return await collect_dashboard_stats()


async def update_daily_analytics_snapshot() -> dict[str, Any]:
    """Upsert today's analytics_daily row from the live dashboard numbers."""
    stats = await collect_dashboard_stats()
    params = {column: stats[section][field] for column, (section, field) in SNAPSHOT_COLUMNS.items()}

    columns = ", ".join(SNAPSHOT_COLUMNS)
    placeholders = ", ".join("{{" + column + "}}" for column in SNAPSHOT_COLUMNS)
    updates = ", ".join(f"{column} = VALUES({column})" for column in SNAPSHOT_COLUMNS)

    await executor.execute_sql(
        f"INSERT INTO analytics_daily (date, {columns}) VALUES ({TODAY}, {placeholders}) "
        f"ON DUPLICATE KEY UPDATE {updates}",
        params,
    )
    return stats


# =============================================================================
# Maintenance
# =============================================================================


def _urls(rows: list[dict[str, Any]], columns: tuple[str, ...]) -> list[str]:
    urls = []
    for row in rows:
        for column in columns:
            value = str(row.get(column) or "").strip()
            if value:
                urls.append(value)
    return urls


async def cleanup_expired_data() -> dict[str, Any]:
    """
    Remove expired content.

    1. private photos in expired albums: assets, then rows
    2. folders with no photos older than 24 hours
    3. expired albums with no photos left: cover / QR assets, then rows
    """
    album_expiry = effective_expiry_sql("a")
    expired_private_photos = f"p.is_public = 0 AND {album_expiry} < NOW()"

    photo_rows = await executor.execute_sql(
        f"""
            SELECT p.url, p.thumbnail_url, p.preview_url, p.original_url
            FROM album_photos p
            JOIN albums a ON a.id = p.album_id
            WHERE {expired_private_photos}
        """
    )
    photo_files = await delete_assets_best_effort(
        _urls(photo_rows.rows, ("thumbnail_url", "preview_url", "original_url", "url"))
    )
    deleted_photos = await executor.execute_sql(
        f"DELETE p FROM album_photos p JOIN albums a ON a.id = p.album_id WHERE {expired_private_photos}"
    )

    deleted_folders = await executor.execute_sql(
        """
            DELETE FROM album_folders
            WHERE id NOT IN (SELECT folder_id FROM album_photos WHERE folder_id IS NOT NULL)
              AND created_at < DATE_SUB(NOW(), INTERVAL 24 HOUR)
        """
    )

    empty_expired_albums = (
        f"{effective_expiry_sql()} < NOW() AND id NOT IN (SELECT album_id FROM album_photos)"
    )
    album_rows = await executor.execute_sql(
        f"SELECT cover_url, donation_qr_code_url FROM albums WHERE {empty_expired_albums}"
    )
    album_files = await delete_assets_best_effort(
        _urls(album_rows.rows, ("cover_url", "donation_qr_code_url"))
    )
    deleted_albums = await executor.execute_sql(f"DELETE FROM albums WHERE {empty_expired_albums}")

    return {
        "deleted_photos": deleted_photos.affected_rows,
        "deleted_folders": deleted_folders.affected_rows,
        "deleted_albums": deleted_albums.affected_rows,
        "deleted_storage_files": photo_files + album_files,
        "timestamp": _utc_now_iso(),
    }


@procedure("run_maintenance_tasks", access="admin")
async def run_maintenance_tasks(args: dict[str, Any], identity: CallerIdentity) -> dict[str, Any]:
    """
    Scheduled housekeeping.

    Cleans expired content, prunes old photo views, advances booking
    statuses for the day, and snapshots today's analytics.
    """
    cleanup = await cleanup_expired_data()

    retention_days = int(settings.photo_view_retention_days)
    pruned_views = await executor.execute_sql(
        f"DELETE FROM photo_views WHERE viewed_at < DATE_SUB(NOW(), INTERVAL {retention_days} DAY)"
    )
    started = await executor.execute_sql(
        f"UPDATE bookings SET status = 'in_progress' WHERE status = 'confirmed' AND booking_date = {TODAY}"
    )
    finished = await executor.execute_sql(
        "UPDATE bookings SET status = 'finished' "
        f"WHERE status IN ('pending', 'confirmed', 'in_progress') AND booking_date < {TODAY}"
    )
    await update_daily_analytics_snapshot()

    report = {
        "cleanup_result": cleanup,
        "photo_views_pruned": pruned_views.affected_rows,
        "bookings_started": started.affected_rows,
        "bookings_finished": finished.affected_rows,
        "analytics_updated": True,
        "timestamp": _utc_now_iso(),
    }
    logger.info(
        f"Maintenance done: {cleanup['deleted_photos']} photos, {cleanup['deleted_folders']} folders, "
        f"{cleanup['deleted_albums']} albums, {cleanup['deleted_storage_files']} files removed; "
        f"{pruned_views.affected_rows} views pruned"
    )
    return report
