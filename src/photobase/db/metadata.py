"""
Photobase - Table Metadata Registry.

Static allow-list of the tables and columns the compiler may reference.
Anything outside this list is a programming error, not a policy decision.
Pure, no I/O, loaded once at import.
"""

from dataclasses import dataclass, field
from typing import Literal

from photobase.errors import ColumnNotAllowed, UnknownTable

# uuid: generated by the compiler; auto: auto-increment; string: natural key
PrimaryKeyKind = Literal["uuid", "auto", "string", "none"]


@dataclass(frozen=True)
class TableMetadata:
    name: str
    columns: frozenset[str]
    primary_key: str | None
    primary_key_kind: PrimaryKeyKind
    boolean_columns: frozenset[str] = field(default_factory=frozenset)
    json_columns: frozenset[str] = field(default_factory=frozenset)

    def has_column(self, column: str) -> bool:
        return column in self.columns


def _table(
    name: str,
    columns: list[str],
    primary_key: str | None,
    kind: PrimaryKeyKind,
    booleans: tuple[str, ...] = (),
    json: tuple[str, ...] = (),
) -> TableMetadata:
    return TableMetadata(
        name=name,
        columns=frozenset(columns),
        primary_key=primary_key,
        primary_key_kind=kind,
        boolean_columns=frozenset(booleans),
        json_columns=frozenset(json),
    )


# =============================================================================
# Registry
# =============================================================================

_TABLES: list[TableMetadata] = [
    _table(
        "users",
        ["id", "email", "phone", "password_hash", "role", "created_at", "updated_at", "deleted_at"],
        "id", "uuid",
    ),
    _table(
        "user_sessions",
        ["id", "user_id", "token_hash", "expires_at", "created_at", "last_seen_at",
         "user_agent", "ip_address", "is_revoked"],
        "id", "uuid",
        booleans=("is_revoked",),
    ),
    _table(
        "password_reset_tokens",
        ["id", "user_id", "token_hash", "expires_at", "used_at", "created_at"],
        "id", "uuid",
    ),
    _table(
        "profiles",
        ["id", "email", "name", "avatar", "role", "phone", "wechat", "payment_qr_code",
         "created_at", "last_active_at"],
        "id", "uuid",
    ),
    _table(
        "about_settings",
        ["id", "author_name", "phone", "wechat", "email", "donation_qr_code", "author_message",
         "created_at", "updated_at"],
        "id", "auto",
    ),
    _table("user_active_logs", ["user_id", "active_date", "created_at"], None, "none"),
    _table(
        "analytics_daily",
        [
            "date",
            "new_users_count", "active_users_count", "total_users_count", "admin_users_count",
            "total_albums_count", "new_albums_count", "expired_albums_count",
            "tipping_enabled_albums_count",
            "total_photos_count", "new_photos_count", "public_photos_count", "private_photos_count",
            "total_photo_views", "total_photo_likes", "total_photo_comments",
            "total_bookings_count", "new_bookings_count", "pending_bookings_count",
            "confirmed_bookings_count", "finished_bookings_count", "cancelled_bookings_count",
            "total_poses_count", "new_poses_count", "total_pose_tags_count", "total_pose_views",
        ],
        "date", "string",
    ),
    _table(
        "poses",
        ["id", "image_url", "storage_path", "tags", "view_count", "created_at", "rand_key"],
        "id", "auto",
        json=("tags",),
    ),
    _table("pose_tags", ["id", "name", "usage_count", "sort_order", "created_at"], "id", "auto"),
    _table(
        "albums",
        ["id", "access_key", "title", "root_folder_name", "cover_url", "welcome_letter",
         "recipient_name", "enable_tipping", "enable_welcome_letter", "donation_qr_code_url",
         "expires_at", "created_by", "created_at"],
        "id", "uuid",
        booleans=("enable_tipping", "enable_welcome_letter"),
    ),
    _table("album_folders", ["id", "album_id", "name", "created_at"], "id", "uuid"),
    _table(
        "album_photos",
        ["id", "album_id", "folder_id", "url", "thumbnail_url", "preview_url", "original_url",
         "width", "height", "blurhash", "is_public", "view_count", "like_count", "rating",
         "created_at"],
        "id", "uuid",
        booleans=("is_public",),
    ),
    _table(
        "photo_comments",
        ["id", "photo_id", "user_id", "nickname", "content", "is_admin_reply", "created_at"],
        "id", "auto",
        booleans=("is_admin_reply",),
    ),
    _table("photo_likes", ["id", "user_id", "photo_id", "created_at"], "id", "auto"),
    _table("user_album_bindings", ["id", "user_id", "album_id", "created_at"], "id", "uuid"),
    _table("photo_views", ["id", "photo_id", "user_id", "session_id", "viewed_at"], "id", "uuid"),
    _table(
        "booking_types",
        ["id", "name", "description", "is_active", "created_at", "updated_at"],
        "id", "auto",
        booleans=("is_active",),
    ),
    _table(
        "allowed_cities",
        ["id", "city_name", "province", "city_code", "latitude", "longitude", "is_active",
         "created_at", "updated_at"],
        "id", "auto",
        booleans=("is_active",),
    ),
    _table(
        "bookings",
        ["id", "user_id", "type_id", "booking_date", "time_slot_start", "time_slot_end",
         "location", "latitude", "longitude", "city_name", "phone", "wechat", "notes", "status",
         "created_at", "updated_at"],
        "id", "uuid",
    ),
    _table("booking_blackouts", ["id", "date", "reason", "created_at"], "id", "auto"),
    _table(
        "app_releases",
        ["id", "version", "platform", "download_url", "storage_provider", "storage_file_id",
         "update_log", "force_update", "created_at"],
        "id", "auto",
        booleans=("force_update",),
    ),
    _table(
        "ip_registration_attempts",
        ["id", "ip_address", "attempted_at", "success", "user_agent", "created_at"],
        "id", "uuid",
        booleans=("success",),
    ),
]

_REGISTRY: dict[str, TableMetadata] = {table.name: table for table in _TABLES}


# =============================================================================
# Lookups
# =============================================================================


def get_metadata(table: str) -> TableMetadata:
    """Get metadata for a table. Raises UnknownTable if it is not registered."""
    metadata = _REGISTRY.get(table)
    if metadata is None:
        raise UnknownTable(table)
    return metadata


def is_column_allowed(table: str, column: str) -> bool:
    return get_metadata(table).has_column(column)


def assert_column_allowed(table: str, column: str) -> str:
    """Return the column unchanged, or raise ColumnNotAllowed."""
    if not is_column_allowed(table, column):
        raise ColumnNotAllowed(table, column)
    return column


def allowed_tables() -> list[str]:
    return [table.name for table in _TABLES]


def boolean_columns(table: str) -> frozenset[str]:
    return get_metadata(table).boolean_columns


def json_columns(table: str) -> frozenset[str]:
    return get_metadata(table).json_columns
