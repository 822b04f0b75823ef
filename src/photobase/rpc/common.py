"""
Photobase - Shared helpers for RPC procedures.
"""

from typing import Any

from photobase.config import settings
from photobase.errors import PermissionDenied, ValidationError


def effective_expiry_sql(alias: str = "") -> str:
    """Album expiry: explicit expires_at, else created_at plus the default TTL."""
    prefix = f"{alias}." if alias else ""
    ttl_days = int(settings.album_default_ttl_days)
    return f"COALESCE({prefix}expires_at, DATE_ADD({prefix}created_at, INTERVAL {ttl_days} DAY))"


def text_arg(args: dict[str, Any], key: str) -> str:
    value = args.get(key)
    return str(value).strip() if value is not None else ""


def required_text_arg(args: dict[str, Any], key: str) -> str:
    value = text_arg(args, key)
    if not value:
        raise ValidationError(f"Missing required argument: {key}")
    return value


def access_key_arg(args: dict[str, Any], key: str) -> str:
    """Album access keys are case-insensitive; stored upper-case."""
    value = text_arg(args, key).upper()
    if not value:
        raise PermissionDenied("Invalid access key")
    return value


def in_clause(prefix: str, values: list[Any], params: dict[str, Any]) -> str:
    """Add one named placeholder per value to `params` and return the IN list body."""
    placeholders = []
    for index, value in enumerate(values):
        key = f"{prefix}_{index}"
        params[key] = value
        placeholders.append("{{" + key + "}}")
    return ", ".join(placeholders)
