"""
Photobase - Permission Enforcer.

Row-level security emulated in code. Each table maps to a TableRule whose
per-action ActionRule descriptors say which filters are forced, which
payload fields are overwritten, and which columns a write may touch.

Invariants:
- admin / system callers pass through unchanged
- rewriting only ever ADDS filters or forced values; caller filters are kept
- tables without a rule are rejected (fail-closed)
- the input request is never mutated; a new request is returned
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from photobase.db.metadata import assert_column_allowed
from photobase.errors import PermissionDenied, Unauthorized
from photobase.identity import CallerIdentity
from photobase.query.models import Filter, QueryRequest

logger = logging.getLogger(__name__)

FilterFactory = Callable[[CallerIdentity], Filter]


@dataclass(frozen=True)
class ActionRule:
    """
    What a non-privileged caller may do with one action on one table.

    Attributes:
        filters: Factories for filters AND-ed onto the request
        owner_column: Payload column overwritten with the caller's id
        forced_values: Payload columns overwritten with fixed values
        writable_columns: If set, the payload may only touch these columns
        allowed_values: Per-column whitelist of values the payload may carry
    """

    filters: tuple[FilterFactory, ...] = ()
    owner_column: str | None = None
    forced_values: Mapping[str, Any] = field(default_factory=dict)
    writable_columns: frozenset[str] | None = None
    allowed_values: Mapping[str, frozenset[Any]] = field(default_factory=dict)


@dataclass(frozen=True)
class TableRule:
    actions: Mapping[str, ActionRule] = field(default_factory=dict)
    requires_auth: bool = False
    rpc_only: str | None = None  # Name of the procedure to use instead


# =============================================================================
# Filter factories
# =============================================================================


def fixed(column: str, operator: str, value: Any) -> FilterFactory:
    """Filter that does not depend on the caller."""

    def build(identity: CallerIdentity) -> Filter:
        return Filter(column=column, operator=operator, value=value)

    return build


def owned_by_caller(column: str) -> FilterFactory:
    """`column = caller.id`."""

    def build(identity: CallerIdentity) -> Filter:
        return Filter(column=column, operator="eq", value=identity.user_id)

    return build


def not_before_today(column: str) -> FilterFactory:
    """`column >= today`, evaluated when the request is enforced."""

    def build(identity: CallerIdentity) -> Filter:
        return Filter(column=column, operator="gte", value=date.today().isoformat())

    return build


# =============================================================================
# Rule table
# =============================================================================

SELECT_ONLY = {"select": ActionRule()}
ACTIVE_ONLY = {"select": ActionRule(filters=(fixed("is_active", "eq", 1),))}

MUTABLE_BOOKING_STATUSES = ["pending", "confirmed"]
CLOSED_BOOKING_STATUSES = ["finished", "cancelled"]

TABLE_RULES: dict[str, TableRule] = {
    # Read-only public data
    "poses": TableRule(actions=SELECT_ONLY),
    "pose_tags": TableRule(actions=SELECT_ONLY),
    "booking_blackouts": TableRule(actions=SELECT_ONLY),
    "app_releases": TableRule(actions=SELECT_ONLY),
    "about_settings": TableRule(actions=SELECT_ONLY),
    "booking_types": TableRule(actions=ACTIVE_ONLY),
    "allowed_cities": TableRule(actions=ACTIVE_ONLY),
    # Visibility-filtered shared data
    "album_photos": TableRule(
        actions={"select": ActionRule(filters=(fixed("is_public", "eq", 1),))},
    ),
    # Owner-scoped data
    "profiles": TableRule(
        requires_auth=True,
        actions={
            "select": ActionRule(filters=(owned_by_caller("id"),)),
            "update": ActionRule(
                filters=(owned_by_caller("id"),),
                writable_columns=frozenset({"name", "avatar", "phone", "wechat", "payment_qr_code"}),
            ),
        },
    ),
    "bookings": TableRule(
        requires_auth=True,
        actions={
            "select": ActionRule(filters=(owned_by_caller("user_id"),)),
            "insert": ActionRule(owner_column="user_id", forced_values={"status": "pending"}),
            "update": ActionRule(
                filters=(
                    owned_by_caller("user_id"),
                    fixed("status", "in", MUTABLE_BOOKING_STATUSES),
                    not_before_today("booking_date"),
                ),
                writable_columns=frozenset({"status"}),
                allowed_values={"status": frozenset({"cancelled"})},
            ),
            "delete": ActionRule(
                filters=(
                    owned_by_caller("user_id"),
                    fixed("status", "in", CLOSED_BOOKING_STATUSES),
                ),
            ),
        },
    ),
    # Managed exclusively through RPC
    "photo_likes": TableRule(rpc_only="like_photo"),
    "photo_views": TableRule(rpc_only="increment_photo_view"),
    "user_album_bindings": TableRule(rpc_only="bind_user_to_album"),
    "user_active_logs": TableRule(rpc_only="log_user_activity"),
    "analytics_daily": TableRule(rpc_only="get_admin_dashboard_stats"),
}


# =============================================================================
# Enforcement
# =============================================================================


def _check_payload(table: str, rule: ActionRule, rows: list[dict[str, Any]]) -> None:
    for row in rows:
        if rule.writable_columns is not None:
            extra = sorted(set(row) - rule.writable_columns)
            if extra:
                raise PermissionDenied(f"Not permitted to modify {table}: {', '.join(extra)}")
        for column, allowed in rule.allowed_values.items():
            if column in row and row[column] not in allowed:
                raise PermissionDenied(f"Not permitted to set {table}.{column} to {row[column]!r}")


def _apply_forced_values(
    rule: ActionRule,
    values: dict[str, Any] | list[dict[str, Any]] | None,
    identity: CallerIdentity,
) -> dict[str, Any] | list[dict[str, Any]] | None:
    """Overwrite owner / forced columns, ignoring whatever the client sent."""
    if values is None:
        return None

    forced = dict(rule.forced_values)
    if rule.owner_column:
        forced[rule.owner_column] = identity.user_id
    if not forced:
        return values

    if isinstance(values, list):
        return [{**row, **forced} for row in values]
    return {**values, **forced}


def enforce(request: QueryRequest, identity: CallerIdentity) -> QueryRequest:
    """
    Rewrite a request so it only touches what the caller's role allows.

    Returns:
        A new QueryRequest (deep copy) with forced filters / values applied

    Raises:
        Unauthorized: table requires a signed-in caller and there is none
        PermissionDenied: action, payload or table not allowed for the caller
    """
    scoped = request.model_copy(deep=True)

    if identity.is_privileged:
        return scoped

    table_rule = TABLE_RULES.get(scoped.table)
    if table_rule is None:
        logger.info(f"Denied {scoped.action} on {scoped.table}: no rule (role={identity.role})")
        raise PermissionDenied()

    if table_rule.rpc_only:
        raise PermissionDenied(
            f"Direct access to {scoped.table} is not allowed; use RPC '{table_rule.rpc_only}'"
        )

    if table_rule.requires_auth and identity.user is None:
        raise Unauthorized()

    rule = table_rule.actions.get(scoped.action)
    if rule is None:
        logger.info(f"Denied {scoped.action} on {scoped.table} (role={identity.role})")
        raise PermissionDenied()

    if scoped.action in ("insert", "update"):
        _check_payload(scoped.table, rule, scoped.value_rows())

    forced_filters = [factory(identity) for factory in rule.filters]
    for f in forced_filters:
        assert_column_allowed(scoped.table, f.column)

    return scoped.model_copy(
        update={
            "filters": [*scoped.filters, *forced_filters],
            "values": _apply_forced_values(rule, scoped.values, identity),
        }
    )
