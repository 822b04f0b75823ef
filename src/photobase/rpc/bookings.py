"""
Photobase - Booking procedures.

Booking creation validates every candidate row before anything is written:
shape checks first (required fields, phone, date window, duplicates within
the batch), then four independent store checks per row run concurrently.
Only a batch where every row passes is inserted.

The checks and the insert are separate statements. A racing booking can
slip in between them; this is accepted, not guarded against.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any

from photobase.config import settings
from photobase.db import executor
from photobase.errors import BookingConflict, PhotobaseError, ValidationError
from photobase.identity import CallerIdentity
from photobase.query.engine import run_insert
from photobase.query.models import QueryRequest
from photobase.rpc.common import text_arg
from photobase.rpc.registry import procedure, require_user
from photobase.tools.normalize import (
    city_matches,
    is_valid_china_mobile,
    normalize_china_mobile,
    parse_booking_date,
    today,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("type_id", "booking_date", "location", "city_name", "phone")
OPTIONAL_FIELDS = ("time_slot_start", "time_slot_end", "latitude", "longitude", "wechat", "notes")

ACTIVE_STATUS_SQL = "('pending', 'confirmed', 'in_progress')"


# =============================================================================
# Availability
# =============================================================================


@procedure("check_date_availability", access="public")
async def check_date_availability(args: dict[str, Any], identity: CallerIdentity) -> bool:
    """False when the date is blacked out or already has an active booking."""
    target = parse_booking_date(text_arg(args, "target_date"))
    if target is None:
        return False
    params = {"target_date": target.isoformat()}

    blackout, booked = await asyncio.gather(
        executor.execute_sql(
            "SELECT id FROM booking_blackouts WHERE date = {{target_date}} LIMIT 1", params
        ),
        executor.execute_sql(
            f"SELECT id FROM bookings WHERE booking_date = {{{{target_date}}}} "
            f"AND status IN {ACTIVE_STATUS_SQL} LIMIT 1",
            params,
        ),
    )
    return not blackout.rows and not booked.rows


# =============================================================================
# Shape validation
# =============================================================================


def _candidate_rows(args: dict[str, Any]) -> list[dict[str, Any]]:
    if isinstance(args.get("bookings"), list):
        rows = args["bookings"]
    elif isinstance(args.get("booking"), dict):
        rows = [args["booking"]]
    else:
        rows = []

    if not rows:
        raise ValidationError("At least one booking is required")
    if not all(isinstance(row, dict) for row in rows):
        raise ValidationError("Each booking must be an object")
    return rows


def validate_booking_shape(raw: dict[str, Any], identity: CallerIdentity, position: int) -> dict[str, Any]:
    """
    Check one candidate row and return the record to insert.

    Users always book for themselves; admins must name the user.
    """
    label = f"Booking #{position + 1}"
    row: dict[str, Any] = {}

    for field in REQUIRED_FIELDS:
        value = raw.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{label}: missing required field {field}")
        row[field] = value.strip() if isinstance(value, str) else value

    if identity.is_privileged:
        user_id = str(raw.get("user_id") or "").strip()
        if not user_id:
            raise ValidationError(f"{label}: missing required field user_id")
        row["user_id"] = user_id
    else:
        row["user_id"] = require_user(identity)

    if not is_valid_china_mobile(row["phone"]):
        raise ValidationError(f"{label}: invalid mobile number")
    row["phone"] = normalize_china_mobile(row["phone"])

    booking_date = parse_booking_date(row["booking_date"])
    if booking_date is None:
        raise ValidationError(f"{label}: booking_date must be YYYY-MM-DD")
    first_day = today()
    last_day = first_day + timedelta(days=settings.booking_max_advance_days)
    if booking_date < first_day:
        raise ValidationError(f"{label}: booking_date is in the past")
    if booking_date > last_day:
        raise ValidationError(
            f"{label}: booking_date is more than {settings.booking_max_advance_days} days ahead"
        )
    row["booking_date"] = booking_date.isoformat()

    for field in OPTIONAL_FIELDS:
        if raw.get(field) not in (None, ""):
            row[field] = raw[field]

    row["status"] = "pending"
    return row


def reject_batch_duplicates(rows: list[dict[str, Any]]) -> None:
    dates = [row["booking_date"] for row in rows]
    if len(set(dates)) != len(dates):
        raise ValidationError("The same date appears more than once in this request")
    users = [row["user_id"] for row in rows]
    if len(set(users)) != len(users):
        raise ValidationError("The same user appears more than once in this request")


# =============================================================================
# Store checks
# =============================================================================


async def _check_type(row: dict[str, Any]) -> PhotobaseError | None:
    result = await executor.execute_sql(
        "SELECT id FROM booking_types WHERE id = {{type_id}} AND is_active = 1 LIMIT 1",
        {"type_id": row["type_id"]},
    )
    if not result.rows:
        return ValidationError("Booking type does not exist or is no longer available")
    return None


async def _check_city(row: dict[str, Any]) -> PhotobaseError | None:
    result = await executor.execute_sql("SELECT city_name FROM allowed_cities WHERE is_active = 1")
    if any(city_matches(row["city_name"], allowed.get("city_name")) for allowed in result.rows):
        return None
    return ValidationError(f"Bookings are not available in {row['city_name']}")


async def _check_blackout(row: dict[str, Any]) -> PhotobaseError | None:
    result = await executor.execute_sql(
        "SELECT id FROM booking_blackouts WHERE date = {{booking_date}} LIMIT 1",
        {"booking_date": row["booking_date"]},
    )
    if result.rows:
        return BookingConflict(f"{row['booking_date']} is not available for booking")
    return None


async def _check_conflict(row: dict[str, Any]) -> PhotobaseError | None:
    result = await executor.execute_sql(
        f"""
            SELECT id, user_id, booking_date
            FROM bookings
            WHERE status IN {ACTIVE_STATUS_SQL}
              AND (booking_date = {{{{booking_date}}}} OR user_id = {{{{user_id}}}})
            LIMIT 1
        """,
        {"booking_date": row["booking_date"], "user_id": row["user_id"]},
    )
    if not result.rows:
        return None
    existing = result.rows[0]
    if str(existing.get("booking_date", ""))[:10] == row["booking_date"]:
        return BookingConflict(f"{row['booking_date']} is already booked")
    return BookingConflict("This user already has an active booking")


async def check_booking(row: dict[str, Any]) -> None:
    """Run the four checks concurrently; raise the first failure in check order."""
    failures = await asyncio.gather(
        _check_type(row),
        _check_city(row),
        _check_blackout(row),
        _check_conflict(row),
    )
    for failure in failures:
        if failure is not None:
            raise failure


# =============================================================================
# Creation
# =============================================================================


@procedure("create_bookings", access="user")
async def create_bookings(args: dict[str, Any], identity: CallerIdentity) -> list[dict[str, Any]]:
    """
    Validate and insert one or more bookings (`bookings` list or `booking` object).

    Returns:
        The inserted rows, read back by primary key

    Raises:
        ValidationError: malformed row, or type / city not allowed
        BookingConflict: date blacked out or already taken, or user already booked
    """
    rows = [
        validate_booking_shape(raw, identity, position)
        for position, raw in enumerate(_candidate_rows(args))
    ]
    reject_batch_duplicates(rows)

    for row in rows:
        await check_booking(row)

    result = await run_insert(
        QueryRequest(table="bookings", action="insert", values=rows, return_written_rows=True)
    )
    logger.info(f"Created {len(rows)} bookings for {', '.join(row['user_id'] for row in rows)}")
    return result.data or []
