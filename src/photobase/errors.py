"""
Photobase - Error taxonomy.

Every failure surfaced by the query and RPC pipelines is one of these, and
every exception is reduced to an ErrorInfo {message, code} at the outer
dispatch layer so callers have a single error-checking pattern.
"""

import re
from typing import Any

from pydantic import BaseModel

# Stable code for duplicate-key violations, whatever the store reports natively
DUPLICATE_KEY_CODE = "23505"

_DUPLICATE_NATIVE_CODES = {"ER_DUP_ENTRY", "1062"}
_DUPLICATE_MESSAGE = re.compile(r"duplicate entry", re.IGNORECASE)


class ErrorInfo(BaseModel):
    """Normalized error pair returned to application code."""

    message: str
    code: str | None = None


class PhotobaseError(Exception):
    """Base class for all pipeline errors."""

    code: str = "PHOTOBASE_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


# =============================================================================
# Programming errors (request referenced something outside the allow-list)
# =============================================================================


class UnknownTable(PhotobaseError):
    code = "UNKNOWN_TABLE"

    def __init__(self, table: str):
        super().__init__(f"Table is not accessible: {table}")
        self.table = table


class ColumnNotAllowed(PhotobaseError):
    code = "COLUMN_NOT_ALLOWED"

    def __init__(self, table: str, column: str):
        super().__init__(f"Column is not accessible: {table}.{column}")
        self.table = table
        self.column = column


class InvalidIdentifier(PhotobaseError):
    code = "INVALID_IDENTIFIER"

    def __init__(self, identifier: str):
        super().__init__(f"Invalid SQL identifier: {identifier!r}")
        self.identifier = identifier


class UnknownProcedure(PhotobaseError):
    code = "UNKNOWN_PROCEDURE"

    def __init__(self, name: str):
        super().__init__(f"RPC is not implemented: {name}")
        self.name = name


# =============================================================================
# Authorization
# =============================================================================


class Unauthorized(PhotobaseError):
    """Caller must be signed in for this operation."""

    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized: please sign in first"):
        super().__init__(message)


class PermissionDenied(PhotobaseError):
    """Caller is signed in (or anonymous) but the rule forbids the operation."""

    code = "PERMISSION_DENIED"

    def __init__(self, message: str = "Operation not permitted"):
        super().__init__(message)


# =============================================================================
# Validation
# =============================================================================


class ValidationError(PhotobaseError):
    code = "VALIDATION_ERROR"


class MissingWhereClause(ValidationError):
    code = "MISSING_WHERE_CLAUSE"

    def __init__(self, action: str):
        super().__init__(f"{action.capitalize()} requires at least one filter")
        self.action = action


class EmptyInsertPayload(ValidationError):
    code = "EMPTY_INSERT_PAYLOAD"

    def __init__(self, message: str = "Insert payload must not be empty"):
        super().__init__(message)


class EmptySetClause(ValidationError):
    code = "EMPTY_SET_CLAUSE"

    def __init__(self, message: str = "Update payload must set at least one column"):
        super().__init__(message)


class BookingConflict(ValidationError):
    """Requested booking date or user collides with existing state."""

    code = "BOOKING_CONFLICT"


# =============================================================================
# Backing store
# =============================================================================


class StoreError(PhotobaseError):
    """Any failure reported by the backing store."""

    code = "STORE_ERROR"

    def __init__(self, message: str, code: str | None = None, errno: int | None = None):
        if errno == 1062 or code in _DUPLICATE_NATIVE_CODES or _DUPLICATE_MESSAGE.search(message or ""):
            code = DUPLICATE_KEY_CODE
        elif code is None and errno is not None:
            code = str(errno)
        super().__init__(message, code)
        self.errno = errno

    @property
    def is_duplicate_key(self) -> bool:
        return self.code == DUPLICATE_KEY_CODE


class TransientStoreError(StoreError):
    """Transport-level failure (timeout, reset, gateway). Safe to retry."""

    code = "TRANSIENT_STORE_ERROR"

    def __init__(self, message: str):
        super().__init__(message, code=self.code)


# =============================================================================
# Normalization
# =============================================================================


def normalize_error(error: Any, fallback: str) -> ErrorInfo:
    """
    Reduce any exception (or error-like object) to an ErrorInfo.

    Duplicate-key failures always normalize to DUPLICATE_KEY_CODE regardless
    of how the store phrased them.
    """
    if isinstance(error, PhotobaseError):
        return ErrorInfo(message=error.message or fallback, code=error.code)

    if isinstance(error, BaseException):
        message = str(error) or fallback
        code = getattr(error, "code", None)
        errno = getattr(error, "errno", None)
    elif isinstance(error, dict):
        raw_message = error.get("message")
        message = raw_message if isinstance(raw_message, str) and raw_message.strip() else fallback
        code = error.get("code")
        errno = error.get("errno")
    else:
        return ErrorInfo(message=fallback)

    if errno == 1062 or str(code) in _DUPLICATE_NATIVE_CODES or _DUPLICATE_MESSAGE.search(message):
        return ErrorInfo(message=message, code=DUPLICATE_KEY_CODE)
    if isinstance(code, str) and code.strip():
        return ErrorInfo(message=message, code=code)
    if isinstance(code, int):
        return ErrorInfo(message=message, code=str(code))
    if isinstance(errno, int):
        return ErrorInfo(message=message, code=str(errno))
    return ErrorInfo(message=message)
