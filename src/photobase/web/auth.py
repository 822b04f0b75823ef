"""
Authentication utilities for FastAPI routes.

Resolves the bearer token on each request to a CallerIdentity. Tokens are
validated against Supabase Auth; the core never issues sessions itself.
"""

import hmac
import logging
from collections.abc import AsyncIterator

from fastapi import Header, HTTPException

from photobase.config import settings
from photobase.db.service import get_service_client
from photobase.identity import (
    AuthUser,
    CallerIdentity,
    clear_request_identity,
    set_request_identity,
)

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[7:].strip()  # Remove "Bearer " prefix
    return token or None


def identity_from_token(access_token: str) -> CallerIdentity:
    """
    Validate a Supabase JWT and map it to an identity.

    `app_metadata.role == "admin"` makes the caller an admin; any other valid
    token is a plain user. Invalid or expired tokens resolve to guest.
    """
    try:
        client = get_service_client()
        user_response = client.auth.get_user(access_token)
    except Exception as e:
        logger.warning(f"Auth validation failed: {e}")
        return CallerIdentity.guest()

    if not user_response or not user_response.user:
        return CallerIdentity.guest()

    user = user_response.user
    app_metadata = getattr(user, "app_metadata", None) or {}
    user_metadata = getattr(user, "user_metadata", None) or {}

    return CallerIdentity(
        role=ADMIN_ROLE if app_metadata.get("role") == ADMIN_ROLE else "user",
        user=AuthUser(
            id=str(user.id),
            email=getattr(user, "email", None),
            phone=getattr(user, "phone", None) or None,
            name=user_metadata.get("name"),
        ),
    )


async def get_caller_identity(authorization: str = Header(None)) -> AsyncIterator[CallerIdentity]:
    """
    FastAPI dependency: resolve the caller and publish it for the request.

    No Authorization header means guest.
    """
    token = _bearer_token(authorization)
    identity = identity_from_token(token) if token else CallerIdentity.guest()

    set_request_identity(identity)
    try:
        yield identity
    finally:
        clear_request_identity()


async def require_cron_secret(authorization: str = Header(None)) -> None:
    """FastAPI dependency: `Authorization: Bearer <CRON_SECRET>` or 401."""
    if not settings.cron_secret:
        logger.error("CRON_SECRET is not configured")
        raise HTTPException(status_code=500, detail="Server configuration error")

    token = _bearer_token(authorization)
    if not token or not hmac.compare_digest(token, settings.cron_secret):
        logger.warning("Rejected cron request with missing or invalid secret")
        raise HTTPException(status_code=401, detail="Unauthorized")
