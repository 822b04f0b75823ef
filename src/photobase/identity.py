"""
Photobase - Caller identity.

The auth collaborator resolves every request to a CallerIdentity. The core
never issues sessions itself; it only reads the role and the user.

A context variable carries the identity through a request so helpers deep
in the call chain can read it without threading it through every function.
"""

from contextvars import ContextVar
from typing import Literal

from pydantic import BaseModel, ConfigDict

Role = Literal["guest", "user", "admin", "system"]

PRIVILEGED_ROLES: frozenset[str] = frozenset({"admin", "system"})


class AuthUser(BaseModel):
    """Authenticated user as resolved by the auth collaborator."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str | None = None
    phone: str | None = None
    name: str | None = None


class CallerIdentity(BaseModel):
    """Resolved role plus optional user. Immutable for the whole request."""

    model_config = ConfigDict(frozen=True)

    role: Role = "guest"
    user: AuthUser | None = None

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES

    @property
    def user_id(self) -> str | None:
        return self.user.id if self.user else None

    @classmethod
    def guest(cls) -> "CallerIdentity":
        return cls(role="guest")

    @classmethod
    def for_user(cls, user_id: str, email: str | None = None, phone: str | None = None) -> "CallerIdentity":
        return cls(role="user", user=AuthUser(id=user_id, email=email, phone=phone))

    @classmethod
    def system(cls) -> "CallerIdentity":
        """Identity used by scheduled jobs (maintenance, analytics snapshot)."""
        return cls(role="system", user=AuthUser(id="system", email="system@photobase.local", name="system"))


# Context variable for the current request's identity
_identity: ContextVar[CallerIdentity | None] = ContextVar("caller_identity", default=None)


def set_request_identity(identity: CallerIdentity) -> None:
    """
    Set the caller identity for the current request.

    Call this at the start of request handling.
    """
    _identity.set(identity)


def get_request_identity() -> CallerIdentity:
    """Get the current request's identity (guest when none was set)."""
    return _identity.get() or CallerIdentity.guest()


def clear_request_identity() -> None:
    """Clear the request identity (call at end of request)."""
    _identity.set(None)
