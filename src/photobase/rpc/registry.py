"""
Photobase - RPC Dispatcher.

Closed catalog of named procedures. Each procedure is registered with the
@procedure decorator and receives (args, identity). Calling a name that is
not in the catalog is an error, never a fallthrough.

Every procedure declares who may call it: "public" (anyone, including
guests; keyed procedures check their access key themselves), "user" (a
signed-in caller) or "admin". Dispatch applies that check before the
procedure runs. The structured-query permission rules do not apply here.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Literal

from photobase.errors import (
    PermissionDenied,
    PhotobaseError,
    Unauthorized,
    UnknownProcedure,
    normalize_error,
)
from photobase.identity import CallerIdentity, get_request_identity
from photobase.query.models import ExecutionResult

logger = logging.getLogger(__name__)

ProcedureHandler = Callable[[dict[str, Any], CallerIdentity], Awaitable[Any]]

Access = Literal["public", "user", "admin"]

PROCEDURES: dict[str, ProcedureHandler] = {}
PROCEDURE_ACCESS: dict[str, Access] = {}


def procedure(name: str, access: Access) -> Callable[[ProcedureHandler], ProcedureHandler]:
    """Register a coroutine under `name` in the catalog, callable by `access`."""
    if access not in ("public", "user", "admin"):
        raise ValueError(f"Unknown access level for {name}: {access}")

    def register(handler: ProcedureHandler) -> ProcedureHandler:
        if name in PROCEDURES:
            raise ValueError(f"Procedure already registered: {name}")
        PROCEDURES[name] = handler
        PROCEDURE_ACCESS[name] = access
        return handler

    return register


def procedure_names() -> list[str]:
    return sorted(PROCEDURES)


# =============================================================================
# Identity checks
# =============================================================================


def require_user(identity: CallerIdentity) -> str:
    """Return the caller's user id, or raise Unauthorized."""
    if not identity.user_id:
        raise Unauthorized()
    return identity.user_id


def require_admin(identity: CallerIdentity) -> None:
    if not identity.is_privileged:
        raise PermissionDenied("Only administrators can perform this operation")


def check_access(access: Access, identity: CallerIdentity) -> None:
    if access == "user":
        require_user(identity)
    elif access == "admin":
        require_admin(identity)


# =============================================================================
# Dispatch
# =============================================================================


async def call_procedure(
    name: str,
    args: dict[str, Any] | None,
    identity: CallerIdentity,
) -> Any:
    """Run a procedure and return its data. Raises on failure."""
    handler = PROCEDURES.get(name)
    if handler is None:
        raise UnknownProcedure(name)
    check_access(PROCEDURE_ACCESS[name], identity)
    return await handler(dict(args or {}), identity)


async def execute_rpc(
    name: str,
    args: dict[str, Any] | None = None,
    identity: CallerIdentity | None = None,
) -> ExecutionResult:
    """
    Outer dispatch for RPC calls.

    Never raises: failures become ExecutionResult(data=None, error=...).
    """
    identity = identity or get_request_identity()

    try:
        data = await call_procedure(name, args, identity)
        return ExecutionResult(data=data)
    except PhotobaseError as e:
        logger.info(f"RPC {name} failed ({e.code}): {e.message}")
        return ExecutionResult(data=None, error=normalize_error(e, f"RPC {name} failed"))
    except Exception as e:
        logger.exception(f"Unexpected error in RPC {name}")
        return ExecutionResult(data=None, error=normalize_error(e, f"RPC {name} failed"))
