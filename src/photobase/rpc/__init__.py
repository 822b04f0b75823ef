"""
Photobase - RPC procedures.

Importing this package registers the whole catalog.
"""

from photobase.rpc.registry import (
    PROCEDURE_ACCESS,
    PROCEDURES,
    call_procedure,
    execute_rpc,
    procedure,
    procedure_names,
    require_admin,
    require_user,
)

# Procedure modules register themselves on import
from photobase.rpc import activity, admin, albums, bookings, counters, poses  # noqa: E402,F401

__all__ = [
    "PROCEDURE_ACCESS",
    "PROCEDURES",
    "call_procedure",
    "execute_rpc",
    "procedure",
    "procedure_names",
    "require_admin",
    "require_user",
]
