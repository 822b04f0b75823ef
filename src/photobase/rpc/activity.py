"""
Photobase - User activity procedures.
"""

from typing import Any

from photobase.db import executor
from photobase.identity import CallerIdentity
from photobase.rpc.registry import procedure, require_user


@procedure("log_user_activity", access="user")
async def log_user_activity(args: dict[str, Any], identity: CallerIdentity) -> None:
    """Mark the caller active today. One row per (user, day); repeats are ignored."""
    user_id = require_user(identity)
    params = {"user_id": user_id}

    await executor.execute_sql(
        """
            INSERT IGNORE INTO user_active_logs (user_id, active_date, created_at)
            VALUES ({{user_id}}, CURRENT_DATE(), NOW())
        """,
        params,
    )
    await executor.execute_sql(
        "UPDATE profiles SET last_active_at = NOW() WHERE id = {{user_id}}",
        params,
    )
    return None
