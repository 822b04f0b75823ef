"""
Photobase - Supabase service client.

Used for asset storage and bearer-token validation only. Table data lives
behind the SQL channel, not in Supabase.
"""

from supabase import Client, create_client

from photobase.config import settings

# Singleton client instance
_client: Client | None = None


def get_service_client() -> Client:
    """
    Get the Supabase client authenticated with the service role key.

    Uses singleton pattern to reuse connection.
    """
    global _client

    if _client is None:
        if not settings.supabase_url or not settings.supabase_service_role_key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be configured")
        _client = create_client(
            settings.supabase_url,
            settings.supabase_service_role_key,
        )

    return _client
