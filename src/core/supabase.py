"""Supabase client singleton for job storage."""

from functools import lru_cache

from supabase import Client, create_client

from src.core.config import get_settings

PRINT_JOBS_TABLE = "print_jobs"
PRINTNODE_EVENTS_TABLE = "printnode_events"


@lru_cache
def get_supabase_client() -> Client:
    """Get cached Supabase client singleton for database operations.

    Uses the secret key, which bypasses RLS. Only server-side code that has
    already authenticated the caller (webhook secret, cron token) touches it.

    Returns:
        Client: Supabase client instance.
    """
    settings = get_settings()
    return create_client(
        settings.supabase_url,
        settings.supabase_secret_key,
    )

