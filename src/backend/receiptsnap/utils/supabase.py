from typing import Optional

from supabase import create_client, Client, ClientOptions
from receiptsnap.config import settings


def _client_options(
    timeout: Optional[float] = None,
    access_token: Optional[str] = None
) -> ClientOptions:
    """Client options with explicit table and storage timeouts."""
    timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS
    options = ClientOptions(
        postgrest_client_timeout=timeout,
        storage_client_timeout=int(timeout),
    )
    if access_token:
        # Table and storage requests run as the signed-in user (RLS applies)
        options.headers["Authorization"] = f"Bearer {access_token}"
    return options


def get_supabase_client(timeout: Optional[float] = None) -> Client:
    """
    Create and return a Supabase client instance.
    Uses service role key for admin operations (scripts, orphan sweep).
    """
    supabase: Client = create_client(
        settings.SUPABASE_URL,
        settings.SUPABASE_SERVICE_KEY,
        options=_client_options(timeout)
    )
    return supabase


def get_supabase_anon_client(
    access_token: Optional[str] = None,
    timeout: Optional[float] = None
) -> Client:
    """
    Create and return a Supabase client with anon key.
    Use for user-facing operations with RLS.
    """
    supabase: Client = create_client(
        settings.SUPABASE_URL,
        settings.SUPABASE_KEY,
        options=_client_options(timeout, access_token)
    )
    return supabase
