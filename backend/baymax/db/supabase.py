"""
Supabase Client
===============
Thin wrapper that provides a configured Supabase client for the
services and routers.

Uses the service_role key because the aggregator writes analytics rows
on behalf of sessions that no signed-in user owns at write time. RLS
still protects direct access from the dashboard.
"""

from functools import lru_cache

from supabase import Client, create_client

from baymax.config import get_settings


@lru_cache
def get_supabase_client() -> Client:
    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_service_key)
