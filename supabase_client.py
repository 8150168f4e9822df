# 📦 supabase_client.py

import os

import structlog
from supabase import Client, create_client

log = structlog.get_logger()

def build_client() -> Client | None:
    """Create the shared Supabase client from SUPABASE_URL / SUPABASE_KEY."""
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_KEY")
    if not url or not key:
        log.warning("SUPABASE_URL or SUPABASE_KEY not set, data store disabled")
        return None
    return create_client(url, key)

supabase: Client | None = build_client()
