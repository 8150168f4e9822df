import time

import structlog

log = structlog.get_logger()

class MatchStoreError(Exception):
    """A read or write against the data store failed."""

def require_client(client):
    if client is None:
        raise MatchStoreError("Supabase client is not configured")
    return client

def insert_with_retry(table, data, retries=3, delay=1):
    last_error = None
    for attempt in range(retries):
        try:
            return table.insert(data).execute()
        except Exception as e:
            last_error = e
            log.warning("Supabase insert failed", attempt=attempt + 1, error=str(e))
        if attempt < retries - 1:
            time.sleep(delay * (2 ** attempt))  # Exponential backoff
    raise MatchStoreError("Supabase insert failed after retries") from last_error
