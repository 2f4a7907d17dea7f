"""
Supabase client for the catalog store.

One client per process, shared by every row of every import. Call
get_supabase_client.cache_clear() to force a reconnect.
"""

from functools import lru_cache
from typing import Optional

import structlog
from supabase import Client, create_client

from config.settings import settings

logger = structlog.get_logger(__name__)


class DatabaseConnectionError(Exception):
    """Catalog store credentials missing or the client could not be built."""


@lru_cache()
def get_supabase_client() -> Client:
    """
    Shared Supabase client for catalog reads and writes.

    Raises:
        DatabaseConnectionError: SUPABASE_URL/SUPABASE_KEY unset, or
            client creation failed
    """
    if not settings.supabase_configured:
        logger.error("catalog_store_not_configured")
        raise DatabaseConnectionError(
            "SUPABASE_URL and SUPABASE_KEY must be set to use the catalog store"
        )

    # Only the host prefix goes to the log
    logger.info("catalog_store_connecting", url=settings.supabase_url[:30] + "...")
    try:
        client = create_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        logger.error(
            "catalog_store_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise DatabaseConnectionError(f"Failed to connect to Supabase: {e}") from e

    logger.info("catalog_store_connected", table=settings.products_table)
    return client


def get_admin_client() -> Optional[Client]:
    """Service-role client for catalog maintenance, or None without SUPABASE_SERVICE_KEY."""
    if not settings.supabase_url or not settings.supabase_service_key:
        logger.warning("admin_client_not_configured")
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_service_key)
    except Exception as e:
        logger.error("admin_client_failed", error=str(e))
        return None


def check_connection() -> dict:
    """
    Probe the catalog table.

    Returns:
        {"status": "healthy", "products_count": n} or
        {"status": "unhealthy", "error": message}
    """
    try:
        client = get_supabase_client()
        result = (
            client.table(settings.products_table)
            .select("id", count="exact")
            .execute()
        )
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}

    return {"status": "healthy", "products_count": result.count}

