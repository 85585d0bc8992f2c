"""Supabase client wrappers with async context manager support."""

import os
from typing import Optional
from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions
from src.utils.engine_config import EngineConfig
from src.utils.errors import SupabaseError, QueryFailedError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

# Global client instances (singleton pattern)
_client: Optional[AsyncClient] = None
_secondary_client: Optional[AsyncClient] = None


def _client_options() -> AsyncClientOptions:
    # Read-only server usage, no auth session
    return AsyncClientOptions(
        auto_refresh_token=False,
        persist_session=False,
    )


async def get_supabase_client() -> AsyncClient:
    """Get or create the primary Supabase client singleton."""
    global _client

    if _client is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

        if not url or not key:
            raise SupabaseError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        _client = await acreate_client(url, key, _client_options())
        logger.info("Supabase client initialized", url=url)

    return _client


def is_secondary_configured() -> bool:
    """Whether the secondary brokerage feed project is configured."""
    return bool(os.environ.get("SECONDARY_SUPABASE_URL") and os.environ.get("SECONDARY_SUPABASE_KEY"))


async def get_secondary_client() -> Optional[AsyncClient]:
    """Get or create the secondary feed client, or None when not configured."""
    global _secondary_client

    if _secondary_client is None:
        if not is_secondary_configured():
            return None
        url = os.environ["SECONDARY_SUPABASE_URL"]
        key = os.environ["SECONDARY_SUPABASE_KEY"]
        _secondary_client = await acreate_client(url, key, _client_options())
        logger.info("Secondary Supabase client initialized", url=url)

    return _secondary_client


class SupabaseClient:
    """Async context manager for the primary Supabase client."""

    def __init__(self):
        self.client: Optional[AsyncClient] = None

    async def __aenter__(self) -> AsyncClient:
        self.client = await get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                error=str(exc_val),
                type=exc_type.__name__
            )
        return False


# Content tables (CMS-authored documents mirrored into Supabase)
async def get_mls_configuration_row() -> Optional[dict]:
    """Get the current MLS configuration document."""
    async with SupabaseClient() as client:
        try:
            result = await (
                client.table(EngineConfig.MLS_CONFIG_TABLE)
                .select("excludedPropertyTypes, excludedPropertySubTypes, allowedCities, excludedStatuses")
                .order("updated_at", desc=True)
                .limit(1)
                .execute()
            )
            return result.data[0] if result.data else None
        except Exception as e:
            raise QueryFailedError("get_mls_configuration", str(e)) from e


async def get_active_team_members() -> list[dict]:
    """Get roster entries that are active and carry an MLS agent id."""
    async with SupabaseClient() as client:
        try:
            result = await (
                client.table(EngineConfig.TEAM_MEMBERS_TABLE)
                .select("name, mls_agent_id, mls_agent_id_sold, inactive")
                .not_.is_("mls_agent_id", "null")
                .or_("inactive.is.null,inactive.is.false")
                .execute()
            )
            return result.data if result.data else []
        except Exception as e:
            raise QueryFailedError("get_active_team_members", str(e)) from e


async def get_site_settings_row() -> Optional[dict]:
    """Get the site settings document (team-sync office list)."""
    async with SupabaseClient() as client:
        try:
            result = await (
                client.table(EngineConfig.SITE_SETTINGS_TABLE)
                .select("team_sync_offices")
                .limit(1)
                .execute()
            )
            return result.data[0] if result.data else None
        except Exception as e:
            raise QueryFailedError("get_site_settings", str(e)) from e


async def get_published_off_market_rows(slug: Optional[str] = None) -> list[dict]:
    """Get off-market rows flagged as published, optionally for one slug."""
    async with SupabaseClient() as client:
        try:
            query = (
                client.table(EngineConfig.OFF_MARKET_TABLE)
                .select("*")
                .eq("is_published", True)
            )
            if slug is not None:
                query = query.eq("slug", slug)
            result = await (
                query.order("featured", desc=True)
                .order("listing_date", desc=True, nullsfirst=False)
                .order("id", desc=True)
                .execute()
            )
            return result.data if result.data else []
        except Exception as e:
            raise QueryFailedError("get_published_off_market_rows", str(e)) from e
