"""Listings engine configuration read from environment variables."""

import os


class EngineConfig:
    """Table names, cache TTL and paging limits."""
    
    # Backing tables
    LISTINGS_TABLE = os.environ.get("LISTINGS_TABLE", "graphql_listings")
    SECONDARY_LISTINGS_TABLE = os.environ.get("SECONDARY_LISTINGS_TABLE", "realogy_listings")
    OFF_MARKET_TABLE = os.environ.get("OFF_MARKET_TABLE", "off_market_listings")
    MLS_CONFIG_TABLE = os.environ.get("MLS_CONFIG_TABLE", "mls_configuration")
    TEAM_MEMBERS_TABLE = os.environ.get("TEAM_MEMBERS_TABLE", "team_members")
    SITE_SETTINGS_TABLE = os.environ.get("SITE_SETTINGS_TABLE", "site_settings")
    
    # MLS configuration cache
    MLS_CONFIG_CACHE_TTL_SECONDS = float(os.environ.get("MLS_CONFIG_CACHE_TTL_SECONDS", "60"))
    
    # Paging
    DEFAULT_PAGE_SIZE = int(os.environ.get("DEFAULT_PAGE_SIZE", "24"))
    MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", "100"))
    
    # Bounded read paths
    CROSS_SOURCE_FETCH_LIMIT = int(os.environ.get("CROSS_SOURCE_FETCH_LIMIT", "200"))
    AGENT_LISTINGS_LIMIT = int(os.environ.get("AGENT_LISTINGS_LIMIT", "200"))
    OPEN_HOUSE_LIMIT = int(os.environ.get("OPEN_HOUSE_LIMIT", "100"))
    FEATURED_LISTINGS_LIMIT = int(os.environ.get("FEATURED_LISTINGS_LIMIT", "8"))
