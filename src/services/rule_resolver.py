"""Rule resolver - reduce the MLS configuration document to a RuleSet."""

import time
from typing import Optional
from pydantic import ValidationError

from src.models.rules import MLSConfiguration, RuleSet
from src.services.supabase_client import get_mls_configuration_row
from src.utils.engine_config import EngineConfig
from src.utils.errors import ConfigurationFetchError
from src.utils.logging import get_structured_logger, log_timing

logger = get_structured_logger(__name__)


async def fetch_mls_configuration() -> MLSConfiguration:
    """Fetch and validate the current configuration document."""
    try:
        row = await get_mls_configuration_row()
    except Exception as e:
        raise ConfigurationFetchError(f"Failed to fetch MLS configuration: {e}") from e

    if row is None:
        raise ConfigurationFetchError("No MLS configuration document found")

    try:
        return MLSConfiguration.model_validate(row)
    except ValidationError as e:
        raise ConfigurationFetchError(f"Malformed MLS configuration: {e}") from e


class RuleResolver:
    """Resolve the current RuleSet with a short time-based cache.

    Safe for concurrent readers: a stale entry is simply replaced by whichever
    request refreshes it first. Fetch failures resolve to the empty RuleSet and
    are not cached.
    """

    def __init__(self, ttl_seconds: Optional[float] = None):
        self.ttl_seconds = EngineConfig.MLS_CONFIG_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._cached: Optional[RuleSet] = None
        self._expires_at: float = 0.0

    def invalidate(self) -> None:
        self._cached = None
        self._expires_at = 0.0

    async def resolve(self) -> RuleSet:
        now = time.monotonic()
        if self._cached is not None and now < self._expires_at:
            return self._cached

        try:
            with log_timing("fetch_mls_configuration", logger=logger):
                config = await fetch_mls_configuration()
        except ConfigurationFetchError as e:
            # Fail open: show everything rather than hide the site's listings
            logger.warning(
                "MLS configuration unavailable, using empty rule set",
                error=str(e)
            )
            return RuleSet.empty()

        rule_set = RuleSet.from_configuration(config)
        self._cached = rule_set
        self._expires_at = time.monotonic() + self.ttl_seconds
        logger.info(
            "MLS configuration resolved",
            excluded_property_types=len(rule_set.excluded_property_types),
            excluded_property_sub_types=len(rule_set.excluded_property_sub_types),
            allowed_cities=len(rule_set.allowed_cities),
            excluded_statuses=len(rule_set.excluded_statuses),
            ttl_seconds=self.ttl_seconds
        )
        return rule_set


# Global resolver instance
_rule_resolver: Optional[RuleResolver] = None


def get_rule_resolver() -> RuleResolver:
    """Get or create the global rule resolver."""
    global _rule_resolver
    if _rule_resolver is None:
        _rule_resolver = RuleResolver()
    return _rule_resolver
