"""Query builder - merge caller filters, rules and team scope into one specification."""

from typing import Iterable, Optional

from src.models.query import FilterSpecification, ListingFilters, TeamScope
from src.models.rules import RuleSet
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


def _clean_values(values: Optional[Iterable[str]]) -> Optional[frozenset[str]]:
    if values is None:
        return None
    cleaned = frozenset(value.strip() for value in values if value and value.strip())
    return cleaned or None


def intersect_cities(requested: Optional[frozenset[str]], allowed: frozenset[str]) -> Optional[frozenset[str]]:
    """Effective city filter after applying the allowlist.

    Matching is case-insensitive and keeps the allowlist's spelling. Returns
    None when neither side restricts cities; an empty set means no city can
    match.
    """
    if not allowed:
        return requested
    if requested is None:
        return allowed
    wanted = {city.casefold() for city in requested}
    return frozenset(city for city in allowed if city.casefold() in wanted)


def build(
    caller_filters: ListingFilters,
    rule_set: RuleSet,
    team_scope: Optional[TeamScope] = None,
) -> FilterSpecification:
    """Compose a FilterSpecification.

    Merge order:
      1. caller equality and range filters, verbatim
      2. caller exclusion sets unioned with the rule set's exclusion sets
      3. allowed cities: constrain, or intersect with the caller's cities
      4. team scope as an OR-group over agent id, agent name and office name
    """
    unsatisfiable = False

    cities = intersect_cities(_clean_values(caller_filters.cities), rule_set.allowed_cities)
    if cities is not None and not cities:
        unsatisfiable = True
        logger.debug(
            "Requested cities outside the allowlist",
            requested=sorted(caller_filters.cities or []),
            allowed=len(rule_set.allowed_cities)
        )

    if team_scope is not None and team_scope.is_empty:
        unsatisfiable = True
        logger.debug("Team scope has no eligible members")

    keyword = caller_filters.keyword.strip() if caller_filters.keyword else None
    neighborhood = caller_filters.neighborhood.strip() if caller_filters.neighborhood else None

    return FilterSpecification(
        statuses=_clean_values(caller_filters.statuses),
        property_type=caller_filters.property_type or None,
        property_sub_type=caller_filters.property_sub_type or None,
        cities=cities,
        neighborhood=neighborhood or None,
        min_price=caller_filters.min_price,
        max_price=caller_filters.max_price,
        min_beds=caller_filters.min_beds,
        max_beds=caller_filters.max_beds,
        min_baths=caller_filters.min_baths,
        max_baths=caller_filters.max_baths,
        min_sqft=caller_filters.min_sqft,
        max_sqft=caller_filters.max_sqft,
        keyword=keyword or None,
        require_list_price=caller_filters.require_list_price,
        team_scope=team_scope,
        excluded_statuses=caller_filters.excluded_statuses | rule_set.excluded_statuses,
        excluded_property_types=caller_filters.excluded_property_types | rule_set.excluded_property_types,
        excluded_property_sub_types=caller_filters.excluded_property_sub_types | rule_set.excluded_property_sub_types,
        unsatisfiable=unsatisfiable,
    )
