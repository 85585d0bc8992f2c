"""Listing search - request-level orchestration of the read paths.

Each call resolves the MLS configuration (and, for "our team" searches, the
team roster) concurrently, layers the default exclusions for the call site's
view, builds one FilterSpecification and hands it to the aggregator.
"""

import asyncio
from typing import Iterable, Optional

from src.models.listing import SOLD_STATUSES, Listing
from src.models.query import AgentListingsResult, ListingFilters, ListingOptions, PageResult, SortOption
from src.models.rules import RuleSet, SearchView
from src.services.aggregator import Aggregator, get_aggregator
from src.services.query_builder import build
from src.services.rule_resolver import RuleResolver, get_rule_resolver
from src.services.team_roster import load_team_scope
from src.utils.logging import correlation_context, filter_summary, get_correlation_id, get_structured_logger

logger = get_structured_logger(__name__)


def _sold_statuses(requested: Optional[frozenset[str]]) -> frozenset[str]:
    """The sold view narrows any requested statuses to the sold set."""
    if requested is None:
        return SOLD_STATUSES
    return frozenset(status.strip() for status in requested) & SOLD_STATUSES


async def _resolve_rules(resolver: Optional[RuleResolver], view: SearchView) -> RuleSet:
    rule_set = await (resolver or get_rule_resolver()).resolve()
    return rule_set.with_defaults(view)


async def search(
    filters: Optional[ListingFilters] = None,
    page: Optional[int] = 1,
    page_size: Optional[int] = None,
    sort: SortOption = SortOption.NEWEST,
    our_team: bool = False,
    view: SearchView = SearchView.PUBLIC,
    resolver: Optional[RuleResolver] = None,
    aggregator: Optional[Aggregator] = None,
    correlation_id: Optional[str] = None,
) -> PageResult:
    """Public listing search.

    Args:
        filters: Caller filters before configuration rules
        page: 1-indexed page number
        page_size: Listings per page (clamped)
        sort: Sort option; unknown values fall back to newest
        our_team: Restrict to listings of the team roster and team offices
        view: PUBLIC excludes sold statuses by default; SOLD restricts to them

    Returns:
        PageResult with the page of listings and the filtered total

    Raises:
        QueryFailedError: if the listing store query fails
        TeamRosterError: if ``our_team`` is set and the roster cannot be read
    """
    filters = filters or ListingFilters()
    if view == SearchView.SOLD:
        filters = filters.model_copy(update={"statuses": _sold_statuses(filters.statuses)})

    with correlation_context(correlation_id or get_correlation_id()):
        if our_team:
            rule_set, team_scope = await asyncio.gather(
                (resolver or get_rule_resolver()).resolve(),
                load_team_scope(),
            )
        else:
            rule_set, team_scope = await (resolver or get_rule_resolver()).resolve(), None

        spec = build(filters, rule_set.with_defaults(view), team_scope)
        if view == SearchView.SOLD and not filters.statuses:
            # Only non-sold statuses were requested
            spec = spec.model_copy(update={"unsatisfiable": True})
        logger.info(
            "Listing search",
            view=view.value,
            our_team=our_team,
            filters=filter_summary(spec)
        )
        return await (aggregator or get_aggregator()).page(spec, page, page_size, sort)


async def search_sold(
    filters: Optional[ListingFilters] = None,
    page: Optional[int] = 1,
    page_size: Optional[int] = None,
    resolver: Optional[RuleResolver] = None,
    aggregator: Optional[Aggregator] = None,
) -> PageResult:
    """Sold listings, highest sold price first."""
    return await search(
        filters,
        page,
        page_size,
        SortOption.SOLD_PRICE,
        view=SearchView.SOLD,
        resolver=resolver,
        aggregator=aggregator,
    )


async def team_listings(
    page: Optional[int] = 1,
    page_size: Optional[int] = None,
    sort: SortOption = SortOption.NEWEST,
    aggregator: Optional[Aggregator] = None,
) -> PageResult:
    """Cross-source page of the team's current listings.

    Team pages do not apply MLS configuration rules, only the sold default.
    """
    team_scope = await load_team_scope()
    spec = build(ListingFilters(), RuleSet.empty().with_defaults(SearchView.PUBLIC), team_scope)
    return await (aggregator or get_aggregator()).aggregate_page(spec, page, page_size, sort)


async def featured_properties(
    cities: Iterable[str],
    limit: Optional[int] = None,
    resolver: Optional[RuleResolver] = None,
    aggregator: Optional[Aggregator] = None,
) -> list[Listing]:
    """Carousel listings: the priciest active homes in the given cities."""
    rule_set = await _resolve_rules(resolver, SearchView.PUBLIC)
    return await (aggregator or get_aggregator()).newest_high_priced_by_cities(cities, rule_set, limit)


async def open_houses(
    limit: Optional[int] = None,
    resolver: Optional[RuleResolver] = None,
    aggregator: Optional[Aggregator] = None,
) -> list[Listing]:
    rule_set = await _resolve_rules(resolver, SearchView.PUBLIC)
    return await (aggregator or get_aggregator()).open_houses(rule_set, limit)


async def agent_listings(
    agent_id: str,
    sold_agent_id: Optional[str] = None,
    limit: Optional[int] = None,
    aggregator: Optional[Aggregator] = None,
) -> AgentListingsResult:
    """Per-agent buckets; MLS configuration rules do not apply to agent pages."""
    return await (aggregator or get_aggregator()).listings_by_agent_id(agent_id, sold_agent_id, limit)


async def listing_options(
    resolver: Optional[RuleResolver] = None,
    aggregator: Optional[Aggregator] = None,
) -> ListingOptions:
    rule_set = await _resolve_rules(resolver, SearchView.PUBLIC)
    return await (aggregator or get_aggregator()).listing_options(rule_set)


async def listing_detail(identifier: str, aggregator: Optional[Aggregator] = None) -> Optional[Listing]:
    """One listing by external listing number, falling back to the internal id."""
    identifier = (identifier or "").strip()
    if not identifier:
        return None
    aggregator = aggregator or get_aggregator()
    listing = await aggregator.get_listing_by_mls_number(identifier)
    if listing is None:
        listing = await aggregator.get_listing(identifier)
    return listing
