"""Aggregator - paging, cross-source merge and the specialized read paths.

Every read path goes through a FilterSpecification built by the query
builder and a ListingStore; this module owns page arithmetic, the in-memory
ordering used when two feeds are merged, and the primary-wins merge policy.
"""

import asyncio
from datetime import datetime, time, timezone
from typing import Iterable, Optional

from src.models.listing import (
    ACTIVE_EQUIVALENT_STATUSES,
    PROPERTY_SUB_TYPES,
    PROPERTY_TYPES,
    SOLD_STATUSES,
    Listing,
)
from src.models.query import (
    AgentListingsResult,
    FilterSpecification,
    ListingFilters,
    ListingOptions,
    PageResult,
    SortOption,
    TeamScope,
)
from src.models.rules import RuleSet
from src.services.listing_store import ListingStore, get_primary_store, get_secondary_store
from src.services.normalizer import normalize_mls_number, normalize_primary, normalize_secondary
from src.services.query_builder import build
from src.services.supabase_client import is_secondary_configured
from src.utils.engine_config import EngineConfig
from src.utils.logging import filter_summary, get_structured_logger

logger = get_structured_logger(__name__)

_DESCENDING = {SortOption.NEWEST, SortOption.PRICE_HIGH, SortOption.BEDS_HIGH, SortOption.SOLD_PRICE}


def normalize_paging(page_number: Optional[int], page_size: Optional[int]) -> tuple[int, int]:
    """Clamp a 1-indexed page request to valid values."""
    if page_number is None or page_number < 1:
        page_number = 1
    if page_size is None or page_size < 1:
        page_size = EngineConfig.DEFAULT_PAGE_SIZE
    return page_number, min(page_size, EngineConfig.MAX_PAGE_SIZE)


def _sort_value(listing: Listing, sort: SortOption) -> Optional[float]:
    if sort in (SortOption.PRICE_HIGH, SortOption.PRICE_LOW):
        return listing.list_price
    if sort in (SortOption.BEDS_HIGH, SortOption.BEDS_LOW):
        return listing.bedrooms
    if sort == SortOption.SOLD_PRICE:
        return listing.sold_price
    if listing.listed_at is not None:
        return listing.listed_at.timestamp()
    if listing.listing_date is not None:
        return datetime.combine(listing.listing_date, time.min, tzinfo=timezone.utc).timestamp()
    return None


def _id_key(listing: Listing) -> tuple:
    # Numeric ids compare as numbers, the way the store orders them
    if listing.id.isdigit():
        return (1, int(listing.id), "")
    return (0, 0, listing.id)


def sort_listings(listings: Iterable[Listing], sort: SortOption) -> list[Listing]:
    """Order listings in memory exactly like ``apply_sort`` orders rows.

    Nulls sort last in both directions; ties break on id descending.
    """
    sort = SortOption.parse(sort)
    descending = sort in _DESCENDING
    by_id = sorted(listings, key=_id_key, reverse=True)

    def key(listing: Listing) -> tuple:
        value = _sort_value(listing, sort)
        if value is None:
            return (1, 0)
        return (0, -value if descending else value)

    # Stable sort keeps the id order among equal keys
    return sorted(by_id, key=key)


def merge_sources(
    primary: Iterable[Listing],
    secondary: Iterable[Listing],
    primary_numbers: Iterable[str] = (),
) -> list[Listing]:
    """Union two feeds keyed on the normalized listing number; primary wins.

    ``primary_numbers`` holds numbers known to exist in the primary table even
    when the primary record itself was not fetched. A secondary record sharing
    any of its numbers with the primary feed is dropped.
    """
    merged = []
    seen_ids: set[str] = set()
    seen_numbers = {normalize_mls_number(number) for number in primary_numbers} - {None}

    for listing in primary:
        if listing.id in seen_ids:
            continue
        seen_ids.add(listing.id)
        number = normalize_mls_number(listing.mls_number)
        if number:
            seen_numbers.add(number)
        merged.append(listing)

    for listing in secondary:
        numbers = {
            normalize_mls_number(number)
            for number in [listing.mls_number, *listing.cross_reference_numbers]
        } - {None}
        if numbers & seen_numbers:
            continue
        seen_numbers |= numbers
        merged.append(listing)

    return merged


def _primary_rows_to_listings(rows: list[dict]) -> list[Listing]:
    return [normalize_primary(row) for row in rows]


def _window_open(listing: Listing, now: datetime) -> bool:
    window = listing.next_open_house
    if window is None:
        return False
    if window.end is not None:
        return window.end >= now
    return window.start >= now


class Aggregator:
    """Read paths over the primary feed, optionally merged with the secondary feed."""

    def __init__(self, primary_store: ListingStore, secondary_store: Optional[ListingStore] = None):
        self.primary = primary_store
        self.secondary = secondary_store

    async def page(
        self,
        spec: FilterSpecification,
        page_number: Optional[int] = 1,
        page_size: Optional[int] = None,
        sort: SortOption = SortOption.NEWEST,
    ) -> PageResult:
        """One page of the primary feed with the server-side total."""
        page_number, page_size = normalize_paging(page_number, page_size)
        sort = SortOption.parse(sort)
        offset = (page_number - 1) * page_size

        rows, total = await self.primary.fetch_page(spec, sort, offset, page_size)
        listings = _primary_rows_to_listings(rows)

        logger.info(
            "Listings page fetched",
            page=page_number,
            page_size=page_size,
            sort=sort.value,
            returned=len(listings),
            total=total,
            unsatisfiable=spec.unsatisfiable
        )
        return PageResult(listings=listings, total=total, page=page_number, page_size=page_size)

    async def _fetch_secondary(self, spec: FilterSpecification, sort: SortOption, limit: int) -> list[Listing]:
        if self.secondary is None or spec.unsatisfiable:
            return []
        rows = await self.secondary.fetch(spec, sort, limit)
        listings = [normalize_secondary(row) for row in rows]
        return [listing for listing in listings if spec.matches(listing)]

    async def _fetch_secondary_all(self, spec: FilterSpecification, sort: SortOption) -> list[Listing]:
        """Every matching secondary row, read in CROSS_SOURCE_FETCH_LIMIT chunks."""
        if self.secondary is None or spec.unsatisfiable:
            return []
        chunk = max(EngineConfig.CROSS_SOURCE_FETCH_LIMIT, 1)
        rows: list[dict] = []
        while True:
            batch, total = await self.secondary.fetch_page(spec, sort, len(rows), chunk)
            rows.extend(batch)
            if not batch or len(rows) >= total:
                break
        listings = [normalize_secondary(row) for row in rows]
        return [listing for listing in listings if spec.matches(listing)]

    async def _primary_numbers(self, secondary: list[Listing]) -> set[str]:
        """Numbers of the given secondary listings that exist anywhere in the primary table."""
        candidates = set()
        for listing in secondary:
            for number in [listing.mls_number, *listing.cross_reference_numbers]:
                if number:
                    candidates.add(number)
                    candidates.add(normalize_mls_number(number))
        if not candidates:
            return set()
        return await self.primary.existing_mls_numbers(candidates)

    async def aggregate(
        self,
        spec: FilterSpecification,
        sort: SortOption = SortOption.NEWEST,
        limit: Optional[int] = None,
    ) -> list[Listing]:
        """Cross-source read: both feeds fetched concurrently, merged and re-sorted."""
        sort = SortOption.parse(sort)
        limit = EngineConfig.CROSS_SOURCE_FETCH_LIMIT if limit is None else limit
        if spec.unsatisfiable or limit <= 0:
            return []

        primary_rows, secondary = await asyncio.gather(
            self.primary.fetch(spec, sort, limit),
            self._fetch_secondary(spec, sort, limit),
        )
        primary = _primary_rows_to_listings(primary_rows)
        primary_numbers = await self._primary_numbers(secondary)

        merged = sort_listings(merge_sources(primary, secondary, primary_numbers), sort)[:limit]
        logger.info(
            "Cross-source listings aggregated",
            sort=sort.value,
            primary=len(primary),
            secondary=len(secondary),
            merged=len(merged),
            filters=filter_summary(spec)
        )
        return merged

    async def aggregate_page(
        self,
        spec: FilterSpecification,
        page_number: Optional[int] = 1,
        page_size: Optional[int] = None,
        sort: SortOption = SortOption.NEWEST,
    ) -> PageResult:
        """One page of the merged feeds.

        The total is the store-counted primary total plus the secondary
        listings that do not exist in the primary table. The first
        ``offset + page_size`` merged rows can only draw on that many primary
        rows, so the primary feed is read up to the end of the requested page.
        """
        page_number, page_size = normalize_paging(page_number, page_size)
        sort = SortOption.parse(sort)
        offset = (page_number - 1) * page_size
        if spec.unsatisfiable:
            return PageResult(listings=[], total=0, page=page_number, page_size=page_size)

        (primary_rows, primary_total), secondary = await asyncio.gather(
            self.primary.fetch_page(spec, sort, 0, offset + page_size),
            self._fetch_secondary_all(spec, sort),
        )
        secondary_only = merge_sources([], secondary, await self._primary_numbers(secondary))
        merged = sort_listings(_primary_rows_to_listings(primary_rows) + secondary_only, sort)
        total = primary_total + len(secondary_only)

        logger.info(
            "Cross-source page fetched",
            page=page_number,
            page_size=page_size,
            sort=sort.value,
            primary_total=primary_total,
            secondary_only=len(secondary_only),
            total=total,
            filters=filter_summary(spec)
        )
        return PageResult(
            listings=merged[offset:offset + page_size],
            total=total,
            page=page_number,
            page_size=page_size,
        )

    async def newest_high_priced_by_cities(
        self,
        cities: Iterable[str],
        rule_set: Optional[RuleSet] = None,
        limit: Optional[int] = None,
    ) -> list[Listing]:
        """Priciest active single-family residences in the given cities."""
        cities = frozenset(city.strip() for city in cities or [] if city and city.strip())
        if not cities:
            return []
        limit = EngineConfig.FEATURED_LISTINGS_LIMIT if limit is None else limit

        filters = ListingFilters(
            statuses=ACTIVE_EQUIVALENT_STATUSES,
            property_type="Residential",
            property_sub_type="Single Family Residence",
            cities=cities,
            require_list_price=True,
        )
        spec = build(filters, rule_set or RuleSet.empty())
        rows = await self.primary.fetch(spec, SortOption.PRICE_HIGH, limit)
        return _primary_rows_to_listings(rows)

    async def newest_high_priced_by_city(
        self,
        city: str,
        rule_set: Optional[RuleSet] = None,
        limit: Optional[int] = None,
    ) -> list[Listing]:
        return await self.newest_high_priced_by_cities([city] if city else [], rule_set, limit)

    async def open_houses(
        self,
        rule_set: Optional[RuleSet] = None,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[Listing]:
        """Listings with an open-house window that has not ended, soonest first.

        Status rules do not apply here; type and city rules do.
        """
        limit = EngineConfig.OPEN_HOUSE_LIMIT if limit is None else limit
        now = now or datetime.now(timezone.utc)
        rules = (rule_set or RuleSet.empty()).model_copy(update={"excluded_statuses": frozenset()})

        spec = build(ListingFilters(), rules)
        rows = await self.primary.fetch_open_houses(spec, now, limit)
        listings = [listing for listing in _primary_rows_to_listings(rows) if _window_open(listing, now)]

        listings = sorted(listings, key=_id_key, reverse=True)
        listings.sort(key=lambda listing: listing.next_open_house.start)
        logger.info("Open houses fetched", returned=len(listings), limit=limit)
        return listings

    async def listings_by_agent_id(
        self,
        agent_id: str,
        sold_agent_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> AgentListingsResult:
        """Active and sold buckets for one agent, each capped independently."""
        agent_id = (agent_id or "").strip()
        if not agent_id:
            return AgentListingsResult()
        limit = EngineConfig.AGENT_LISTINGS_LIMIT if limit is None else limit

        sold_ids = {agent_id}
        if sold_agent_id and sold_agent_id.strip():
            sold_ids.add(sold_agent_id.strip())

        active_spec = build(
            ListingFilters(excluded_statuses=SOLD_STATUSES),
            RuleSet.empty(),
            TeamScope(agent_ids=frozenset({agent_id})),
        )
        sold_spec = build(
            ListingFilters(statuses=SOLD_STATUSES),
            RuleSet.empty(),
            TeamScope(agent_ids=frozenset(sold_ids)),
        )

        active, sold = await asyncio.gather(
            self.aggregate(active_spec, SortOption.NEWEST, limit),
            self.aggregate(sold_spec, SortOption.SOLD_PRICE, limit),
        )
        logger.info(
            "Agent listings fetched",
            agent_id=agent_id,
            active=len(active),
            sold=len(sold)
        )
        return AgentListingsResult(active_listings=active, sold_listings=sold)

    async def get_listing(self, listing_id: str) -> Optional[Listing]:
        """Single listing by internal id, primary feed first."""
        if not listing_id:
            return None
        row = await self.primary.fetch_by_id(listing_id)
        if row is not None:
            return normalize_primary(row)
        if self.secondary is not None:
            row = await self.secondary.fetch_by_id(listing_id)
            if row is not None:
                return normalize_secondary(row)
        return None

    async def get_listing_by_mls_number(self, mls_number: str) -> Optional[Listing]:
        number = normalize_mls_number(mls_number)
        if not number:
            return None
        row = await self.primary.fetch_by_mls_number(number)
        return normalize_primary(row) if row is not None else None

    async def listing_options(self, rule_set: Optional[RuleSet] = None) -> ListingOptions:
        """Filter options: cities honor the allowlist, types drop exclusions."""
        rule_set = rule_set or RuleSet.empty()

        if rule_set.allowed_cities:
            cities = sorted(rule_set.allowed_cities)
            statuses = await self.primary.distinct_values(self.primary.columns.status)
        else:
            cities, statuses = await asyncio.gather(
                self.primary.distinct_values(self.primary.columns.city),
                self.primary.distinct_values(self.primary.columns.status),
            )

        return ListingOptions(
            cities=cities,
            property_types=[t for t in PROPERTY_TYPES if t not in rule_set.excluded_property_types],
            property_sub_types=[t for t in PROPERTY_SUB_TYPES if t not in rule_set.excluded_property_sub_types],
            statuses=[s for s in statuses if s not in rule_set.excluded_statuses],
        )


# Global aggregator instance
_aggregator: Optional[Aggregator] = None


def get_aggregator() -> Aggregator:
    """Get or create the global aggregator over the configured feeds."""
    global _aggregator
    if _aggregator is None:
        secondary = get_secondary_store() if is_secondary_configured() else None
        _aggregator = Aggregator(get_primary_store(), secondary)
    return _aggregator
