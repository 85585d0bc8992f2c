"""Listing store - run filter specifications against the Supabase listing tables.

Filtering, ordering, counting and range slicing all happen server-side
(PostgREST). The same translation serves the primary and secondary feed
tables through a per-table column map.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Optional

from supabase import AsyncClient

from src.models.query import FilterSpecification, SortOption
from src.services.supabase_client import get_secondary_client, get_supabase_client
from src.utils.engine_config import EngineConfig
from src.utils.errors import QueryFailedError
from src.utils.logging import get_structured_logger, log_timing

logger = get_structured_logger(__name__)

# PostgREST: offset past the end of the result set
RANGE_NOT_SATISFIABLE = "PGRST103"

_RESERVED = set(',()."\\:')


@dataclass(frozen=True)
class ColumnMap:
    """Column names of one listing table."""
    id: str
    mls_number: str
    status: str
    property_type: str
    property_sub_type: str
    city: str
    address: str
    subdivision: str
    area: str
    list_price: str
    sold_price: str
    bedrooms: str
    bathrooms: str
    square_feet: str
    listing_date: str
    agent_ids: tuple[str, ...]
    agent_name: str
    office_name: str
    open_house_start: Optional[str] = None
    open_house_end: Optional[str] = None


PRIMARY_COLUMNS = ColumnMap(
    id="id",
    mls_number="listing_id",
    status="status",
    property_type="property_type",
    property_sub_type="property_sub_type",
    city="city",
    address="address",
    subdivision="subdivision_name",
    area="mls_area_minor",
    list_price="list_price",
    sold_price="sold_price",
    bedrooms="bedrooms",
    bathrooms="bathrooms_total",
    square_feet="square_feet",
    listing_date="listing_date",
    agent_ids=("list_agent_mls_id", "co_list_agent_mls_id", "buyer_agent_mls_id", "co_buyer_agent_mls_id"),
    agent_name="list_agent_full_name",
    office_name="list_office_name",
    open_house_start="open_house_start_time",
    open_house_end="open_house_end_time",
)

SECONDARY_COLUMNS = ColumnMap(
    id="rfg_listing_id",
    mls_number="mls_numbers",
    status="listing_status",
    property_type="property_type",
    property_sub_type="property_sub_type",
    city="city",
    address="street_address",
    subdivision="subdivision",
    area="area",
    list_price="list_price",
    sold_price="sold_price",
    bedrooms="bedrooms",
    bathrooms="bathrooms",
    square_feet="square_feet",
    listing_date="listed_on",
    agent_ids=("agent_mls_id",),
    agent_name="agent_name",
    office_name="office_name",
)


def quote_value(value) -> str:
    """Quote a value for use inside a PostgREST list or logic tree."""
    text = str(value)
    if any(char in _RESERVED or char.isspace() for char in text):
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def escape_like(value) -> str:
    """Make LIKE metacharacters in a value match literally."""
    text = str(value)
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _ilike_equals(column: str, value) -> str:
    # ilike with no wildcards left: case-insensitive equality
    return f"{column}.ilike.{quote_value(escape_like(value))}"


def _in_list(values: Iterable[str]) -> str:
    return "(" + ",".join(quote_value(value) for value in sorted(values)) + ")"


def _utc_stamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def apply_spec(query, spec: FilterSpecification, columns: ColumnMap):
    """Translate a FilterSpecification into PostgREST filters."""
    if spec.statuses is not None:
        query = query.filter(columns.status, "in", _in_list(spec.statuses))
    if spec.property_type:
        query = query.eq(columns.property_type, spec.property_type)
    if spec.property_sub_type:
        query = query.eq(columns.property_sub_type, spec.property_sub_type)
    if spec.cities is not None:
        query = query.or_(",".join(_ilike_equals(columns.city, city) for city in sorted(spec.cities)))
    if spec.neighborhood:
        pattern = quote_value(f"%{escape_like(spec.neighborhood)}%")
        query = query.or_(f"{columns.subdivision}.ilike.{pattern},{columns.area}.ilike.{pattern}")
    if spec.keyword:
        pattern = quote_value(f"%{escape_like(spec.keyword)}%")
        query = query.or_(f"{columns.mls_number}.ilike.{pattern},{columns.address}.ilike.{pattern}")

    ranges = (
        (columns.list_price, spec.min_price, spec.max_price),
        (columns.bedrooms, spec.min_beds, spec.max_beds),
        (columns.bathrooms, spec.min_baths, spec.max_baths),
        (columns.square_feet, spec.min_sqft, spec.max_sqft),
    )
    for column, low, high in ranges:
        if low is not None:
            query = query.gte(column, low)
        if high is not None:
            query = query.lte(column, high)

    if spec.require_list_price:
        query = query.not_.is_(columns.list_price, "null")

    if spec.team_scope is not None:
        scope = spec.team_scope
        conditions = []
        if scope.agent_ids:
            ids = _in_list(scope.agent_ids)
            conditions.extend(f"{column}.in.{ids}" for column in columns.agent_ids)
        conditions.extend(_ilike_equals(columns.agent_name, name) for name in sorted(scope.agent_names))
        conditions.extend(_ilike_equals(columns.office_name, office) for office in sorted(scope.office_names))
        query = query.or_(",".join(conditions))

    # Exclusions never drop rows whose column is null
    exclusions = (
        (columns.status, spec.excluded_statuses),
        (columns.property_type, spec.excluded_property_types),
        (columns.property_sub_type, spec.excluded_property_sub_types),
    )
    for column, excluded in exclusions:
        if excluded:
            query = query.or_(f"{column}.is.null,{column}.not.in.{_in_list(excluded)}")

    return query


def apply_sort(query, sort: SortOption, columns: ColumnMap):
    """Order by the sort key, then id descending so the order is total."""
    sort = SortOption.parse(sort)
    if sort == SortOption.PRICE_HIGH:
        query = query.order(columns.list_price, desc=True, nullsfirst=False)
    elif sort == SortOption.PRICE_LOW:
        query = query.order(columns.list_price, desc=False, nullsfirst=False)
    elif sort == SortOption.BEDS_HIGH:
        query = query.order(columns.bedrooms, desc=True, nullsfirst=False)
    elif sort == SortOption.BEDS_LOW:
        query = query.order(columns.bedrooms, desc=False, nullsfirst=False)
    elif sort == SortOption.SOLD_PRICE:
        query = query.order(columns.sold_price, desc=True, nullsfirst=False)
    else:
        query = query.order(columns.listing_date, desc=True, nullsfirst=False)
    return query.order(columns.id, desc=True)


class ListingStore:
    """Read access to one listing table."""

    def __init__(
        self,
        table: str,
        columns: ColumnMap,
        client_factory: Callable[[], Awaitable[Optional[AsyncClient]]],
    ):
        self.table = table
        self.columns = columns
        self._client_factory = client_factory

    async def _client(self) -> AsyncClient:
        client = await self._client_factory()
        if client is None:
            raise QueryFailedError(self.table, "store is not configured")
        return client

    async def _execute(self, operation: str, query):
        try:
            with log_timing(operation, logger=logger, table=self.table):
                return await query.execute()
        except Exception as e:
            logger.error(
                "Listing store query failed",
                operation=operation,
                table=self.table,
                error=str(e)
            )
            raise QueryFailedError(operation, str(e)) from e

    async def count(self, spec: FilterSpecification) -> int:
        """Server-side count of the filtered set."""
        if spec.unsatisfiable:
            return 0
        client = await self._client()
        query = apply_spec(
            client.table(self.table).select(self.columns.id, count="exact"),
            spec,
            self.columns,
        ).limit(1)
        result = await self._execute("count_listings", query)
        return result.count or 0

    async def fetch_page(
        self,
        spec: FilterSpecification,
        sort: SortOption,
        offset: int,
        limit: int,
    ) -> tuple[list[dict], int]:
        """Rows for [offset, offset + limit) plus the count of the whole filtered set."""
        if spec.unsatisfiable:
            return [], 0
        if limit <= 0:
            return [], await self.count(spec)

        client = await self._client()
        query = apply_spec(client.table(self.table).select("*", count="exact"), spec, self.columns)
        query = apply_sort(query, sort, self.columns).range(offset, offset + limit - 1)
        try:
            result = await query.execute()
        except Exception as e:
            if getattr(e, "code", None) == RANGE_NOT_SATISFIABLE:
                # Past the last page: empty rows, same total
                return [], await self.count(spec)
            logger.error(
                "Listing store query failed",
                operation="fetch_page",
                table=self.table,
                error=str(e)
            )
            raise QueryFailedError("fetch_page", str(e)) from e

        return result.data or [], result.count or 0

    async def fetch(self, spec: FilterSpecification, sort: SortOption, limit: int) -> list[dict]:
        """First ``limit`` rows in sort order, without counting."""
        if spec.unsatisfiable or limit <= 0:
            return []
        client = await self._client()
        query = apply_spec(client.table(self.table).select("*"), spec, self.columns)
        query = apply_sort(query, sort, self.columns).limit(limit)
        result = await self._execute("fetch_listings", query)
        return result.data or []

    async def fetch_open_houses(self, spec: FilterSpecification, now: datetime, limit: int) -> list[dict]:
        """Rows with an open-house window that has not ended, soonest first."""
        start, end = self.columns.open_house_start, self.columns.open_house_end
        if spec.unsatisfiable or not start or limit <= 0:
            return []
        stamp = _utc_stamp(now)
        client = await self._client()
        query = apply_spec(client.table(self.table).select("*"), spec, self.columns)
        query = (
            query.or_(f"{end}.gte.{stamp},and({end}.is.null,{start}.gte.{stamp})")
            .order(start, desc=False)
            .order(self.columns.id, desc=True)
            .limit(limit)
        )
        result = await self._execute("fetch_open_houses", query)
        return result.data or []

    async def fetch_by_id(self, listing_id: str) -> Optional[dict]:
        client = await self._client()
        query = client.table(self.table).select("*").eq(self.columns.id, listing_id).limit(1)
        result = await self._execute("fetch_listing_by_id", query)
        return result.data[0] if result.data else None

    async def fetch_by_mls_number(self, mls_number: str) -> Optional[dict]:
        client = await self._client()
        query = client.table(self.table).select("*").eq(self.columns.mls_number, mls_number).limit(1)
        result = await self._execute("fetch_listing_by_mls_number", query)
        return result.data[0] if result.data else None

    async def existing_mls_numbers(self, mls_numbers: Iterable[str]) -> set[str]:
        """Which of the given listing numbers exist in this table."""
        wanted = {number for number in mls_numbers if number}
        if not wanted:
            return set()
        client = await self._client()
        query = (
            client.table(self.table)
            .select(self.columns.mls_number)
            .filter(self.columns.mls_number, "in", _in_list(wanted))
        )
        result = await self._execute("existing_mls_numbers", query)
        return {str(row[self.columns.mls_number]) for row in result.data or [] if row.get(self.columns.mls_number)}

    async def distinct_values(self, column: str, limit: int = 10000) -> list[str]:
        """Sorted distinct non-null values of a column."""
        client = await self._client()
        query = (
            client.table(self.table)
            .select(column)
            .not_.is_(column, "null")
            .order(column)
            .limit(limit)
        )
        result = await self._execute("distinct_values", query)
        return sorted({row[column] for row in result.data or [] if row.get(column)})


def get_primary_store() -> ListingStore:
    return ListingStore(EngineConfig.LISTINGS_TABLE, PRIMARY_COLUMNS, get_supabase_client)


def get_secondary_store() -> ListingStore:
    return ListingStore(EngineConfig.SECONDARY_LISTINGS_TABLE, SECONDARY_COLUMNS, get_secondary_client)
