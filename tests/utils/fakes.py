"""In-memory stand-ins for the listing store and rule resolver."""

from datetime import datetime
from typing import Iterable, Optional

from src.models.query import FilterSpecification, SortOption
from src.models.rules import RuleSet
from src.services.aggregator import sort_listings
from src.services.listing_store import PRIMARY_COLUMNS, SECONDARY_COLUMNS, ColumnMap
from src.services.normalizer import normalize_mls_number, normalize_primary, normalize_secondary


class FakeListingStore:
    """Evaluates specifications with FilterSpecification.matches over raw rows.

    Mirrors the ListingStore interface closely enough for the aggregator:
    rows in, rows out, totals counted over the whole filtered set.
    """

    def __init__(self, rows: Optional[Iterable[dict]] = None, secondary: bool = False):
        self.rows = list(rows or [])
        self.secondary = secondary
        self.columns: ColumnMap = SECONDARY_COLUMNS if secondary else PRIMARY_COLUMNS
        self.calls: list[tuple] = []

    def _normalize(self, row: dict):
        return normalize_secondary(row) if self.secondary else normalize_primary(row)

    def _filtered(self, spec: FilterSpecification, sort: SortOption) -> list[dict]:
        by_id = {}
        for row in self.rows:
            listing = self._normalize(row)
            if spec.matches(listing):
                by_id[listing.id] = (listing, row)
        ordered = sort_listings([listing for listing, _ in by_id.values()], sort)
        return [by_id[listing.id][1] for listing in ordered]

    async def count(self, spec: FilterSpecification) -> int:
        self.calls.append(("count", spec))
        return len(self._filtered(spec, SortOption.NEWEST))

    async def fetch_page(self, spec, sort, offset, limit):
        self.calls.append(("fetch_page", spec, sort, offset, limit))
        rows = self._filtered(spec, sort)
        return rows[offset:offset + limit], len(rows)

    async def fetch(self, spec, sort, limit):
        self.calls.append(("fetch", spec, sort, limit))
        return self._filtered(spec, sort)[:limit]

    async def fetch_open_houses(self, spec, now: datetime, limit):
        self.calls.append(("fetch_open_houses", spec, now, limit))
        rows = []
        for row in self._filtered(spec, SortOption.NEWEST):
            window = self._normalize(row).next_open_house
            if window and ((window.end or window.start) >= now):
                rows.append(row)
        return rows[:limit]

    async def fetch_by_id(self, listing_id):
        for row in self.rows:
            if self._normalize(row).id == str(listing_id):
                return row
        return None

    async def fetch_by_mls_number(self, mls_number):
        wanted = normalize_mls_number(mls_number)
        for row in self.rows:
            if normalize_mls_number(self._normalize(row).mls_number) == wanted:
                return row
        return None

    async def existing_mls_numbers(self, mls_numbers) -> set[str]:
        self.calls.append(("existing_mls_numbers", set(mls_numbers)))
        wanted = set(mls_numbers)
        return {
            self._normalize(row).mls_number
            for row in self.rows
            if self._normalize(row).mls_number in wanted
        }

    async def distinct_values(self, column, limit=10000):
        return sorted({row[column] for row in self.rows if row.get(column)})


class StaticResolver:
    """Rule resolver returning a fixed RuleSet."""

    def __init__(self, rule_set: RuleSet):
        self.rule_set = rule_set
        self.calls = 0

    async def resolve(self) -> RuleSet:
        self.calls += 1
        return self.rule_set
