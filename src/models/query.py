"""Caller filters, filter specifications and paged results."""

import math
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, computed_field

from src.models.listing import Listing


class SortOption(str, Enum):
    """Caller-selectable sort orders. Every order breaks ties on id descending."""
    NEWEST = "newest"
    PRICE_HIGH = "price_high"
    PRICE_LOW = "price_low"
    BEDS_HIGH = "beds_high"
    BEDS_LOW = "beds_low"
    SOLD_PRICE = "sold_price"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SortOption":
        """Unknown or missing sort keys fall back to newest."""
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.NEWEST


class TeamMember(BaseModel):
    """Roster entry used for "our team" scoping."""
    name: Optional[str] = None
    mls_agent_id: Optional[str] = None
    mls_agent_id_sold: Optional[str] = None
    inactive: Optional[bool] = False


class TeamScope(BaseModel):
    """Agent ids, agent names and office names treated as one OR-group."""
    model_config = ConfigDict(frozen=True)

    agent_ids: frozenset[str] = Field(default_factory=frozenset)
    agent_names: frozenset[str] = Field(default_factory=frozenset)
    office_names: frozenset[str] = Field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return not (self.agent_ids or self.agent_names or self.office_names)

    def matches(self, listing: Listing) -> bool:
        if any(agent_id in self.agent_ids for agent_id in listing.agent_mls_ids):
            return True
        names = {name.casefold() for name in self.agent_names}
        if listing.agent_name and listing.agent_name.casefold() in names:
            return True
        offices = {office.casefold() for office in self.office_names}
        return bool(listing.office_name and listing.office_name.casefold() in offices)


class ListingFilters(BaseModel):
    """Filters requested by a caller, before configuration rules are applied."""
    statuses: Optional[frozenset[str]] = Field(None, description="Explicit status filter; None means not requested")
    property_type: Optional[str] = None
    property_sub_type: Optional[str] = None
    cities: Optional[frozenset[str]] = None
    neighborhood: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_beds: Optional[float] = None
    max_beds: Optional[float] = None
    min_baths: Optional[float] = None
    max_baths: Optional[float] = None
    min_sqft: Optional[float] = None
    max_sqft: Optional[float] = None
    keyword: Optional[str] = Field(None, description="Matches listing number or address")
    require_list_price: bool = False
    excluded_statuses: frozenset[str] = Field(default_factory=frozenset)
    excluded_property_types: frozenset[str] = Field(default_factory=frozenset)
    excluded_property_sub_types: frozenset[str] = Field(default_factory=frozenset)


def _in_range(value: Optional[float], low: Optional[float], high: Optional[float]) -> bool:
    if low is None and high is None:
        return True
    if value is None:
        return False
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


def _contains(haystack: Optional[str], needle: str) -> bool:
    return bool(haystack) and needle.casefold() in haystack.casefold()


class FilterSpecification(BaseModel):
    """Immutable predicate set produced by the query builder.

    ``None`` on an equality field means unrestricted. Exclusion sets never
    remove records whose field is null. ``unsatisfiable`` short-circuits to an
    empty result without touching the store.
    """
    model_config = ConfigDict(frozen=True)

    statuses: Optional[frozenset[str]] = None
    property_type: Optional[str] = None
    property_sub_type: Optional[str] = None
    cities: Optional[frozenset[str]] = None
    neighborhood: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_beds: Optional[float] = None
    max_beds: Optional[float] = None
    min_baths: Optional[float] = None
    max_baths: Optional[float] = None
    min_sqft: Optional[float] = None
    max_sqft: Optional[float] = None
    keyword: Optional[str] = None
    require_list_price: bool = False
    team_scope: Optional[TeamScope] = None
    excluded_statuses: frozenset[str] = Field(default_factory=frozenset)
    excluded_property_types: frozenset[str] = Field(default_factory=frozenset)
    excluded_property_sub_types: frozenset[str] = Field(default_factory=frozenset)
    unsatisfiable: bool = False

    def matches(self, listing: Listing) -> bool:
        """Evaluate the specification against a normalized listing in memory."""
        if self.unsatisfiable:
            return False
        if self.statuses is not None and listing.status not in self.statuses:
            return False
        if self.property_type is not None and listing.property_type != self.property_type:
            return False
        if self.property_sub_type is not None and listing.property_sub_type != self.property_sub_type:
            return False
        if self.cities is not None:
            wanted = {city.casefold() for city in self.cities}
            if not listing.city or listing.city.casefold() not in wanted:
                return False
        if self.neighborhood and not (
            _contains(listing.subdivision_name, self.neighborhood)
            or _contains(listing.neighborhood, self.neighborhood)
        ):
            return False
        if not _in_range(listing.list_price, self.min_price, self.max_price):
            return False
        if not _in_range(listing.bedrooms, self.min_beds, self.max_beds):
            return False
        if not _in_range(listing.bathrooms, self.min_baths, self.max_baths):
            return False
        if not _in_range(listing.square_feet, self.min_sqft, self.max_sqft):
            return False
        if self.keyword and not (
            _contains(listing.mls_number, self.keyword) or _contains(listing.address, self.keyword)
        ):
            return False
        if self.require_list_price and listing.list_price is None:
            return False
        if self.team_scope is not None and not self.team_scope.matches(listing):
            return False
        if listing.status is not None and listing.status in self.excluded_statuses:
            return False
        if listing.property_type is not None and listing.property_type in self.excluded_property_types:
            return False
        if listing.property_sub_type is not None and listing.property_sub_type in self.excluded_property_sub_types:
            return False
        return True


class PageResult(BaseModel):
    """One page of listings plus the count of the whole filtered set."""
    listings: list[Listing] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int

    @computed_field
    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0


class AgentListingsResult(BaseModel):
    """Per-agent listings split by status bucket."""
    active_listings: list[Listing] = Field(default_factory=list)
    sold_listings: list[Listing] = Field(default_factory=list)


class ListingOptions(BaseModel):
    """Distinct values offered as search filters."""
    cities: list[str] = Field(default_factory=list)
    property_types: list[str] = Field(default_factory=list)
    property_sub_types: list[str] = Field(default_factory=list)
    statuses: list[str] = Field(default_factory=list)
