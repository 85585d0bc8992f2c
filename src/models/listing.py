"""Canonical listing model shared by every feed."""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class ListingSource(str, Enum):
    """Feed a listing was materialized from (internal provenance only)."""
    PRIMARY = "primary"
    SECONDARY = "secondary"
    OFF_MARKET = "off_market"


class ListingStatus:
    """Status vocabulary used by the MLS feeds."""
    ACTIVE = "Active"
    ACTIVE_UNDER_CONTRACT = "Active Under Contract"
    ACTIVE_UC_BUMP = "Active U/C W/ Bump"
    PENDING = "Pending"
    PENDING_INSPECTION = "Pending Inspect/Feasib"
    TO_BE_BUILT = "To Be Built"
    COMING_SOON = "Coming Soon"
    CLOSED = "Closed"
    SOLD = "Sold"
    WITHDRAWN = "Withdrawn"
    EXPIRED = "Expired"
    CANCELED = "Canceled"


ACTIVE_EQUIVALENT_STATUSES = frozenset({
    ListingStatus.ACTIVE,
    ListingStatus.ACTIVE_UNDER_CONTRACT,
    ListingStatus.ACTIVE_UC_BUMP,
    ListingStatus.PENDING,
    ListingStatus.PENDING_INSPECTION,
    ListingStatus.TO_BE_BUILT,
})

SOLD_STATUSES = frozenset({ListingStatus.CLOSED, ListingStatus.SOLD})

# Property type vocabulary of the primary feed, offered as search options.
PROPERTY_TYPES = (
    "Commercial Land",
    "Commercial Lease",
    "Commercial Sale",
    "Fractional",
    "RES Vacant Land",
    "Residential",
    "Residential Lease",
)

PROPERTY_SUB_TYPES = (
    "Agricultural",
    "Agriculture",
    "Business with Real Estate",
    "Business with/RE",
    "Commercial",
    "Commercial Land",
    "Condominium",
    "Development",
    "Duplex",
    "Half Duplex",
    "Leasehold",
    "Mobile Home",
    "Multi-Family Lot",
    "Other",
    "Residential Income",
    "Seasonal & Remote",
    "Single Family Lot",
    "Single Family Residence",
    "Townhouse",
)


class OpenHouse(BaseModel):
    """A scheduled open-house time window."""
    start: datetime = Field(..., description="Window start")
    end: Optional[datetime] = Field(None, description="Window end")
    remarks: Optional[str] = None


class Listing(BaseModel):
    """Real estate listing in canonical shape."""
    # Identity
    id: str = Field(..., description="Internal listing id")
    mls_number: Optional[str] = Field(None, description="External listing number, unique within its source")
    cross_reference_numbers: list[str] = Field(default_factory=list, exclude=True)

    # Classification
    status: Optional[str] = Field(None, description="Listing status")
    property_type: Optional[str] = None
    property_sub_type: Optional[str] = None

    # Location
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    neighborhood: Optional[str] = Field(None, description="Subdivision, else minor MLS area")
    subdivision_name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    # Numeric facts
    list_price: Optional[float] = None
    sold_price: Optional[float] = None
    bedrooms: Optional[float] = None
    bathrooms: Optional[float] = None
    square_feet: Optional[float] = None
    lot_size_acres: Optional[float] = None
    year_built: Optional[int] = None

    # Media
    photos: list[str] = Field(default_factory=list, description="Absolute HTTPS photo URLs, deduplicated")
    videos: list[str] = Field(default_factory=list)
    virtual_tours: list[str] = Field(default_factory=list)

    # Descriptive text
    description: Optional[str] = None

    # Agent / office
    agent_mls_ids: list[str] = Field(default_factory=list)
    agent_name: Optional[str] = None
    agent_license_number: Optional[str] = None
    office_name: Optional[str] = None
    office_address: Optional[str] = None

    # Temporal facts
    listing_date: Optional[date] = None
    listed_at: Optional[datetime] = Field(None, exclude=True, description="Full listing timestamp, used for ordering")
    status_change_date: Optional[date] = None
    sold_date: Optional[date] = None
    days_on_market: Optional[int] = None
    open_houses: list[OpenHouse] = Field(default_factory=list)

    # Off-market extras
    slug: Optional[str] = None
    featured: bool = False
    requires_registration: bool = False

    source: ListingSource = Field(ListingSource.PRIMARY, exclude=True)

    @property
    def next_open_house(self) -> Optional[OpenHouse]:
        """Earliest open-house window, if any."""
        if not self.open_houses:
            return None
        return min(self.open_houses, key=lambda window: window.start)
