"""Normalizer - convert raw feed rows into canonical Listing records.

Three sources converge here:

* primary MLS replication rows (typed columns, media as a list of JSON blobs)
* secondary brokerage feed rows (several columns hold JSON-encoded strings)
* curated off-market content rows

Secondary sub-fields are parsed defensively: a malformed payload degrades to
the raw string (or an empty collection) and the record is still returned.
"""

import json
import re
from datetime import date, datetime, timezone
from typing import Any, Optional, Union

from src.models.listing import Listing, ListingSource, OpenHouse
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

PERSONAL_PROFILE = "Personal Profile"

MEDIA_FORMAT_IMAGE = "Image"
MEDIA_FORMAT_VIDEO = "Video"
MEDIA_FORMAT_TOUR = "3D Video"

_MLS_PREFIX = re.compile(r"^(MLS)?\s*[#:]?\s*", re.IGNORECASE)


def parse_json_field(value: Any) -> Any:
    """Decode a JSON-encoded column; on failure return the raw value unchanged."""
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except (ValueError, TypeError):
        return value


def _select_remark(items: list) -> Optional[dict]:
    candidates = [item for item in items if isinstance(item, dict)]
    if not candidates:
        return None
    for item in candidates:
        if item.get("type") == PERSONAL_PROFILE:
            return item
    return candidates[0]


def _remark_text(remarks: Any, html_first: bool) -> str:
    if not remarks:
        return ""

    parsed = parse_json_field(remarks)
    if isinstance(parsed, str):
        # Unparseable payload: the raw string is the remark
        return parsed

    if isinstance(parsed, list):
        item = _select_remark(parsed)
        if item is None:
            return ""
    elif isinstance(parsed, dict):
        item = parsed
    else:
        return str(parsed)

    plain = item.get("remark") or item.get("Remark") or ""
    html = item.get("htmlRemark") or ""
    if html_first:
        return html or plain
    return plain or html


def parse_remarks(remarks: Union[list, dict, str, None]) -> str:
    """Plain-text remark: the Personal Profile variant if present, else the first."""
    return _remark_text(remarks, html_first=False)


def parse_remarks_html(remarks: Union[list, dict, str, None]) -> str:
    """Same selection as parse_remarks, preferring the HTML variant."""
    return _remark_text(remarks, html_first=True)


def normalize_photo_url(url: Optional[str]) -> Optional[str]:
    """Upgrade protocol-relative and bare URLs to absolute HTTPS."""
    if not url or not isinstance(url, str):
        return None
    url = url.strip()
    if not url:
        return None
    if url.startswith("//"):
        return f"https:{url}"
    if not url.startswith("http"):
        return f"https://{url}"
    return url


def _dedupe_urls(urls: list[Optional[str]]) -> list[str]:
    seen: set[str] = set()
    result = []
    for raw in urls:
        url = normalize_photo_url(raw)
        if url and url not in seen:
            seen.add(url)
            result.append(url)
    return result


def classify_media(media: Any) -> dict[str, list[str]]:
    """Partition media items by their ``format`` into images, videos and tours.

    Items with an unrecognized format are dropped.
    """
    buckets: dict[str, list[str]] = {"images": [], "videos": [], "tours": []}
    parsed = parse_json_field(media)
    if not isinstance(parsed, list):
        return buckets

    targets = {
        MEDIA_FORMAT_IMAGE: buckets["images"],
        MEDIA_FORMAT_VIDEO: buckets["videos"],
        MEDIA_FORMAT_TOUR: buckets["tours"],
    }
    for item in parsed:
        if not isinstance(item, dict):
            continue
        bucket = targets.get(item.get("format"))
        if bucket is not None and item.get("url"):
            bucket.append(item["url"])

    return {name: _dedupe_urls(urls) for name, urls in buckets.items()}


def format_office_address(office_address: Any) -> str:
    """Join street, city, state and postal code; raw string on parse failure."""
    if not office_address:
        return ""
    parsed = parse_json_field(office_address)
    if not isinstance(parsed, dict):
        return str(parsed)
    parts = [
        parsed.get("streetAddress"),
        parsed.get("city"),
        parsed.get("stateProvince"),
        parsed.get("postalCode"),
    ]
    return ", ".join(str(part) for part in parts if part)


def parse_mls_numbers(mls_numbers: Any) -> list[str]:
    """Cross-referenced MLS numbers; an unparseable string is kept as the only number."""
    if not mls_numbers:
        return []
    parsed = parse_json_field(mls_numbers)
    if isinstance(parsed, list):
        return [str(number) for number in parsed if number not in (None, "")]
    return [str(parsed)]


def parse_license_number(license_info: Any) -> Optional[str]:
    """Primary license number, else the first one listed."""
    if not license_info:
        return None
    parsed = parse_json_field(license_info)
    if isinstance(parsed, (str, int, float)) and not isinstance(parsed, bool):
        return str(parsed)
    if isinstance(parsed, list) and parsed:
        licenses = [item for item in parsed if isinstance(item, dict)]
        if not licenses:
            return None
        primary = next((item for item in licenses if item.get("isPrimary")), licenses[0])
        number = primary.get("number")
        return str(number) if number else None
    return None


def normalize_mls_number(value: Any) -> Optional[str]:
    """Canonical external listing number used to match records across feeds."""
    if value is None:
        return None
    text = _MLS_PREFIX.sub("", str(value).strip()).upper()
    return text or None


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_date(value: Any) -> Optional[date]:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = _parse_datetime(value)
    return parsed.date() if parsed else None


def _to_text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def days_on_market(listing_date: Optional[date], end_date: Optional[date] = None) -> Optional[int]:
    """Days from list date to close date (or today)."""
    if listing_date is None:
        return None
    return ((end_date or date.today()) - listing_date).days


def _open_house(start: Any, end: Any = None, remarks: Any = None) -> Optional[OpenHouse]:
    start_at = _parse_datetime(start)
    if start_at is None:
        return None
    return OpenHouse(start=start_at, end=_parse_datetime(end), remarks=remarks or None)


def _primary_media_urls(media: Any) -> list[Optional[str]]:
    parsed = parse_json_field(media)
    if not isinstance(parsed, list):
        return []
    urls = []
    for item in parsed:
        if isinstance(item, str):
            # Either a JSON blob or a bare URL
            item = parse_json_field(item)
        if isinstance(item, dict):
            urls.append(item.get("MediaURL") or item.get("url"))
        elif isinstance(item, str):
            urls.append(item)
    return urls


def normalize_primary(row: dict) -> Listing:
    """Primary MLS replication row -> Listing."""
    listing_date = _parse_date(row.get("listing_date"))
    sold_date = _parse_date(row.get("close_date"))

    open_houses = []
    window = _open_house(
        row.get("open_house_start_time"),
        row.get("open_house_end_time"),
        row.get("open_house_remarks"),
    )
    if window:
        open_houses.append(window)

    agent_ids = [
        row.get(column)
        for column in ("list_agent_mls_id", "co_list_agent_mls_id", "buyer_agent_mls_id", "co_buyer_agent_mls_id")
    ]

    return Listing(
        id=str(row["id"]),
        mls_number=_to_text(row.get("listing_id")),
        status=row.get("status"),
        property_type=row.get("property_type"),
        property_sub_type=row.get("property_sub_type"),
        address=row.get("address"),
        city=row.get("city"),
        state=row.get("state"),
        zip_code=row.get("zip_code"),
        neighborhood=row.get("subdivision_name") or row.get("mls_area_minor"),
        subdivision_name=row.get("subdivision_name"),
        latitude=_to_float(row.get("latitude")),
        longitude=_to_float(row.get("longitude")),
        list_price=_to_float(row.get("list_price")),
        sold_price=_to_float(row.get("sold_price")),
        bedrooms=_to_float(row.get("bedrooms")),
        bathrooms=_to_float(row.get("bathrooms_total")),
        square_feet=_to_float(row.get("square_feet")) or _to_float(row.get("living_area")),
        lot_size_acres=_to_float(row.get("lot_size_acres")),
        year_built=_to_int(row.get("year_built")),
        photos=_dedupe_urls([row.get("preferred_photo")] + _primary_media_urls(row.get("media"))),
        virtual_tours=_dedupe_urls([row.get("virtual_tour_url")]),
        description=row.get("description"),
        agent_mls_ids=list(dict.fromkeys(str(agent_id) for agent_id in agent_ids if agent_id)),
        agent_name=row.get("list_agent_full_name"),
        office_name=row.get("list_office_name"),
        listing_date=listing_date,
        listed_at=_parse_datetime(row.get("listing_date")),
        status_change_date=_parse_date(row.get("status_change_date")),
        sold_date=sold_date,
        days_on_market=days_on_market(listing_date, sold_date),
        open_houses=open_houses,
        source=ListingSource.PRIMARY,
    )


def _secondary_open_houses(value: Any) -> list[OpenHouse]:
    parsed = parse_json_field(value)
    if not isinstance(parsed, list):
        return []
    windows = []
    for item in parsed:
        if not isinstance(item, dict):
            continue
        window = _open_house(item.get("startTime"), item.get("endTime"), item.get("remarks"))
        if window:
            windows.append(window)
    return windows


def normalize_secondary(row: dict, plain_text_remarks: bool = False) -> Listing:
    """Secondary brokerage feed row -> Listing."""
    mls_numbers = parse_mls_numbers(row.get("mls_numbers"))
    media = classify_media(row.get("media"))
    if row.get("media") and isinstance(parse_json_field(row.get("media")), str):
        logger.warning(
            "Unparseable media payload on secondary listing",
            rfg_listing_id=row.get("rfg_listing_id"),
        )

    remarks = row.get("remarks")
    description = parse_remarks(remarks) if plain_text_remarks else parse_remarks_html(remarks)

    listing_date = _parse_date(row.get("listed_on"))
    sold_date = _parse_date(row.get("closed_on"))
    agent_id = row.get("agent_mls_id")

    return Listing(
        id=str(row.get("rfg_listing_id") or row["id"]),
        mls_number=mls_numbers[0] if mls_numbers else None,
        cross_reference_numbers=mls_numbers[1:],
        status=row.get("listing_status"),
        property_type=row.get("property_type"),
        property_sub_type=row.get("property_sub_type"),
        address=row.get("street_address"),
        city=row.get("city"),
        state=row.get("state_province"),
        zip_code=row.get("postal_code"),
        neighborhood=row.get("subdivision") or row.get("area"),
        subdivision_name=row.get("subdivision"),
        latitude=_to_float(row.get("latitude")),
        longitude=_to_float(row.get("longitude")),
        list_price=_to_float(row.get("list_price")),
        sold_price=_to_float(row.get("sold_price")),
        bedrooms=_to_float(row.get("bedrooms")),
        bathrooms=_to_float(row.get("bathrooms")),
        square_feet=_to_float(row.get("square_feet")),
        lot_size_acres=_to_float(row.get("lot_size_acres")),
        year_built=_to_int(row.get("year_built")),
        photos=_dedupe_urls([row.get("default_photo_url")] + media["images"]),
        videos=media["videos"],
        virtual_tours=media["tours"],
        description=description or None,
        agent_mls_ids=[str(agent_id)] if agent_id else [],
        agent_name=row.get("agent_name"),
        agent_license_number=parse_license_number(row.get("agent_license_info")),
        office_name=row.get("office_name"),
        office_address=format_office_address(row.get("office_address")) or None,
        listing_date=listing_date,
        listed_at=_parse_datetime(row.get("listed_on")),
        status_change_date=_parse_date(row.get("status_changed_on")),
        sold_date=sold_date,
        days_on_market=days_on_market(listing_date, sold_date),
        open_houses=_secondary_open_houses(row.get("open_houses")),
        source=ListingSource.SECONDARY,
    )


def total_bathrooms(row: dict) -> Optional[float]:
    """Full and three-quarter baths count as one, half baths as one half."""
    full = _to_float(row.get("bathrooms_full"))
    three_quarter = _to_float(row.get("bathrooms_three_quarter"))
    half = _to_float(row.get("bathrooms_half"))
    if full is None and three_quarter is None and half is None:
        return None
    return (full or 0) + (three_quarter or 0) + (half or 0) * 0.5


def _off_market_photo_urls(photos: Any) -> list[Optional[str]]:
    parsed = parse_json_field(photos)
    if not isinstance(parsed, list):
        return []
    return [item.get("url") if isinstance(item, dict) else item for item in parsed]


def normalize_off_market(row: dict) -> Listing:
    """Curated off-market content row -> Listing."""
    listing_date = _parse_date(row.get("listing_date"))
    sold_date = _parse_date(row.get("sold_date"))

    return Listing(
        id=str(row["id"]),
        mls_number=None,
        status=row.get("status"),
        property_type=row.get("property_type"),
        property_sub_type=row.get("property_sub_type"),
        address=row.get("address"),
        city=row.get("city"),
        state=row.get("state"),
        zip_code=row.get("zip_code"),
        neighborhood=row.get("subdivision_name") or row.get("mls_area_minor"),
        subdivision_name=row.get("subdivision_name"),
        latitude=_to_float(row.get("latitude")),
        longitude=_to_float(row.get("longitude")),
        list_price=_to_float(row.get("list_price")),
        sold_price=_to_float(row.get("sold_price")),
        bedrooms=_to_float(row.get("bedrooms")),
        bathrooms=total_bathrooms(row),
        square_feet=_to_float(row.get("square_feet")),
        lot_size_acres=_to_float(row.get("lot_size")),
        year_built=_to_int(row.get("year_built")),
        photos=_dedupe_urls([row.get("featured_image")] + _off_market_photo_urls(row.get("photos"))),
        virtual_tours=_dedupe_urls([row.get("virtual_tour_url")]),
        description=row.get("description"),
        agent_name=row.get("agent_name"),
        office_name=row.get("office_name"),
        listing_date=listing_date,
        listed_at=_parse_datetime(row.get("listing_date")),
        sold_date=sold_date,
        days_on_market=days_on_market(listing_date, sold_date),
        slug=row.get("slug"),
        featured=bool(row.get("featured")),
        requires_registration=bool(row.get("requires_registration")),
        source=ListingSource.OFF_MARKET,
    )


_NORMALIZERS = {
    ListingSource.PRIMARY: normalize_primary,
    ListingSource.SECONDARY: normalize_secondary,
    ListingSource.OFF_MARKET: normalize_off_market,
}


def normalize(row: dict, source: ListingSource) -> Listing:
    """Dispatch a raw row to its source-specific parser."""
    return _NORMALIZERS[ListingSource(source)](row)
