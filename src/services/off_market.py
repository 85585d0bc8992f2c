"""Off-market gate - curated listings visible only when explicitly published.

MLS configuration rules and pagination do not apply to this set.
"""

from typing import Optional

from src.models.listing import Listing
from src.services.normalizer import normalize_off_market
from src.services.supabase_client import get_published_off_market_rows
from src.utils.logging import get_structured_logger, timed

logger = get_structured_logger(__name__)


def is_published(row: dict) -> bool:
    """Only an explicit True flag publishes a row."""
    return row.get("is_published") is True


def _visible(rows: list[dict]) -> list[Listing]:
    listings = []
    hidden = 0
    for row in rows:
        if not is_published(row):
            hidden += 1
            continue
        listings.append(normalize_off_market(row))
    if hidden:
        logger.warning("Unpublished off-market rows returned by store", hidden=hidden)
    return listings


@timed("list_off_market", logger=logger)
async def list_off_market() -> list[Listing]:
    """All published off-market listings, featured first then newest."""
    rows = await get_published_off_market_rows()
    listings = _visible(rows)
    logger.info("Off-market listings fetched", returned=len(listings))
    return listings


async def get_off_market_by_slug(slug: str) -> Optional[Listing]:
    """One published off-market listing, or None."""
    slug = (slug or "").strip()
    if not slug:
        return None
    listings = _visible(await get_published_off_market_rows(slug=slug))
    return listings[0] if listings else None
