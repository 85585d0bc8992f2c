"""Listing search endpoint.

Query parameters: page, pageSize, sort, status, type, subtype, city,
neighborhood, minPrice, maxPrice, beds, maxBeds, baths, maxBaths, minSqft,
maxSqft, q, ourTeam, view (``sold`` for the sold view).
"""

from src.models.query import SortOption
from src.models.rules import SearchView
from src.services.listing_search import search
from src.utils.http import JSONHandler, parse_bool, parse_filters, parse_int
from src.utils.logging import setup_logging

setup_logging()


async def search_listings(params: dict) -> dict:
    view = SearchView.SOLD if (params.get("view") or "").lower() == SearchView.SOLD.value else SearchView.PUBLIC
    result = await search(
        filters=parse_filters(params),
        page=parse_int(params.get("page")),
        page_size=parse_int(params.get("pageSize")),
        sort=SortOption.parse(params.get("sort")),
        our_team=parse_bool(params.get("ourTeam")),
        view=view,
    )
    return result.model_dump(mode="json")


class handler(JSONHandler):
    """Vercel serverless function handler for listing search."""

    def do_GET(self):
        self.respond("listings/search", search_listings)
