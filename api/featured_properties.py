"""Featured properties endpoint (carousel of the priciest active homes)."""

from src.services.listing_search import featured_properties
from src.utils.http import JSONHandler, parse_int, parse_list
from src.utils.logging import setup_logging

setup_logging()


async def get_featured(params: dict) -> dict:
    cities = parse_list(params.get("cities")) or parse_list(params.get("city")) or []
    listings = await featured_properties(cities, limit=parse_int(params.get("limit")))
    return {
        "listings": [listing.model_dump(mode="json") for listing in listings],
        "total": len(listings),
    }


class handler(JSONHandler):
    """Vercel serverless function handler for featured properties."""

    def do_GET(self):
        self.respond("featured_properties", get_featured)
