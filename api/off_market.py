"""Off-market listings endpoint.

Without parameters returns every published listing; with ``slug`` returns
the one published listing for that slug (empty when absent).
"""

from src.services.off_market import get_off_market_by_slug, list_off_market
from src.utils.http import JSONHandler
from src.utils.logging import setup_logging

setup_logging()


async def get_off_market(params: dict) -> dict:
    slug = params.get("slug")
    if slug:
        listing = await get_off_market_by_slug(slug)
        listings = [listing] if listing else []
    else:
        listings = await list_off_market()
    return {
        "listings": [listing.model_dump(mode="json") for listing in listings],
        "total": len(listings),
    }


class handler(JSONHandler):
    """Vercel serverless function handler for off-market listings."""

    def do_GET(self):
        self.respond("off_market", get_off_market)
