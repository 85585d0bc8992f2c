"""Upcoming open houses endpoint."""

from src.services.listing_search import open_houses
from src.utils.http import JSONHandler, parse_int
from src.utils.logging import setup_logging

setup_logging()


async def get_open_houses(params: dict) -> dict:
    listings = await open_houses(limit=parse_int(params.get("limit")))
    return {
        "listings": [listing.model_dump(mode="json") for listing in listings],
        "total": len(listings),
    }


class handler(JSONHandler):
    """Vercel serverless function handler for open houses."""

    def do_GET(self):
        self.respond("open_houses", get_open_houses)
