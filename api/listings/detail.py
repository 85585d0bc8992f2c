"""Single listing endpoint: ``id`` is an external listing number or an internal id."""

from src.services.listing_search import listing_detail
from src.utils.errors import InvalidRequestError, ListingNotFoundError
from src.utils.http import JSONHandler
from src.utils.logging import setup_logging

setup_logging()


async def get_listing_detail(params: dict) -> dict:
    identifier = (params.get("id") or "").strip()
    if not identifier:
        raise InvalidRequestError("id is required")
    listing = await listing_detail(identifier)
    if listing is None:
        raise ListingNotFoundError(identifier)
    return listing.model_dump(mode="json")


class handler(JSONHandler):
    """Vercel serverless function handler for one listing."""

    def do_GET(self):
        self.respond("listing_detail", get_listing_detail, empty={"error": "listing unavailable"})
