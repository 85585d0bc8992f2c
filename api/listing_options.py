"""Search filter options endpoint."""

from src.services.listing_search import listing_options
from src.utils.http import JSONHandler
from src.utils.logging import setup_logging

setup_logging()


async def get_listing_options(params: dict) -> dict:
    options = await listing_options()
    return options.model_dump(mode="json")


class handler(JSONHandler):
    """Vercel serverless function handler for listing options."""

    def do_GET(self):
        self.respond("listing_options", get_listing_options, empty={})
