"""Per-agent listings endpoint (active and sold buckets).

``status`` picks what ``listings`` holds: ``active`` (default), ``sold`` or
``all`` (active then sold). ``listings`` is cut to ``limit`` (20 by default);
the two buckets are returned alongside it.
"""

from src.services.listing_search import agent_listings
from src.utils.http import JSONHandler, parse_int
from src.utils.logging import setup_logging

setup_logging()

DEFAULT_RESPONSE_LIMIT = 20

EMPTY_AGENT_RESULTS = {"active_listings": [], "sold_listings": [], "listings": [], "total": 0}


def select_listings(payload: dict, status: str, limit: int) -> list:
    status = (status or "active").strip().lower()
    if status == "sold":
        listings = payload["sold_listings"]
    elif status == "all":
        listings = payload["active_listings"] + payload["sold_listings"]
    else:
        listings = payload["active_listings"]
    return listings[:limit]


async def get_agent_listings(params: dict) -> dict:
    limit = parse_int(params.get("limit"))
    if limit is None or limit < 1:
        limit = DEFAULT_RESPONSE_LIMIT
    result = await agent_listings(
        params.get("agentId") or "",
        sold_agent_id=params.get("soldAgentId"),
        limit=limit,
    )
    payload = result.model_dump(mode="json")
    payload["listings"] = select_listings(payload, params.get("status"), limit)
    payload["total"] = len(payload["listings"])
    return payload


class handler(JSONHandler):
    """Vercel serverless function handler for agent listings."""

    def do_GET(self):
        self.respond("agent_listings", get_agent_listings, empty=EMPTY_AGENT_RESULTS)
