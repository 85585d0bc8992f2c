"""Helpers shared by the serverless API handlers."""

import asyncio
import json
from http.server import BaseHTTPRequestHandler
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import parse_qs, urlparse

from src.models.query import ListingFilters
from src.utils.errors import InvalidRequestError, ListingNotFoundError, QueryFailedError, TeamRosterError
from src.utils.logging import correlation_context, get_structured_logger
from src.utils.logging_config import LoggingConfig

logger = get_structured_logger(__name__)

EMPTY_RESULTS = {"listings": [], "total": 0}


def parse_query(path: str) -> dict[str, str]:
    """Single-valued query parameters (first value wins)."""
    params = parse_qs(urlparse(path).query, keep_blank_values=False)
    return {key: values[0] for key, values in params.items() if values}


def parse_int(value: Optional[str]) -> Optional[int]:
    """Integer query parameter; unparsable values are ignored."""
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def parse_float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value.strip())
    except ValueError:
        return None


def parse_list(value: Optional[str]) -> Optional[list[str]]:
    """Comma-separated parameter; None when nothing usable was given."""
    if not value:
        return None
    items = [item.strip() for item in value.split(",") if item.strip()]
    return items or None


def parse_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() == "true"


def parse_filters(params: dict[str, str]) -> ListingFilters:
    """Translate search query parameters into caller filters."""
    statuses = parse_list(params.get("status"))
    cities = parse_list(params.get("city"))
    return ListingFilters(
        statuses=frozenset(statuses) if statuses else None,
        property_type=params.get("type") or None,
        property_sub_type=params.get("subtype") or None,
        cities=frozenset(cities) if cities else None,
        neighborhood=params.get("neighborhood") or None,
        min_price=parse_float(params.get("minPrice")),
        max_price=parse_float(params.get("maxPrice")),
        min_beds=parse_float(params.get("beds")),
        max_beds=parse_float(params.get("maxBeds")),
        min_baths=parse_float(params.get("baths")),
        max_baths=parse_float(params.get("maxBaths")),
        min_sqft=parse_float(params.get("minSqft")),
        max_sqft=parse_float(params.get("maxSqft")),
        keyword=params.get("q") or None,
    )


def run_async(coro: Awaitable) -> Any:
    """Run a coroutine to completion from a synchronous handler."""
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = None
    # Cached Supabase clients are bound to this loop
    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


class JSONHandler(BaseHTTPRequestHandler):
    """Base for GET endpoints that answer with a JSON body."""

    # Cache on the CDN for 30s, serve stale while revalidating for 60s
    cache_control = "public, s-maxage=30, stale-while-revalidate=60"

    def send_json(self, status: int, payload: Any, cache: bool = False):
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        if cache:
            self.send_header('Cache-Control', self.cache_control)
        self.end_headers()
        self.wfile.write(json.dumps(payload, default=str).encode('utf-8'))

    def respond(self, endpoint: str, produce: Callable[[dict[str, str]], Awaitable[Any]], empty: Any = None):
        """Run ``produce`` with the parsed query and map engine errors to status codes.

        A missing parameter answers 400 and an unknown listing 404. A failed
        store query answers 502 with ``empty`` (the empty results payload by
        default); anything unexpected answers 500.
        """
        empty = EMPTY_RESULTS if empty is None else empty
        headers = getattr(self, "headers", None)
        incoming = headers.get(LoggingConfig.CORRELATION_ID_HEADER) if headers else None
        with correlation_context(incoming):
            try:
                payload = run_async(produce(parse_query(self.path)))
            except InvalidRequestError as e:
                self.send_json(400, {"error": str(e)})
                return
            except ListingNotFoundError as e:
                logger.info("Listing not found", endpoint=endpoint, identifier=e.identifier)
                self.send_json(404, {"error": "listing not found"})
                return
            except (QueryFailedError, TeamRosterError) as e:
                logger.error(
                    "Upstream query failed",
                    endpoint=endpoint,
                    error=str(e)
                )
                self.send_json(502, empty)
                return
            except Exception as e:
                logger.exception(
                    "Unhandled error",
                    endpoint=endpoint,
                    error=str(e)
                )
                self.send_json(500, {"error": "internal server error"})
                return

        self.send_json(200, payload, cache=True)
