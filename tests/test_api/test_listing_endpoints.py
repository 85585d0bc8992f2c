"""Tests for the listing API handlers."""

from unittest.mock import AsyncMock, patch

import pytest

from src.models.listing import Listing
from src.models.query import AgentListingsResult, ListingOptions, PageResult, SortOption
from src.models.rules import SearchView
from src.utils.errors import QueryFailedError, TeamRosterError
from src.utils.http import parse_filters, parse_query
from tests.utils.helpers import run_handler


def _listing(listing_id: str) -> Listing:
    return Listing(id=listing_id, city="Aspen", list_price=1_000_000)


@pytest.mark.unit
def test_parse_query_first_value_wins():
    assert parse_query("/api/listings/search?page=2&page=3&city=Aspen,Basalt&q=") == {
        "page": "2",
        "city": "Aspen,Basalt",
    }


@pytest.mark.unit
def test_parse_filters_ignores_unparsable_numbers():
    filters = parse_filters({
        "city": " Aspen , ,Basalt",
        "status": "Active",
        "minPrice": "abc",
        "maxPrice": "2000000",
        "beds": "3",
        "q": "Main",
    })

    assert filters.cities == frozenset({"Aspen", "Basalt"})
    assert filters.statuses == frozenset({"Active"})
    assert filters.min_price is None
    assert filters.max_price == 2_000_000
    assert filters.min_beds == 3
    assert filters.keyword == "Main"


@pytest.mark.unit
def test_search_endpoint_returns_page():
    from api.listings.search import handler

    page = PageResult(listings=[_listing("1")], total=25, page=2, page_size=24)
    with patch("api.listings.search.search", new_callable=AsyncMock) as mock_search:
        mock_search.return_value = page

        status, headers, body = run_handler(
            handler,
            "/api/listings/search?page=2&sort=price_high&ourTeam=true&city=Aspen&beds=x",
        )

    assert status == 200
    assert headers["Content-Type"] == "application/json"
    assert "Cache-Control" in headers
    assert body["total"] == 25
    assert body["total_pages"] == 2
    assert body["listings"][0]["id"] == "1"
    assert "source" not in body["listings"][0]

    kwargs = mock_search.await_args.kwargs
    assert kwargs["page"] == 2
    assert kwargs["sort"] == SortOption.PRICE_HIGH
    assert kwargs["our_team"] is True
    assert kwargs["view"] == SearchView.PUBLIC
    assert kwargs["filters"].cities == frozenset({"Aspen"})
    assert kwargs["filters"].min_beds is None


@pytest.mark.unit
def test_search_endpoint_sold_view():
    from api.listings.search import handler

    with patch("api.listings.search.search", new_callable=AsyncMock) as mock_search:
        mock_search.return_value = PageResult(page_size=24)

        status, _, body = run_handler(handler, "/api/listings/search?view=sold&page=abc")

    assert status == 200
    assert body["listings"] == []
    assert mock_search.await_args.kwargs["view"] == SearchView.SOLD
    assert mock_search.await_args.kwargs["page"] is None


@pytest.mark.unit
def test_search_endpoint_store_failure_is_502():
    from api.listings.search import handler

    with patch("api.listings.search.search", new_callable=AsyncMock) as mock_search:
        mock_search.side_effect = QueryFailedError("fetch_page", "connection reset")

        status, _, body = run_handler(handler, "/api/listings/search")

    assert status == 502
    assert body == {"listings": [], "total": 0}


@pytest.mark.unit
def test_search_endpoint_roster_failure_is_502():
    from api.listings.search import handler

    with patch("api.listings.search.search", new_callable=AsyncMock) as mock_search:
        mock_search.side_effect = TeamRosterError("roster down")

        status, _, body = run_handler(handler, "/api/listings/search?ourTeam=true")

    assert status == 502
    assert body["total"] == 0


@pytest.mark.unit
def test_search_endpoint_unexpected_error_is_500():
    from api.listings.search import handler

    with patch("api.listings.search.search", new_callable=AsyncMock) as mock_search:
        mock_search.side_effect = RuntimeError("bug")

        status, _, body = run_handler(handler, "/api/listings/search")

    assert status == 500
    assert body == {"error": "internal server error"}


@pytest.mark.unit
def test_featured_properties_endpoint():
    from api.featured_properties import handler

    with patch("api.featured_properties.featured_properties", new_callable=AsyncMock) as mock_featured:
        mock_featured.return_value = [_listing("1"), _listing("2")]

        status, _, body = run_handler(handler, "/api/featured-properties?cities=Aspen,Basalt&limit=4")

    assert status == 200
    assert body["total"] == 2
    mock_featured.assert_awaited_once_with(["Aspen", "Basalt"], limit=4)


@pytest.mark.unit
def test_featured_properties_single_city():
    from api.featured_properties import handler

    with patch("api.featured_properties.featured_properties", new_callable=AsyncMock) as mock_featured:
        mock_featured.return_value = []

        run_handler(handler, "/api/featured-properties?city=Aspen")

    mock_featured.assert_awaited_once_with(["Aspen"], limit=None)


@pytest.mark.unit
def test_open_houses_endpoint():
    from api.open_houses import handler

    with patch("api.open_houses.open_houses", new_callable=AsyncMock) as mock_open_houses:
        mock_open_houses.return_value = [_listing("1")]

        status, _, body = run_handler(handler, "/api/open-houses")

    assert status == 200
    assert [listing["id"] for listing in body["listings"]] == ["1"]


@pytest.fixture
def agent_result():
    return AgentListingsResult(
        active_listings=[_listing("1"), _listing("2"), _listing("3")],
        sold_listings=[_listing("9")],
    )


@pytest.mark.unit
@pytest.mark.parametrize("query,expected", [
    ("", ["1", "2", "3"]),
    ("&status=active", ["1", "2", "3"]),
    ("&status=sold", ["9"]),
    ("&status=all", ["1", "2", "3", "9"]),
    ("&status=bogus", ["1", "2", "3"]),
    ("&status=all&limit=2", ["1", "2"]),
    ("&status=sold&limit=0", ["9"]),
])
def test_agent_listings_endpoint_status(agent_result, query, expected):
    from api.agent_listings import handler

    with patch("api.agent_listings.agent_listings", new_callable=AsyncMock) as mock_agent:
        mock_agent.return_value = agent_result

        status, _, body = run_handler(handler, "/api/agent-listings?agentId=A1" + query)

    assert status == 200
    assert [listing["id"] for listing in body["listings"]] == expected
    assert body["total"] == len(expected)
    assert [listing["id"] for listing in body["sold_listings"]] == ["9"]


@pytest.mark.unit
def test_agent_listings_endpoint_passes_agents_and_limit(agent_result):
    from api.agent_listings import handler

    with patch("api.agent_listings.agent_listings", new_callable=AsyncMock) as mock_agent:
        mock_agent.return_value = agent_result

        run_handler(handler, "/api/agent-listings?agentId=A1&soldAgentId=A1S&limit=10")
        run_handler(handler, "/api/agent-listings?agentId=A1")

    assert mock_agent.await_args_list[0].args == ("A1",)
    assert mock_agent.await_args_list[0].kwargs == {"sold_agent_id": "A1S", "limit": 10}
    assert mock_agent.await_args_list[1].kwargs == {"sold_agent_id": None, "limit": 20}


@pytest.mark.unit
def test_agent_listings_endpoint_failure():
    from api.agent_listings import handler

    with patch("api.agent_listings.agent_listings", new_callable=AsyncMock) as mock_agent:
        mock_agent.side_effect = QueryFailedError("fetch_listings")

        status, _, body = run_handler(handler, "/api/agent-listings?agentId=A1")

    assert status == 502
    assert body["active_listings"] == [] and body["total"] == 0


@pytest.mark.unit
def test_off_market_endpoint_list_and_slug():
    from api.off_market import handler

    with patch("api.off_market.list_off_market", new_callable=AsyncMock) as mock_list, \
            patch("api.off_market.get_off_market_by_slug", new_callable=AsyncMock) as mock_slug:
        mock_list.return_value = [_listing("a")]
        mock_slug.return_value = None

        _, _, listed = run_handler(handler, "/api/off-market")
        _, _, single = run_handler(handler, "/api/off-market?slug=draft")

    assert listed["total"] == 1
    assert single == {"listings": [], "total": 0}
    mock_slug.assert_awaited_once_with("draft")


@pytest.mark.unit
def test_listing_options_endpoint():
    from api.listing_options import handler

    with patch("api.listing_options.listing_options", new_callable=AsyncMock) as mock_options:
        mock_options.return_value = ListingOptions(cities=["Aspen"], statuses=["Active"])

        status, _, body = run_handler(handler, "/api/listing-options")

    assert status == 200
    assert body["cities"] == ["Aspen"]


@pytest.mark.unit
def test_listing_detail_endpoint():
    from api.listings.detail import handler

    with patch("api.listings.detail.listing_detail", new_callable=AsyncMock) as mock_detail:
        mock_detail.return_value = _listing("42")

        status, headers, body = run_handler(handler, "/api/listings/detail?id=%20MLS%23100%20")

    assert status == 200
    assert body["id"] == "42"
    assert "Cache-Control" in headers
    mock_detail.assert_awaited_once_with("MLS#100")


@pytest.mark.unit
@pytest.mark.parametrize("path,expected_status", [
    ("/api/listings/detail", 400),
    ("/api/listings/detail?id=%20", 400),
    ("/api/listings/detail?id=missing", 404),
])
def test_listing_detail_endpoint_errors(path, expected_status):
    from api.listings.detail import handler

    with patch("api.listings.detail.listing_detail", new_callable=AsyncMock) as mock_detail:
        mock_detail.return_value = None

        status, _, body = run_handler(handler, path)

    assert status == expected_status
    assert "error" in body


@pytest.mark.unit
def test_listing_detail_endpoint_store_failure():
    from api.listings.detail import handler

    with patch("api.listings.detail.listing_detail", new_callable=AsyncMock) as mock_detail:
        mock_detail.side_effect = QueryFailedError("fetch_listing_by_id")

        status, _, body = run_handler(handler, "/api/listings/detail?id=100")

    assert status == 502
    assert body == {"error": "listing unavailable"}
