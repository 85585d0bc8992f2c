"""Tests for request-level search orchestration."""

from unittest.mock import AsyncMock, patch

import pytest

from src.models.query import ListingFilters, SortOption, TeamScope
from src.models.rules import RuleSet, SearchView
from src.services import listing_search
from src.services.aggregator import Aggregator
from src.utils.engine_config import EngineConfig
from src.utils.errors import TeamRosterError
from tests.utils.factories import create_primary_row
from tests.utils.fakes import FakeListingStore, StaticResolver


@pytest.fixture
def store():
    return FakeListingStore([
        create_primary_row(id="1", city="Aspen", status="Active", list_agent_mls_id="A1"),
        create_primary_row(id="2", city="Basalt", status="Closed", sold_price=2_000_000),
        create_primary_row(id="3", city="Basalt", status="Sold", sold_price=4_000_000),
        create_primary_row(id="4", city="Denver", status="Active"),
        create_primary_row(id="5", city="Aspen", status="Active", property_type="Commercial Sale"),
        create_primary_row(id="6", city="Aspen", status=None, list_office_name="Retter & Company"),
    ])


@pytest.mark.unit
@pytest.mark.asyncio
async def test_search_excludes_sold_and_commercial_by_default(store, static_resolver):
    result = await listing_search.search(resolver=static_resolver, aggregator=Aggregator(store))

    assert sorted(listing.id for listing in result.listings) == ["1", "4", "6"]
    assert result.total == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_search_explicit_status_still_excludes_sold(store, static_resolver):
    """An explicit status filter narrows; it does not lift the sold default."""
    filters = ListingFilters(statuses=frozenset({"Active", "Closed"}))

    result = await listing_search.search(filters, resolver=static_resolver, aggregator=Aggregator(store))

    assert sorted(listing.id for listing in result.listings) == ["1", "4"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_search_applies_allowed_cities(store):
    resolver = StaticResolver(RuleSet(allowed_cities=frozenset({"Aspen", "Basalt"})))
    aggregator = Aggregator(store)

    allowed = await listing_search.search(
        ListingFilters(cities=frozenset({"basalt", "Denver"})),
        resolver=resolver,
        aggregator=aggregator,
        view=SearchView.SOLD,
    )
    outside = await listing_search.search(
        ListingFilters(cities=frozenset({"Denver"})),
        resolver=resolver,
        aggregator=aggregator,
    )

    assert sorted(listing.id for listing in allowed.listings) == ["2", "3"]
    assert outside.total == 0
    assert outside.listings == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_search_sold_view_sorted_by_sold_price(store, static_resolver):
    result = await listing_search.search_sold(resolver=static_resolver, aggregator=Aggregator(store))

    assert [listing.id for listing in result.listings] == ["3", "2"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sold_view_narrows_requested_statuses_to_sold(store, static_resolver):
    filters = ListingFilters(statuses=frozenset({"Active", "Closed"}))

    result = await listing_search.search(
        filters, view=SearchView.SOLD, resolver=static_resolver, aggregator=Aggregator(store)
    )

    assert [listing.id for listing in result.listings] == ["2"]
    assert result.total == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sold_view_with_only_active_status_is_empty(store, static_resolver):
    result = await listing_search.search(
        ListingFilters(statuses=frozenset({"Active"})),
        view=SearchView.SOLD,
        resolver=static_resolver,
        aggregator=Aggregator(store),
    )

    assert result.listings == []
    assert result.total == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_search_our_team_fetches_roster(store, static_resolver):
    scope = TeamScope(agent_ids=frozenset({"A1"}), office_names=frozenset({"Retter & Company"}))
    with patch("src.services.listing_search.load_team_scope", new_callable=AsyncMock) as mock_scope:
        mock_scope.return_value = scope

        result = await listing_search.search(
            our_team=True,
            sort=SortOption.NEWEST,
            resolver=static_resolver,
            aggregator=Aggregator(store),
        )

    assert sorted(listing.id for listing in result.listings) == ["1", "6"]
    mock_scope.assert_awaited_once()
    assert static_resolver.calls == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_search_our_team_empty_roster_is_empty(store, static_resolver):
    with patch("src.services.listing_search.load_team_scope", new_callable=AsyncMock) as mock_scope:
        mock_scope.return_value = TeamScope()

        result = await listing_search.search(our_team=True, resolver=static_resolver, aggregator=Aggregator(store))

    assert result.total == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_search_our_team_roster_failure_propagates(store, static_resolver):
    with patch("src.services.listing_search.load_team_scope", new_callable=AsyncMock) as mock_scope:
        mock_scope.side_effect = TeamRosterError("roster down")

        with pytest.raises(TeamRosterError):
            await listing_search.search(our_team=True, resolver=static_resolver, aggregator=Aggregator(store))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_search_without_team_does_not_load_roster(store, static_resolver):
    with patch("src.services.listing_search.load_team_scope", new_callable=AsyncMock) as mock_scope:
        await listing_search.search(resolver=static_resolver, aggregator=Aggregator(store))

    mock_scope.assert_not_awaited()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_team_listings_ignore_configuration(store):
    scope = TeamScope(office_names=frozenset({"retter & company"}))
    with patch("src.services.listing_search.load_team_scope", new_callable=AsyncMock) as mock_scope:
        mock_scope.return_value = scope

        result = await listing_search.team_listings(aggregator=Aggregator(store))

    assert [listing.id for listing in result.listings] == ["6"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_team_listings_total_covers_rows_beyond_fetch_limit(monkeypatch):
    monkeypatch.setattr(EngineConfig, "CROSS_SOURCE_FETCH_LIMIT", 3)
    store = FakeListingStore([
        create_primary_row(id=str(index), list_agent_mls_id="T1", listing_date=f"2024-11-0{index}")
        for index in range(1, 8)
    ])
    scope = TeamScope(agent_ids=frozenset({"T1"}))
    with patch("src.services.listing_search.load_team_scope", new_callable=AsyncMock) as mock_scope:
        mock_scope.return_value = scope

        pages = [
            await listing_search.team_listings(page=number, page_size=3, aggregator=Aggregator(store))
            for number in (1, 2, 3)
        ]

    assert [page.total for page in pages] == [7, 7, 7]
    assert [[listing.id for listing in page.listings] for page in pages] == [
        ["7", "6", "5"], ["4", "3", "2"], ["1"],
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_featured_properties_apply_rules(store):
    resolver = StaticResolver(RuleSet(excluded_property_sub_types=frozenset({"Single Family Residence"})))

    listings = await listing_search.featured_properties(["Aspen"], resolver=resolver, aggregator=Aggregator(store))

    assert listings == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_agent_listings_skip_configuration(store):
    result = await listing_search.agent_listings("A1", aggregator=Aggregator(store))

    assert [listing.id for listing in result.active_listings] == ["1"]
    assert result.sold_listings == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_listing_options_uses_resolved_rules(store):
    resolver = StaticResolver(RuleSet(allowed_cities=frozenset({"Aspen"})))

    options = await listing_search.listing_options(resolver=resolver, aggregator=Aggregator(store))

    assert options.cities == ["Aspen"]
    assert "Commercial Sale" not in options.property_types
    assert "Closed" not in options.statuses


@pytest.mark.unit
@pytest.mark.asyncio
async def test_listing_detail_prefers_listing_number_then_id():
    store = FakeListingStore([
        create_primary_row(id="7", listing_id="100"),
        create_primary_row(id="100", listing_id="555"),
    ])
    aggregator = Aggregator(store)

    by_number = await listing_search.listing_detail("MLS# 100", aggregator=aggregator)
    by_id = await listing_search.listing_detail("7", aggregator=aggregator)
    missing = await listing_search.listing_detail("404404", aggregator=aggregator)
    blank = await listing_search.listing_detail("  ", aggregator=aggregator)

    assert by_number.id == "7"
    assert by_id.id == "7"
    assert missing is None
    assert blank is None
