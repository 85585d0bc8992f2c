"""Tests for the off-market visibility gate."""

from unittest.mock import AsyncMock, patch

import pytest

from src.services.off_market import get_off_market_by_slug, is_published, list_off_market
from tests.utils.factories import create_off_market_row


@pytest.mark.unit
@pytest.mark.parametrize("flag,expected", [
    (True, True),
    (False, False),
    (None, False),
    ("true", False),
    (1, False),
])
def test_is_published_requires_explicit_true(flag, expected):
    assert is_published({"is_published": flag}) is expected


@pytest.mark.unit
def test_is_published_missing_flag():
    assert not is_published({})


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_off_market_never_returns_unpublished():
    rows = [
        create_off_market_row(id="a", is_published=True, featured=True),
        create_off_market_row(id="b", is_published=False),
        create_off_market_row(id="c", is_published=None),
        create_off_market_row(id="d", is_published=True),
    ]
    del rows[2]["is_published"]

    with patch("src.services.off_market.get_published_off_market_rows", new_callable=AsyncMock) as mock_rows:
        mock_rows.return_value = rows

        listings = await list_off_market()

    assert [listing.id for listing in listings] == ["a", "d"]
    assert listings[0].featured is True
    assert listings[0].requires_registration is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_off_market_by_slug():
    with patch("src.services.off_market.get_published_off_market_rows", new_callable=AsyncMock) as mock_rows:
        mock_rows.return_value = [create_off_market_row(id="a", slug="hidden-gem")]

        listing = await get_off_market_by_slug(" hidden-gem ")

    assert listing.slug == "hidden-gem"
    mock_rows.assert_awaited_once_with(slug="hidden-gem")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_off_market_by_slug_unpublished_is_none():
    with patch("src.services.off_market.get_published_off_market_rows", new_callable=AsyncMock) as mock_rows:
        mock_rows.return_value = [create_off_market_row(slug="draft", is_published=False)]

        assert await get_off_market_by_slug("draft") is None
        assert await get_off_market_by_slug("") is None
