"""Shared pytest fixtures and configuration."""

import os
import pytest
from unittest.mock import MagicMock
from freezegun import freeze_time

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("LOG_FORMAT", "text")

from src.models.rules import RuleSet
from tests.utils.fakes import FakeListingStore, StaticResolver
from tests.utils.helpers import make_query


@pytest.fixture
def mock_supabase_client():
    """Mock async Supabase client whose table() returns a chainable query."""
    client = MagicMock()
    query = make_query()
    client.table.return_value = query
    client.query = query
    return client


@pytest.fixture
def primary_store():
    """Empty in-memory primary listing store."""
    return FakeListingStore()


@pytest.fixture
def static_resolver():
    """Resolver that always returns the empty rule set."""
    return StaticResolver(RuleSet.empty())


@pytest.fixture
def sample_mls_configuration():
    """Configuration document as stored, with toggled-on and toggled-off entries."""
    return {
        "excludedPropertyTypes": [
            {"propertyType": "Commercial Lease", "excluded": True},
            {"propertyType": "Fractional", "excluded": False},
        ],
        "excludedPropertySubTypes": [
            {"propertySubType": "Mobile Home", "excluded": True},
        ],
        "allowedCities": [
            {"city": "Aspen", "allowed": True},
            {"city": "Basalt", "allowed": True},
            {"city": "Carbondale", "allowed": False},
        ],
        "excludedStatuses": [
            {"status": "Withdrawn", "excluded": True},
        ],
    }


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00") as frozen_time:
        yield frozen_time


@pytest.fixture(scope="function")
def reset_environment(monkeypatch):
    """Reset environment variables for each test."""
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)
