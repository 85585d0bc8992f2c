"""Error handling utilities."""

from typing import Optional


class ListingsEngineError(Exception):
    """Base exception for the listings engine."""
    pass


class SupabaseError(ListingsEngineError):
    """Supabase client or configuration error."""
    pass


class QueryFailedError(SupabaseError):
    """A backing-store query failed."""

    def __init__(self, operation: str, message: Optional[str] = None):
        self.operation = operation
        super().__init__(f"Query failed ({operation}): {message}" if message else f"Query failed ({operation})")


class ConfigurationFetchError(ListingsEngineError):
    """MLS configuration document could not be fetched or parsed."""
    pass


class TeamRosterError(ListingsEngineError):
    """Team roster could not be loaded."""
    pass


class InvalidRequestError(ListingsEngineError):
    """A required request parameter is missing or unusable."""
    pass


class ListingNotFoundError(ListingsEngineError):
    """No listing matches the requested identifier."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Listing not found: {identifier}")
