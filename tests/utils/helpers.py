"""Test helper functions."""

from io import BytesIO
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock, Mock

# PostgREST builder methods that return the builder itself
QUERY_METHODS = (
    "select", "eq", "neq", "gt", "gte", "lt", "lte", "ilike", "is_", "in_",
    "filter", "or_", "order", "limit", "range",
)


def make_query(data: Optional[list] = None, count: Optional[int] = None, error: Optional[Exception] = None) -> MagicMock:
    """Chainable mock of a Supabase query builder.

    Every filter/order method returns the same mock so calls can be asserted
    on it; ``execute`` is awaitable and returns ``data``/``count`` or raises
    ``error``.
    """
    query = MagicMock()
    for name in QUERY_METHODS:
        getattr(query, name).return_value = query
    query.not_ = query
    if error is not None:
        query.execute = AsyncMock(side_effect=error)
    else:
        query.execute = AsyncMock(return_value=MagicMock(data=data or [], count=count))
    return query


def make_client(query: MagicMock) -> MagicMock:
    client = MagicMock()
    client.table.return_value = query
    return client


def client_factory(client: Any):
    """Async factory returning ``client``, the shape ListingStore expects."""
    async def factory():
        return client
    return factory


def call_args_of(query: MagicMock, method: str) -> list[tuple]:
    """Positional args of every call to ``method`` on a mock query."""
    return [c.args for c in getattr(query, method).call_args_list]


class PostgrestError(Exception):
    """Stand-in for postgrest.exceptions.APIError carrying a code."""

    def __init__(self, message: str, code: str):
        super().__init__(message)
        self.code = code


def run_handler(handler_class, path: str) -> tuple[int, dict, Any]:
    """Invoke a handler's do_GET and return (status, headers, decoded body)."""
    import json

    class MockSocket:
        def makefile(self, *args, **kwargs):
            # No request line: the handler is constructed without dispatching
            return BytesIO(b"")
        def sendall(self, data):
            pass
        def close(self):
            pass

    h = handler_class(MockSocket(), ("127.0.0.1", 8000), None)
    h.path = path
    h.wfile = BytesIO()
    h.send_response = Mock()
    h.send_header = Mock()
    h.end_headers = Mock()

    h.do_GET()

    status = h.send_response.call_args[0][0]
    headers = {c.args[0]: c.args[1] for c in h.send_header.call_args_list}
    h.wfile.seek(0)
    body = json.loads(h.wfile.read().decode("utf-8"))
    return status, headers, body
