"""Structured logging for the listings engine.

Every record carries the request's correlation id (held in a contextvar so it
follows the request across awaits), store operations are timed, and filter
specifications are logged as a compact summary of their active predicates.
"""

import asyncio
import logging
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from src.utils.logging_config import LoggingConfig, get_logger

if TYPE_CHECKING:
    from src.models.query import FilterSpecification


_correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)


def generate_correlation_id() -> str:
    """New request id, e.g. ``req_3f2a9c1b7d4e``."""
    return f"req_{uuid.uuid4().hex[:12]}"


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: Optional[str]) -> None:
    _correlation_id_var.set(correlation_id)


@contextmanager
def correlation_context(correlation_id: Optional[str] = None):
    """Bind a correlation id for the duration of one request.

    A new id is generated when none is given; the previous id is restored on
    exit so nested contexts behave.
    """
    previous = get_correlation_id()
    correlation_id = correlation_id or generate_correlation_id()
    set_correlation_id(correlation_id)
    try:
        yield correlation_id
    finally:
        set_correlation_id(previous)


def sanitize_query_text(text: Optional[str], max_length: int = 100) -> Optional[str]:
    """Free-text search input as it may appear in logs (None when disabled)."""
    if not LoggingConfig.LOG_QUERY_TEXT or not text:
        return None
    return text if len(text) <= max_length else text[:max_length] + "..."


def filter_summary(spec: "FilterSpecification") -> Dict[str, Any]:
    """Active predicates of a specification, for log fields.

    Sets are reported as sorted lists, the team scope as member counts, and
    unset predicates are omitted.
    """
    summary: Dict[str, Any] = {}
    for name in ("statuses", "cities"):
        values = getattr(spec, name)
        if values is not None:
            summary[name] = sorted(values)
    for name in ("property_type", "property_sub_type", "neighborhood"):
        value = getattr(spec, name)
        if value:
            summary[name] = value
    keyword = sanitize_query_text(spec.keyword)
    if keyword:
        summary["keyword"] = keyword
    for name in (
        "min_price", "max_price", "min_beds", "max_beds",
        "min_baths", "max_baths", "min_sqft", "max_sqft",
    ):
        value = getattr(spec, name)
        if value is not None:
            summary[name] = value
    for name in ("excluded_statuses", "excluded_property_types", "excluded_property_sub_types"):
        values = getattr(spec, name)
        if values:
            summary[name] = sorted(values)
    if spec.team_scope is not None:
        summary["team_scope"] = {
            "agent_ids": len(spec.team_scope.agent_ids),
            "agent_names": len(spec.team_scope.agent_names),
            "office_names": len(spec.team_scope.office_names),
        }
    if spec.require_list_price:
        summary["require_list_price"] = True
    if spec.unsatisfiable:
        summary["unsatisfiable"] = True
    return summary


class StructuredLogger:
    """Wraps a stdlib logger; keyword arguments become JSON fields."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def _fields(self, **kwargs: Any) -> Dict[str, Any]:
        fields: Dict[str, Any] = {"timestamp": datetime.now(timezone.utc).isoformat()}
        correlation_id = get_correlation_id()
        if correlation_id:
            fields["correlation_id"] = correlation_id
        fields.update(kwargs)
        return fields

    def debug(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(message, extra=self._fields(**kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self.logger.info(message, extra=self._fields(**kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self.logger.warning(message, extra=self._fields(**kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self.logger.error(message, extra=self._fields(**kwargs), exc_info=exc_info)

    def exception(self, message: str, **kwargs: Any) -> None:
        self.logger.exception(message, extra=self._fields(**kwargs))


def get_structured_logger(name: str) -> StructuredLogger:
    return StructuredLogger(get_logger(name))


@contextmanager
def log_timing(operation_name: str, logger: Optional[StructuredLogger] = None, **context: Any):
    """Time a block; operations over LOG_SLOW_OPERATION_THRESHOLD_MS log a warning."""
    logger = logger or get_structured_logger(__name__)
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.debug(
            f"{operation_name} finished",
            operation=operation_name,
            processing_time_ms=elapsed_ms,
            **context
        )
        if elapsed_ms > LoggingConfig.LOG_SLOW_OPERATION_THRESHOLD_MS:
            logger.warning(
                f"Slow operation: {operation_name}",
                operation=operation_name,
                processing_time_ms=elapsed_ms,
                threshold_ms=LoggingConfig.LOG_SLOW_OPERATION_THRESHOLD_MS,
                **context
            )


def timed(operation_name: Optional[str] = None, logger: Optional[StructuredLogger] = None):
    """Decorator form of log_timing for sync and async callables."""
    def decorator(func: Callable) -> Callable:
        name = operation_name or f"{func.__module__}.{func.__name__}"
        log = logger or get_structured_logger(func.__module__)

        if asyncio.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                with log_timing(name, logger=log):
                    return await func(*args, **kwargs)
            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            with log_timing(name, logger=log):
                return func(*args, **kwargs)
        return sync_wrapper

    return decorator


def setup_logging() -> logging.Logger:
    """Configure the root logger from LoggingConfig and return this module's logger."""
    LoggingConfig.setup_logging()
    return get_logger(__name__)
