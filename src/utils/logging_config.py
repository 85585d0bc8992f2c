"""Logging configuration read from environment variables."""

import os
import logging
import sys
from pythonjsonlogger import jsonlogger

# Client libraries that log every HTTP round trip to PostgREST
_QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "h2", "supabase", "postgrest", "gotrue", "realtime")


class LoggingConfig:
    """Log level, format and what the engine may write about a request."""

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json").lower()
    LOG_QUERY_TEXT = os.environ.get("LOG_QUERY_TEXT", "true").lower() == "true"
    LOG_SLOW_OPERATION_THRESHOLD_MS = int(os.environ.get("LOG_SLOW_OPERATION_THRESHOLD_MS", "1000"))
    CORRELATION_ID_HEADER = os.environ.get("LOG_CORRELATION_ID_HEADER", "X-Correlation-ID")

    @classmethod
    def level(cls) -> int:
        return getattr(logging, cls.LOG_LEVEL, logging.INFO)

    @classmethod
    def formatter(cls) -> logging.Formatter:
        if cls.LOG_FORMAT == "json":
            return jsonlogger.JsonFormatter(
                "%(timestamp)s %(levelname)s %(name)s %(message)s",
                timestamp=True
            )
        return logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    @classmethod
    def setup_logging(cls) -> None:
        """Replace the root handlers with one stdout handler (serverless logs)."""
        root_logger = logging.getLogger()
        root_logger.setLevel(cls.level())
        root_logger.handlers.clear()

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(cls.level())
        handler.setFormatter(cls.formatter())
        root_logger.addHandler(handler)

        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
