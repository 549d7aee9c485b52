"""Root logger configuration for processes that host the services."""

import logging
import sys

from .context import ContextFilter
from .filters import DefaultCorrelationFilter, PIIFilter
from .formatters import DevFormatter, JSONFormatter

# Vendor loggers that report every request or socket frame at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "postgrest", "realtime", "websockets")


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    environment: str = "development",
) -> logging.Handler:
    """Replace the root handlers with one stdout handler and return it.

    Filters run in order: context fields first so the correlation default can
    fall back to the booking id, masking last.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter(environment) if json_output else DevFormatter())
    handler.addFilter(ContextFilter())
    handler.addFilter(DefaultCorrelationFilter())
    handler.addFilter(PIIFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler
