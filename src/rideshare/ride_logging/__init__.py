"""Structured logging for the ride services."""

from .context import ContextFilter, LogContext, log_booking_context, log_context
from .filters import DefaultCorrelationFilter, PIIFilter
from .formatters import DevFormatter, JSONFormatter
from .setup import setup_logging

__all__ = [
    "ContextFilter",
    "DefaultCorrelationFilter",
    "DevFormatter",
    "JSONFormatter",
    "LogContext",
    "PIIFilter",
    "log_booking_context",
    "log_context",
    "setup_logging",
]
