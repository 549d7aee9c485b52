"""JSON lines for deployed services, readable text for local runs."""

import json
import logging
from datetime import UTC, datetime

CONTEXT_FIELDS = ("booking_id", "trip_id", "driver_id", "user_id", "correlation_id")


def context_of(record: logging.LogRecord) -> dict[str, str]:
    """Context fields set on the record, skipping the ``-`` placeholder."""
    return {
        name: str(getattr(record, name))
        for name in CONTEXT_FIELDS
        if getattr(record, name, "-") not in (None, "-")
    }


class JSONFormatter(logging.Formatter):
    def __init__(self, environment: str = "development", service: str = "rideshare"):
        super().__init__()
        self.environment = environment
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service,
            "env": self.environment,
            **context_of(record),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class DevFormatter(logging.Formatter):
    """One line per record; booking and trip ids appended when present."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)-7s [corr=%(correlation_id)s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = "-"
        line = super().format(record)
        extras = {k: v for k, v in context_of(record).items() if k != "correlation_id"}
        if extras:
            line += " " + " ".join(f"{k}={v}" for k, v in extras.items())
        return line
