from datetime import UTC, datetime


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse a backend timestamp. Naive values are taken as UTC."""
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def utc_now() -> datetime:
    return datetime.now(UTC)
