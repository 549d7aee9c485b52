"""Log filters that keep rider data and credentials out of log output."""

import logging
import re

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+")
# Indian mobiles with optional +91 prefix, plus 3-3-4 formats
PHONE_PATTERN = re.compile(
    r"(?:\+91[-\s]?)?\b\d{5}[-\s]?\d{5}\b|\b\d{3}[-.\s]?\d{3}[-.\s]?\d{4}\b"
)
# Maps key in request URLs, checkout signatures, Expo device tokens
SECRET_PATTERNS = (
    (re.compile(r"([?&](?:key|signature)=)[^&\s]+"), r"\1[REDACTED]"),
    (re.compile(r"ExponentPushToken\[[^\]]+\]"), "ExponentPushToken[REDACTED]"),
)


def mask_sensitive(text: str) -> str:
    for pattern, replacement in SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    if "@" in text:
        text = EMAIL_PATTERN.sub("[EMAIL]", text)
    if any(c.isdigit() for c in text):
        text = PHONE_PATTERN.sub("[PHONE]", text)
    return text


class PIIFilter(logging.Filter):
    """Masks emails, phone numbers and credentials in the final message.

    Arguments are merged first, so ``%s`` style calls from vendor loggers
    (httpx logs full request URLs) are masked too.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = mask_sensitive(message)
        if masked != message or record.args:
            record.msg = masked
            record.args = None
        return True


class DefaultCorrelationFilter(logging.Filter):
    """Falls back to the booking id, then to ``-``, for ``correlation_id``."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = getattr(record, "booking_id", "-")
        return True
