"""
Pure predicates for user-supplied input.

Failures are reported to the log (and through it to telemetry) but the
return value is the only contract.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from urllib.parse import urlsplit

from shortener.config import MAX_VALIDITY_MINUTES, MIN_VALIDITY_MINUTES, SHORT_CODE_PATTERN

logger = logging.getLogger(__name__)

_SHORT_CODE_RE = re.compile(SHORT_CODE_PATTERN)
_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*$")
_INTEGER_RE = re.compile(r"^\s*\+?\d+\s*$")


def _log_validation_error(field: str, value: object, expected: str) -> None:
    logger.warning(
        "Validation failed for %s: received %s (%r), expected %s",
        field, type(value).__name__, value, expected,
    )


def validate_url(url: str) -> bool:
    """Structural check only: an absolute URL with a scheme and an authority."""
    try:
        parts = urlsplit(url)
        # .port raises ValueError on a malformed port
        parts.port
    except (TypeError, ValueError, AttributeError):
        _log_validation_error("url", url, "valid URL")
        return False

    valid = (
        bool(parts.scheme)
        and _SCHEME_RE.match(parts.scheme) is not None
        and bool(parts.hostname)
        and not any(ch.isspace() for ch in url)
    )
    if not valid:
        _log_validation_error("url", url, "valid URL")
    return valid


def validate_short_code(short_code: str) -> bool:
    valid = isinstance(short_code, str) and _SHORT_CODE_RE.fullmatch(short_code) is not None
    if not valid:
        _log_validation_error("shortCode", short_code, "3-10 alphanumeric characters")
    return valid


def parse_validity_period(period: str) -> int | None:
    """
    Whole-string integer parse. "10x" is rejected rather than read as 10.
    """
    if not isinstance(period, str) or not _INTEGER_RE.match(period):
        return None
    return int(period.strip())


def validate_validity_period(period: str) -> bool:
    minutes = parse_validity_period(period)
    valid = minutes is not None and MIN_VALIDITY_MINUTES <= minutes <= MAX_VALIDITY_MINUTES
    if not valid:
        _log_validation_error(
            "validityPeriod", period,
            f"number between {MIN_VALIDITY_MINUTES} and {MAX_VALIDITY_MINUTES}",
        )
    return valid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_expired(expiry_date: datetime, now: datetime | None = None) -> bool:
    """
    Display-side check: strictly past. Resolution uses ShortenedUrlRecord.is_live
    (expiry strictly in the future), so at the exact expiry instant a record is
    neither live nor expired here.
    """
    return expiry_date < (now or utcnow())


def format_expiry_date(date: datetime) -> str:
    # Locale date and time, in the local timezone.
    return date.astimezone().strftime("%x %X")
