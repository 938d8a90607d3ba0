"""
Total coercion helpers for upstream release fields.

Every function here returns a defined value for any input and never
raises: upstream documents are loosely shaped and a single malformed
field must not sink the page it arrives in.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, time, timezone
from typing import Any

import dateparser


# Upstream writes "0001-01-01T00:00:00" (and variants) for "not set"
SENTINEL_DATE_PREFIX = "0001"

_ISO_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")

_DATEPARSER_SETTINGS = {
    "TIMEZONE": "UTC",
    "RETURN_AS_TIMEZONE_AWARE": True,
    "PREFER_DAY_OF_MONTH": "first",
    "DATE_ORDER": "YMD",
}


def as_mapping(value: Any) -> dict[str, Any]:
    """Return ``value`` if it is a dict, otherwise an empty dict."""
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> list[Any]:
    """Return ``value`` if it is a list, otherwise an empty list."""
    return value if isinstance(value, list) else []


def clean_text(value: Any) -> str | None:
    """Coerce a scalar to text; empty or non-scalar values become None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if not isinstance(value, str):
        return None
    return value if value.strip() else None


def parse_flag(value: Any) -> bool:
    """Coerce an upstream flag to bool; anything unrecognised is False."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1"}
    if isinstance(value, (int, float)):
        return value == 1
    return False


def parse_amount(value: Any) -> float:
    """Coerce a monetary amount to float, treating anything unusable as 0."""
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        amount = float(value)
    elif isinstance(value, str):
        try:
            amount = float(value.replace(",", "").strip())
        except ValueError:
            return 0.0
    else:
        return 0.0

    if math.isnan(amount) or math.isinf(amount):
        return 0.0
    return amount


def is_sentinel_date(value: Any) -> bool:
    """Check whether a date string is the upstream "zero date" placeholder."""
    return isinstance(value, str) and value.strip().startswith(SENTINEL_DATE_PREFIX)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an upstream timestamp into an aware UTC-normalised datetime.

    ISO 8601 strings take the fast path; anything else goes through
    dateparser. Naive values are taken as UTC. Unparseable input is None.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        parsed = _parse_iso(text)
        if parsed is None:
            try:
                parsed = dateparser.parse(text, settings=_DATEPARSER_SETTINGS)
            except (ValueError, TypeError, OverflowError):
                parsed = None
        if parsed is None:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        return None


def _parse_iso(text: str) -> datetime | None:
    if not _ISO_PREFIX.match(text):
        return None
    candidate = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return datetime.fromisoformat(candidate)
    except ValueError:
        return None
