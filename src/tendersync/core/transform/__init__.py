"""Release transformation: upstream OCDS documents to flat records."""

from .parsing import is_sentinel_date, parse_amount, parse_timestamp
from .release import (
    DEFAULT_CURRENCY,
    NormalizedRecord,
    normalize_release,
    normalize_releases,
    sum_award_values,
)

__all__ = [
    "DEFAULT_CURRENCY",
    "NormalizedRecord",
    "normalize_release",
    "normalize_releases",
    "sum_award_values",
    "is_sentinel_date",
    "parse_amount",
    "parse_timestamp",
]
