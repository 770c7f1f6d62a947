"""Date parsing utilities for imported record values."""

from __future__ import annotations

import re
from datetime import datetime

# Years outside this range are treated as non-dates (e.g. numeric IDs)
MIN_VALID_YEAR = 1900
MAX_VALID_YEAR = 2100

ISO_DATE_PATTERN = re.compile(
    r"^\d{4}-\d{2}-\d{2}"
    r"([T ]\d{2}:\d{2}(:\d{2}(\.\d{1,6})?)?(Z|[+-]\d{2}:?\d{2})?)?$"
)

COMMON_DATE_FORMATS = [
    "%Y-%m-%d",  # ISO 8601
    "%m/%d/%Y",  # US format
    "%d-%m-%Y",  # European with dashes
]


def parse_iso_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 date or datetime string.

    Args:
        value: Candidate string

    Returns:
        Parsed datetime, or None if the value is not a valid ISO date
    """
    if not value or not ISO_DATE_PATTERN.match(value):
        return None
    candidate = value.replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if parsed.year < MIN_VALID_YEAR or parsed.year > MAX_VALID_YEAR:
        return None
    return parsed


def parse_flexible_date(date_str: str | None) -> datetime | None:
    """Parse date from multiple common formats with validation.

    Supports the following formats:
    - ISO 8601 date or datetime (e.g., 2024-01-15, 2024-01-15T10:30:00Z)
    - US format: MM/DD/YYYY (e.g., 01/15/2024)
    - European format: DD-MM-YYYY (e.g., 15-01-2024)

    Validates that the date is a real calendar date and that the year is
    between 1900 and 2100.

    Examples:
        >>> parse_flexible_date("2024-01-15")
        datetime.datetime(2024, 1, 15, 0, 0)
        >>> parse_flexible_date("01/15/2024")
        datetime.datetime(2024, 1, 15, 0, 0)
        >>> parse_flexible_date("2024-02-30") is None
        True
    """
    if not date_str:
        return None

    parsed = parse_iso_datetime(date_str)
    if parsed is not None:
        return parsed

    for fmt in COMMON_DATE_FORMATS:
        try:
            parsed = datetime.strptime(date_str, fmt)
        except ValueError:
            # strptime raises ValueError for invalid dates like Feb 30
            continue
        if MIN_VALID_YEAR <= parsed.year <= MAX_VALID_YEAR:
            return parsed

    return None
