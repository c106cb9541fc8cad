"""UTC timestamp parsing for record values."""

import re
from datetime import datetime, timezone
from typing import Optional

UTC_PATTERN = re.compile(r"(\d{4})-(\d{2})-(\d{2})[ T]+(\d{2}):(\d{2}):(\d{2})\s*UTC")
RANGE_PATTERN = re.compile(
    r"(\d{4}-\d{2}-\d{2}[ T]+\d{2}:\d{2}:\d{2}\s*UTC)\s+to\s+"
    r"(\d{4}-\d{2}-\d{2}[ T]+\d{2}:\d{2}:\d{2}\s*UTC)"
)


def parse_utc(text: Optional[str]) -> Optional[datetime]:
    """
    parses the first 'YYYY-MM-DD HH:MM:SS UTC' timestamp found in text.

    Args:
        text: raw value text

    Returns:
        timezone-aware UTC datetime, or None when nothing parseable is found
    """
    if not text:
        return None

    match = UTC_PATTERN.search(text)
    if not match:
        return None

    try:
        return datetime(*(int(g) for g in match.groups()), tzinfo=timezone.utc)
    except ValueError:
        # matched the shape but not a real date (e.g. month 13)
        return None


def parse_utc_range(
    text: Optional[str],
) -> tuple[Optional[datetime], Optional[datetime]]:
    """parses '<ts> to <ts>' into a (start, end) pair."""
    if not text:
        return None, None

    match = RANGE_PATTERN.search(text)
    if not match:
        return None, None

    return parse_utc(match.group(1)), parse_utc(match.group(2))
