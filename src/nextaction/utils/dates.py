"""
Date helpers for task lines.

Pure functions, no external dependencies. The only notion of "now" comes from
the ``today`` argument so that callers (and tests) control the clock.
"""

import re
from datetime import date, datetime, timedelta
from typing import Optional

# "$word" shorthand written directly into a task line, e.g. "Call Sam $tom"
RELATIVE_DATE_TOKEN = r"\$([A-Za-z]+)"

_DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

_NUMBER_WORDS = {
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
}


def resolve_relative_date(word: str, today: date) -> Optional[date]:
    """
    Resolve a relative-date keyword (without the leading ``$``) to a date.

    Supports:
    - "today" / "tod"
    - "tomorrow" / "tom"
    - Weekdays, full or 3-letter: the next occurrence strictly after today
    - "one" .. "nine": today + N days
    - "week": today + 7 days

    Returns:
        The resolved date, or None if the keyword is not recognised
    """
    word = word.lower()

    if word in ("today", "tod"):
        return today
    if word in ("tomorrow", "tom"):
        return today + timedelta(days=1)
    if word == "week":
        return today + timedelta(days=7)
    if word in _NUMBER_WORDS:
        return today + timedelta(days=_NUMBER_WORDS[word])

    for i, day_name in enumerate(_DAY_NAMES):
        if word == day_name or word == day_name[:3]:
            days_ahead = i - today.weekday()
            if days_ahead <= 0:
                days_ahead += 7
            return today + timedelta(days=days_ahead)

    return None


def parse_iso_date(value: str) -> Optional[date]:
    """Parse YYYY-MM-DD (or the date part of an ISO timestamp)."""
    if not value:
        return None
    try:
        return datetime.strptime(value[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def is_iso_date(value: str) -> bool:
    return bool(re.fullmatch(r"\d{4}-\d{2}-\d{2}", value or "")) and parse_iso_date(value) is not None
