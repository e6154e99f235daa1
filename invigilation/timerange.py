"""Parsing and comparison of free-text "HH:MM - HH:MM" time ranges."""

import re
from typing import NamedTuple

from invigilation.exceptions import ParseError

_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


class TimeRange(NamedTuple):
    """A same-day range in minutes since midnight."""

    start: int
    end: int


def parse_clock(text: str) -> int:
    """Convert "H:MM" or "HH:MM" (24-hour) to minutes since midnight."""
    match = _CLOCK_RE.match(text.strip())
    if not match:
        raise ParseError(text, "expected H:MM or HH:MM")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ParseError(text, "hour must be 0-23 and minute 0-59")
    return hour * 60 + minute


def parse_time_range(text: str) -> TimeRange:
    """
    Parse "<start> - <end>" into a TimeRange.

    Splits on the first "-". A missing or empty end means the range ends
    where it starts.
    """
    if not isinstance(text, str) or not text.strip():
        raise ParseError(str(text), "empty time range")
    start_text, _, end_text = text.partition("-")
    start = parse_clock(start_text)
    end = parse_clock(end_text) if end_text.strip() else start
    return TimeRange(start, end)


def ranges_overlap(a: TimeRange, b: TimeRange) -> bool:
    # half-open: touching ranges do not overlap
    return a.start < b.end and b.start < a.end


def overlaps(a_date: str, a_time: str, b_date: str, b_time: str) -> bool:
    """Return True if two (date, time range) bookings conflict."""
    if a_date != b_date:
        return False
    return ranges_overlap(parse_time_range(a_time), parse_time_range(b_time))
