"""Taiwanese date parsing utilities.

Event pages mix several notations for the same day:
- Gregorian long form: "2025/11/23", "2025-11-23", "2025年11月23日"
- ROC (Minguo) long form: "114/11/23", "114年11月23日" (year + 1911)
- Short form without a year: "11/23", "11月23日"
"""

import re
from datetime import date, datetime

from dateutil import parser as dateutil_parser

# ROC calendar year 1 is 1912
ROC_YEAR_OFFSET = 1911

LONG_DATE_RE = re.compile(r"(?<!\d)(\d{2,4})\s*[年/\-]\s*(\d{1,2})\s*[月/\-]\s*(\d{1,2})(?!\d)")
SHORT_DATE_RE = re.compile(r"(?<![\d/\-年])(\d{1,2})\s*[月/]\s*(\d{1,2})(?![\d/\-])")

TIME_RANGE_RE = re.compile(
    r"(\d{1,2})\s*[:：]\s*(\d{2})(?:\s*[-~～至到]\s*(\d{1,2})\s*[:：]\s*(\d{2}))?"
)


def normalize_year(written: str) -> int:
    """Convert a year as written to its Gregorian value.

    Only 2/3 digit years are ROC years; four digits are taken as written,
    so "0113" and "1900" stay put.

    Args:
        written: Year digits from the source

    Returns:
        Gregorian year
    """
    year = int(written)
    if len(written) <= 3 and year < ROC_YEAR_OFFSET:
        return year + ROC_YEAR_OFFSET
    return year


def resolve_short_date(month: int, day: int, as_of: date) -> date | None:
    """Resolve a month/day pair without a year.

    The current year is assumed, unless the resulting date is in the past
    and its month lies before the previous month, in which case the date
    belongs to next year (a January poster read in November).

    Args:
        month: Month number (1-12)
        day: Day of month
        as_of: Reference date of the crawl

    Returns:
        date or None if the pair is not a calendar date
    """
    try:
        candidate = date(as_of.year, month, day)
    except ValueError:
        return None

    if candidate < as_of and month < as_of.month - 1:
        try:
            return date(as_of.year + 1, month, day)
        except ValueError:
            return None
    return candidate


def parse_flexible_date(token: str | None, as_of: date | None = None) -> date | None:
    """Parse a date token in any of the supported notations.

    Handles:
    - "2025-11-23", "2025/11/23", "2025年11月23日"
    - "114/11/23", "113年5月20日" (ROC years)
    - "11/23", "11月23日" (year resolved against ``as_of``)
    - "Nov 23, 2025" (English month names, as returned by some services)

    Args:
        token: Date string
        as_of: Reference date for short forms (defaults to today)

    Returns:
        date object or None if parsing failed
    """
    if not token:
        return None

    token = token.strip()
    if as_of is None:
        as_of = datetime.now().date()

    match = LONG_DATE_RE.search(token)
    if match:
        year = normalize_year(match.group(1))
        try:
            return date(year, int(match.group(2)), int(match.group(3)))
        except ValueError:
            return None

    match = SHORT_DATE_RE.search(token)
    if match:
        return resolve_short_date(int(match.group(1)), int(match.group(2)), as_of)

    # Fallback to dateutil for spelled-out English months only
    if re.search(r"[A-Za-z]{3,}", token) and re.search(r"\d", token):
        try:
            parsed = dateutil_parser.parse(token, default=datetime(as_of.year, 1, 1))
            return parsed.date()
        except (ValueError, OverflowError):
            pass

    return None


def extract_date_tokens(text: str | None) -> list[str]:
    """Extract date-shaped substrings from a text.

    Long-form tokens win: short forms are only looked for when the text
    holds no long-form date, since "2025/11/23" also contains "11/23".

    Args:
        text: Text to search

    Returns:
        Tokens in order of appearance
    """
    if not text:
        return []

    tokens = [m.group(0) for m in LONG_DATE_RE.finditer(text)]
    if tokens:
        return tokens
    return [m.group(0) for m in SHORT_DATE_RE.finditer(text)]


def count_date_shapes(text: str | None) -> int:
    """Count distinct calendar-date-shaped substrings in a text.

    Both notations are counted; short forms embedded in a long-form date
    are not counted twice.
    """
    if not text:
        return 0

    shapes: set[str] = set()
    for match in LONG_DATE_RE.finditer(text):
        shapes.add(re.sub(r"\s+", "", match.group(0)))

    remainder = LONG_DATE_RE.sub(" ", text)
    for match in SHORT_DATE_RE.finditer(remainder):
        shapes.add(re.sub(r"\s+", "", match.group(0)))

    return len(shapes)


def parse_time_range(text: str | None) -> str | None:
    """Normalize an opening time or time range.

    Examples:
        "09:00-17:00" -> "09:00-17:00"
        "9:00 ~ 16:30" -> "09:00-16:30"
        "上午10:00" -> "10:00"

    Args:
        text: Text holding the time

    Returns:
        "HH:MM" or "HH:MM-HH:MM", or None if no valid time is present
    """
    if not text:
        return None

    match = TIME_RANGE_RE.search(text)
    if not match:
        return None

    start_hour, start_minute = int(match.group(1)), int(match.group(2))
    if start_hour > 23 or start_minute > 59:
        return None
    start = f"{start_hour:02d}:{start_minute:02d}"

    if match.group(3) is None:
        return start

    end_hour, end_minute = int(match.group(3)), int(match.group(4))
    if end_hour > 23 or end_minute > 59:
        return start
    return f"{start}-{end_hour:02d}:{end_minute:02d}"
