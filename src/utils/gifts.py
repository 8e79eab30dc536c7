"""Gift (incentive) parsing for donation events."""

import re

from src.core.event_model import Gift
from src.utils.text import clean_text, strip_label

VALUE_PATTERNS = [
    # "NT$200", "NT 200", "$200"
    re.compile(r"(?:NT\s*\$?|\$)\s*(\d[\d,]*)", re.IGNORECASE),
    # "價值200元", "市價 350 元"
    re.compile(r"(?:價值|市價|價格)\s*[:：]?\s*(\d[\d,]*)\s*元?"),
    # "200元"
    re.compile(r"(\d[\d,]*)\s*元"),
]

QUANTITY_PATTERNS = [
    # "x2", "×2"
    re.compile(r"[xX×*]\s*(\d+)"),
    # "2張", "1份", "3組"
    re.compile(r"(\d+)\s*[張份個組盒包瓶入]"),
]

GIFT_LABELS = ("贈品", "好禮", "禮品")


def _first_int(patterns: list[re.Pattern], text: str) -> int | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return int(match.group(1).replace(",", ""))
    return None


def parse_gift(text: str | None) -> Gift | None:
    """Parse a free-text gift description.

    Examples:
        "贈品：7-11禮券 NT$200" -> Gift(name="7-11禮券 NT$200", value=200)
        "電影票2張" -> Gift(name="電影票2張", quantity=2)

    Args:
        text: Gift description from a page or poster

    Returns:
        Gift or None if the text is empty
    """
    cleaned = clean_text(text)
    if not cleaned:
        return None

    for label in GIFT_LABELS:
        cleaned = strip_label(cleaned, label)
    cleaned = cleaned.strip()
    if not cleaned or cleaned.lower() in ("null", "none", "無"):
        return None

    return Gift(
        name=cleaned,
        value=_first_int(VALUE_PATTERNS, cleaned),
        quantity=_first_int(QUANTITY_PATTERNS, cleaned),
    )
