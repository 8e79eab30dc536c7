"""Event extraction from detail pages.

Three steps:
1. Reject disguised summary pages (too many distinct dates in the text).
2. Pick the poster image from an ordered list of selectors.
3. Read title/date/time/location/organizer/gift through text anchors.

The result is an ``EventDraft``; dates are normalized afterwards by
``normalize_draft``.
"""

import re
from dataclasses import dataclass
from datetime import date

from bs4 import BeautifulSoup
from bs4.element import Tag

from src.config.sources import SourceDescriptor
from src.core.event_model import CandidateLink, EventDraft, ExtractedEvent
from src.core.exceptions import DateUnparseable, ExtractionRejected
from src.core.page_fetcher import RenderedDocument
from src.logging import get_logger
from src.utils.date_parser import count_date_shapes, extract_date_tokens, parse_flexible_date, parse_time_range
from src.utils.gifts import parse_gift
from src.utils.locations import extract_city_from_text, normalize_city, split_address
from src.utils.text import clean_text, strip_label
from src.utils.urls import is_valid_url, make_absolute_url

logger = get_logger(__name__)


# ============================================================
# RULES
# ============================================================


@dataclass(frozen=True)
class ImageRules:
    """Declarative poster-selection rules."""

    # Most specific content containers first, any image last
    selectors: tuple[str, ...] = (
        ".xccont img",
        ".cont img",
        "article img",
        ".content img",
        "main img",
        "img",
    )
    # Path tokens of user-uploaded media on the CMSs crawled
    upload_tokens: tuple[str, ...] = ("file_pool", "upload", "xmimg", "storage")
    reject_tokens: tuple[str, ...] = ("logo", "icon")
    qr_markers: tuple[str, ...] = ("qrcode", "qr_code", "qr=", "cht=qr")
    min_dimension: int = 100


@dataclass(frozen=True)
class TextAnchors:
    """Where a source's detail pages keep each field."""

    title_selectors: tuple[str, ...] = ("h1", ".xccont h2", ".title", "h2", "h3")
    date_labels: tuple[str, ...] = ("活動日期", "日期")
    time_labels: tuple[str, ...] = ("活動時間", "時間")
    location_labels: tuple[str, ...] = ("活動地點", "地點", "地址")
    organizer_labels: tuple[str, ...] = ("主辦單位", "主辦", "協辦單位")
    gift_labels: tuple[str, ...] = ("贈品", "紀念品", "好禮")


# ============================================================
# SUMMARY PAGES
# ============================================================


def ensure_single_occasion(text: str, threshold: int = 5, url: str | None = None) -> None:
    """Reject pages listing more dates than a single drive would.

    Raises:
        ExtractionRejected: If distinct date shapes exceed ``threshold``
    """
    count = count_date_shapes(text)
    if count > threshold:
        raise ExtractionRejected(f"summary page ({count} dates)", url=url)


# ============================================================
# POSTER IMAGE
# ============================================================

_DIMENSION_RE = re.compile(r"^\s*(\d+)")


def parse_dimension(value: object) -> int | None:
    if value is None:
        return None
    match = _DIMENSION_RE.match(str(value))
    return int(match.group(1)) if match else None


def image_source(img: Tag, base_url: str) -> str | None:
    """Absolute URL of an <img>, honoring lazy-loading attributes."""
    src = img.get("src") or img.get("data-src") or img.get("data-original")
    if not src:
        return None
    src = src.strip()
    if src.startswith("data:"):
        return src
    return make_absolute_url(src, base_url)


def accept_image(url: str, img: Tag, rules: ImageRules, require_upload_token: bool) -> bool:
    """Apply the poster accept/reject filter to one image."""
    lowered = url.lower()

    if lowered.startswith("data:"):
        return False
    path = lowered.split("?", 1)[0]
    if path.endswith(".svg"):
        return False
    if any(marker in lowered for marker in rules.qr_markers):
        return False
    if any(token in path for token in rules.reject_tokens):
        return False

    for attr in ("width", "height"):
        size = parse_dimension(img.get(attr))
        if size is not None and size < rules.min_dimension:
            return False

    if require_upload_token and not any(token in lowered for token in rules.upload_tokens):
        return False

    return is_valid_url(url)


def select_poster(soup: BeautifulSoup, base_url: str, rules: ImageRules | None = None) -> str | None:
    """Pick the poster image of a detail page.

    Selectors are tried in order and never combined: the first accepted
    image of the first selector yielding one wins. The upload-path token is
    not required from the first selector that matches any image; once a
    selector has matched without producing a poster, the broader selectors
    that follow must point at uploaded media.

    Args:
        soup: Parsed detail page
        base_url: Base for relative image URLs
        rules: Image rules (defaults to ImageRules())

    Returns:
        Poster URL or None
    """
    rules = rules or ImageRules()
    has_hit = False

    for selector in rules.selectors:
        images = soup.select(selector)
        if not images:
            continue

        require_token = has_hit
        has_hit = True
        for img in images:
            url = image_source(img, base_url)
            if url and accept_image(url, img, rules, require_token):
                return url

    return None


# ============================================================
# TEXT ANCHORS
# ============================================================


def find_labeled_value(lines: list[str], labels: tuple[str, ...]) -> str | None:
    """Value following the first "label：value" line, or the line after a bare label."""
    for label in labels:
        pattern = re.compile(rf"^\s*[【\[]?{re.escape(label)}[】\]]?\s*[:：]?")
        for i, line in enumerate(lines):
            if not pattern.match(line):
                continue
            value = strip_label(line, label)
            if not value and i + 1 < len(lines):
                value = lines[i + 1].strip()
            if value:
                return value
    return None


def find_title(soup: BeautifulSoup, anchors: TextAnchors) -> str | None:
    for selector in anchors.title_selectors:
        element = soup.select_one(selector)
        if element is not None:
            title = clean_text(element.get_text(" ", strip=True))
            if title:
                return title
    return None


def extract_event(
    document: RenderedDocument,
    candidate: CandidateLink,
    source: SourceDescriptor,
    image_rules: ImageRules | None = None,
    anchors: TextAnchors | None = None,
    summary_threshold: int = 5,
) -> EventDraft | None:
    """Extract an event draft from a rendered detail page.

    Args:
        document: Rendered detail page
        candidate: Link that led to the page
        source: Source being crawled
        image_rules: Poster selection rules
        anchors: Text anchors of the source
        summary_threshold: Maximum distinct dates of a single-event page

    Returns:
        EventDraft, or None if the page is a summary page
    """
    anchors = anchors or TextAnchors()

    try:
        ensure_single_occasion(document.text, summary_threshold, url=document.url)
    except ExtractionRejected as e:
        logger.info("detail_rejected", url=document.url[:120], reason=e.reason, source=source.id)
        return None

    poster_url = select_poster(document.soup, document.final_url, image_rules)
    lines = [line for line in document.text.split("\n") if line.strip()]

    title = find_title(document.soup, anchors) or clean_text(candidate.display_text)

    time_value = find_labeled_value(lines, anchors.time_labels)
    raw_date = find_labeled_value(lines, anchors.date_labels)
    if not raw_date or not extract_date_tokens(raw_date):
        raw_date = next(
            (tokens[0] for tokens in (
                extract_date_tokens(time_value),
                list(candidate.raw_date_tokens),
                extract_date_tokens(title),
            ) if tokens),
            raw_date,
        )

    location_value = find_labeled_value(lines, anchors.location_labels)
    city, district, location = split_address(location_value)
    if city is None:
        city = extract_city_from_text(title) or source.city

    gift_value = find_labeled_value(lines, anchors.gift_labels)

    return EventDraft(
        title=title,
        raw_date=raw_date,
        time=parse_time_range(time_value),
        location=clean_text(location),
        city=city,
        district=district,
        organizer=clean_text(find_labeled_value(lines, anchors.organizer_labels)),
        gift=parse_gift(gift_value),
        poster_url=poster_url,
        source_url=document.url,
        tags=[source.display_name],
    )


# ============================================================
# NORMALIZATION
# ============================================================


def normalize_draft(
    draft: EventDraft,
    as_of: date | None = None,
    source: str | None = None,
) -> ExtractedEvent:
    """Turn a draft into a canonical event.

    Raises:
        DateUnparseable: If the draft's date cannot be resolved
        ExtractionRejected: If the draft has no title
    """
    event_date = parse_flexible_date(draft.raw_date, as_of)
    if event_date is None:
        raise DateUnparseable(draft.raw_date, source=source)

    title = clean_text(draft.title)
    if not title:
        raise ExtractionRejected("missing title", url=draft.source_url, source=source)

    return ExtractedEvent(
        title=title,
        date=event_date,
        time=parse_time_range(draft.time),
        location=clean_text(draft.location),
        city=normalize_city(draft.city),
        district=clean_text(draft.district),
        organizer=clean_text(draft.organizer),
        gift=draft.gift,
        poster_url=draft.poster_url,
        source_url=draft.source_url,
        tags=draft.tags,
    )
