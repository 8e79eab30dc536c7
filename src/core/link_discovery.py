"""Candidate link discovery on listing pages.

A listing page mixes links to single donation drives with links to monthly
schedules, press releases and notices. An anchor qualifies when its text
(visible text plus title/alt, nested images included) carries an event
marker and no denylisted phrase. Dates found in the text are used to drop
drives that are already over; undated links are kept for the detail page to
decide.
"""

from dataclasses import dataclass, replace
from datetime import date

from bs4.element import Tag

from src.config.sources import SourceDescriptor
from src.core.event_model import CandidateLink
from src.core.page_fetcher import RenderedDocument
from src.logging import get_logger
from src.utils.date_parser import extract_date_tokens, parse_flexible_date
from src.utils.text import normalize_whitespace
from src.utils.urls import is_valid_url, make_absolute_url, strip_fragment

logger = get_logger(__name__)

# Summary tables, "what to do" notices, press releases, paused drives
DEFAULT_DENYLIST = (
    "總表",
    "行事曆",
    "一覽",
    "場次表",
    "月行程",
    "怎麼辦",
    "新聞稿",
    "暫停",
)


@dataclass(frozen=True)
class LinkRules:
    """Declarative rules for picking detail links off a listing page."""

    required_markers: tuple[str, ...] = ("捐血活動",)
    denylist: tuple[str, ...] = DEFAULT_DENYLIST
    # href fragments that mark a detail page even without a text marker
    detail_path_markers: tuple[str, ...] = ()
    max_candidates: int = 30

    def extend_denylist(self, *phrases: str) -> "LinkRules":
        """Return a copy with extra denylisted phrases."""
        return replace(self, denylist=self.denylist + tuple(phrases))


def combined_text(anchor: Tag) -> str:
    """Visible text of an anchor plus its title/alt and nested image alts."""
    parts = [
        anchor.get_text(" ", strip=True),
        anchor.get("title") or "",
        anchor.get("alt") or "",
    ]
    for img in anchor.find_all("img"):
        parts.append(img.get("alt") or "")
        parts.append(img.get("title") or "")
    return normalize_whitespace(" ".join(p for p in parts if p), preserve_newlines=False)


def qualifies(text: str, href: str, rules: LinkRules) -> bool:
    """Check a link against the marker and denylist rules."""
    if any(phrase in text for phrase in rules.denylist):
        return False
    if any(marker in text for marker in rules.required_markers):
        return True
    return any(marker in href for marker in rules.detail_path_markers)


def is_upcoming(tokens: list[str], as_of: date) -> bool:
    """Keep links with a resolvable date on/after ``as_of``, or with no resolvable date."""
    resolved = [d for d in (parse_flexible_date(t, as_of) for t in tokens) if d is not None]
    if not resolved:
        return True
    return any(d >= as_of for d in resolved)


def discover_candidates(
    document: RenderedDocument,
    source: SourceDescriptor,
    as_of: date,
    rules: LinkRules | None = None,
) -> list[CandidateLink]:
    """Find detail-page links on a rendered listing page.

    Args:
        document: Rendered listing page
        source: Source being crawled (relative links resolve against base_url)
        as_of: Crawl date; links dated strictly before it are dropped
        rules: Marker/denylist rules (defaults to LinkRules())

    Returns:
        Candidate links in discovery order, unique by URL, capped to
        ``rules.max_candidates``
    """
    rules = rules or LinkRules()
    candidates: list[CandidateLink] = []
    seen: set[str] = set()
    expired = 0

    for anchor in document.soup.find_all("a", href=True):
        href = anchor["href"].strip()
        text = combined_text(anchor)

        if not qualifies(text, href, rules):
            continue

        tokens = extract_date_tokens(text)
        if not is_upcoming(tokens, as_of):
            expired += 1
            continue

        url = make_absolute_url(href, source.base_url)
        if not url or not is_valid_url(url):
            continue
        url = strip_fragment(url)
        if url in seen:
            continue

        seen.add(url)
        candidates.append(
            CandidateLink(url=url, display_text=text, raw_date_tokens=tuple(tokens))
        )
        if len(candidates) >= rules.max_candidates:
            break

    logger.info(
        "candidates_discovered",
        source=source.id,
        count=len(candidates),
        expired=expired,
    )
    return candidates
