"""Adapter for image-search result pages.

Every result image is treated as a candidate poster and read by the vision
service; no detail page is fetched.
"""

from datetime import date

from src.adapters import register_adapter
from src.core.base_adapter import SourceAdapter
from src.core.event_model import CandidateLink, EventDraft
from src.core.link_discovery import LinkRules
from src.core.page_fetcher import RenderedDocument
from src.utils.urls import get_query_param, is_valid_url, make_absolute_url

# Thumbnails served by the search engine itself
EXCLUDED_IMAGE_HOSTS = ("gstatic.com",)


def _is_full_size(url: str | None) -> bool:
    if not url or not is_valid_url(url):
        return False
    return not any(host in url for host in EXCLUDED_IMAGE_HOSTS)


@register_adapter("search")
class SearchAdapter(SourceAdapter):
    """Image-search results: candidates are the full-size image URLs."""

    link_rules = LinkRules(required_markers=(), max_candidates=5)
    requires_detail_fetch = False
    vision_precedence = True

    def discover(self, document: RenderedDocument, as_of: date) -> list[CandidateLink]:
        candidates: list[CandidateLink] = []
        seen: set[str] = set()

        def add(url: str | None, text: str) -> None:
            if not _is_full_size(url) or url in seen:
                return
            if any(phrase in text for phrase in self.link_rules.denylist):
                return
            seen.add(url)
            candidates.append(CandidateLink(url=url, display_text=text))

        # Result links carry the original image in their imgurl parameter
        for anchor in document.soup.find_all("a", href=True):
            href = make_absolute_url(anchor["href"], self.source.base_url)
            if href:
                img = anchor.find("img")
                add(get_query_param(href, "imgurl"), (img.get("alt") or "") if img else "")

        # Newer layouts inline result images under div[data-id]
        for img in document.soup.select("div[data-id] img"):
            add(img.get("src") or img.get("data-src"), img.get("alt") or "")

        candidates = candidates[: self.link_rules.max_candidates]
        self.logger.info("search_candidates_discovered", count=len(candidates))
        return candidates

    def draft_from_candidate(self, candidate: CandidateLink) -> EventDraft | None:
        return self.base_draft(candidate.url, poster_url=candidate.url)
