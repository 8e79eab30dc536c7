"""Adapter for social-media profiles (Instagram, Facebook pages).

Posts are discovered from the profile page. A post exposes its poster
through the og:image meta tag; everything else is read off the poster by
the vision service. Login-walled sites need session cookies (COOKIES_JSON).
"""

from datetime import date

from bs4 import BeautifulSoup

from src.adapters import register_adapter
from src.core.base_adapter import SourceAdapter
from src.core.detail_extractor import parse_dimension
from src.core.event_model import CandidateLink, EventDraft
from src.core.link_discovery import LinkRules, discover_candidates
from src.core.page_fetcher import RenderedDocument
from src.utils.urls import is_valid_url, make_absolute_url

# CDN sprites, emoji and inline images served next to the real post image
INVALID_IMAGE_TOKENS = (
    "static.xx.fbcdn.net",
    "rsrc.php",
    "emoji",
    "data:image",
    ".svg",
)

# Declared width x height below which an <img> cannot be a poster
MIN_FALLBACK_AREA = 2000


def is_valid_post_image(url: str | None) -> bool:
    """Check an image URL against the social CDN reject list."""
    if not url or not is_valid_url(url):
        return False
    lowered = url.lower()
    return not any(token in lowered for token in INVALID_IMAGE_TOKENS)


def find_post_image(soup: BeautifulSoup, base_url: str) -> str | None:
    """Poster of a post: og:image, else the largest declared <img> above MIN_FALLBACK_AREA."""
    meta = soup.find("meta", attrs={"property": "og:image"})
    if meta is not None:
        og_image = make_absolute_url(meta.get("content"), base_url)
        if is_valid_post_image(og_image):
            return og_image

    best_url = None
    best_area = MIN_FALLBACK_AREA
    for img in soup.find_all("img"):
        url = make_absolute_url(img.get("src"), base_url)
        if not is_valid_post_image(url):
            continue
        width, height = parse_dimension(img.get("width")), parse_dimension(img.get("height"))
        if width is None or height is None:
            continue
        area = width * height
        if area > best_area:
            best_url, best_area = url, area

    return best_url


@register_adapter("social")
class SocialSourceAdapter(SourceAdapter):
    """One candidate per post; the poster carries the metadata."""

    # Post permalinks; captions (alt text) still go through the denylist
    link_rules = LinkRules(
        required_markers=(),
        detail_path_markers=("/p/", "photo.php"),
        max_candidates=12,
    )
    vision_precedence = True

    def discover(self, document: RenderedDocument, as_of: date) -> list[CandidateLink]:
        return discover_candidates(document, self.source, as_of, self.link_rules)

    def extract(self, document: RenderedDocument, candidate: CandidateLink) -> EventDraft | None:
        poster_url = find_post_image(document.soup, document.final_url)
        if poster_url is None:
            self.logger.info("post_without_image", url=candidate.url[:120])
            return None

        meta_title = document.soup.find("meta", attrs={"property": "og:title"})
        return self.base_draft(
            candidate.url,
            poster_url=poster_url,
            title=meta_title.get("content") if meta_title is not None else None,
        )
