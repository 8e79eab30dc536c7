"""Base adapter class for all crawled sources.

An adapter turns rendered pages of one kind of source into event drafts.
Subclasses mostly declare rules (``LinkRules``, ``ImageRules``,
``TextAnchors``); the pipeline owns fetching, vision, merging and storage.
"""

from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import date

from src.config.sources import SourceDescriptor
from src.core.detail_extractor import ImageRules, TextAnchors
from src.core.event_model import CandidateLink, EventDraft
from src.core.link_discovery import LinkRules
from src.core.page_fetcher import RenderedDocument
from src.logging import get_logger

# Fields the vision service can fill on a draft
VISION_FIELDS = ("title", "raw_date", "time", "location", "city", "district", "organizer", "gift")


class SourceAdapter(ABC):
    """Abstract base class for source adapters.

    Each source kind implements discovery and extraction; individual
    sources override rules by subclassing and registering under their id.
    """

    # Class-level rules to be overridden by subclasses
    link_rules: LinkRules = LinkRules()
    image_rules: ImageRules = ImageRules()
    text_anchors: TextAnchors = TextAnchors()

    # False when candidates already are poster images (image search)
    requires_detail_fetch: bool = True
    # True when vision output replaces page text instead of filling its gaps
    vision_precedence: bool = False

    def __init__(
        self,
        source: SourceDescriptor,
        max_candidates: int | None = None,
        summary_threshold: int = 5,
    ):
        self.source = source
        self.summary_threshold = summary_threshold
        if max_candidates is not None:
            self.link_rules = replace(self.link_rules, max_candidates=max_candidates)
        self.logger = get_logger(f"adapter.{source.id}")

    # ==========================================
    # Abstract Methods (to implement per kind)
    # ==========================================

    @abstractmethod
    def discover(self, document: RenderedDocument, as_of: date) -> list[CandidateLink]:
        """Find candidate links on the entry page.

        Args:
            document: Rendered entry page
            as_of: Crawl date

        Returns:
            Candidates in discovery order
        """
        pass

    def extract(self, document: RenderedDocument, candidate: CandidateLink) -> EventDraft | None:
        """Extract a draft from a rendered detail page.

        Only called when ``requires_detail_fetch`` is True.
        """
        raise NotImplementedError(f"{type(self).__name__} does not fetch detail pages")

    def draft_from_candidate(self, candidate: CandidateLink) -> EventDraft | None:
        """Build a draft directly from a candidate (no detail page)."""
        return None

    # ==========================================
    # Vision
    # ==========================================

    def wants_vision(self, draft: EventDraft) -> bool:
        """Whether the poster should be read by the vision service."""
        if not draft.poster_url:
            return False
        return self.vision_precedence or not draft.is_complete

    def merge_vision(self, draft: EventDraft, vision_drafts: list[EventDraft]) -> list[EventDraft]:
        """Combine the page draft with what the vision service read off the poster.

        With ``vision_precedence`` the poster is the only metadata source:
        an empty vision result (not a single-event poster) yields nothing.
        Otherwise page fields win and vision only fills the gaps.
        """
        if self.vision_precedence:
            return [
                v.model_copy(update={
                    "poster_url": draft.poster_url,
                    "source_url": draft.source_url,
                    "tags": draft.tags,
                    "city": v.city or draft.city,
                })
                for v in vision_drafts
            ]

        if not vision_drafts:
            return [draft]

        vision = vision_drafts[0]
        updates = {
            name: getattr(vision, name)
            for name in VISION_FIELDS
            if getattr(draft, name) is None and getattr(vision, name) is not None
        }
        if updates:
            self.logger.debug("vision_filled_fields", fields=sorted(updates), url=draft.source_url[:120])
        return [draft.model_copy(update=updates)]

    def base_draft(self, url: str, poster_url: str | None = None, **fields: object) -> EventDraft:
        """Draft pre-filled with the source's defaults."""
        return EventDraft(
            source_url=url,
            poster_url=poster_url,
            city=fields.pop("city", None) or self.source.city,
            tags=[self.source.display_name],
            **fields,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(source={self.source.id!r})"
