"""Adapter for institutional web pages (blood donation center CMS).

The listing page links one page per donation drive; detail pages hold the
poster image plus labeled text ("時間：", "地點：", "贈品：").
"""

from datetime import date

from src.adapters import register_adapter
from src.core.base_adapter import SourceAdapter
from src.core.detail_extractor import extract_event
from src.core.event_model import CandidateLink, EventDraft
from src.core.link_discovery import LinkRules, discover_candidates
from src.core.page_fetcher import RenderedDocument


@register_adapter("web")
class WebSourceAdapter(SourceAdapter):
    """Listing + detail page crawler for xmdoc-based sites."""

    # Detail pages of the xmdoc CMS live under /xmdoc/cont
    link_rules = LinkRules(detail_path_markers=("xmdoc/cont",))

    def discover(self, document: RenderedDocument, as_of: date) -> list[CandidateLink]:
        return discover_candidates(document, self.source, as_of, self.link_rules)

    def extract(self, document: RenderedDocument, candidate: CandidateLink) -> EventDraft | None:
        return extract_event(
            document,
            candidate,
            self.source,
            image_rules=self.image_rules,
            anchors=self.text_anchors,
            summary_threshold=self.summary_threshold,
        )


@register_adapter("hsinchu")
class HsinchuAdapter(WebSourceAdapter):
    """Hsinchu center: its menu links every notice through /xmdoc/cont, so
    only the text marker qualifies a link."""

    link_rules = LinkRules()
