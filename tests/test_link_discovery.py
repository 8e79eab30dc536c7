"""Tests for candidate link discovery on listing pages."""

from src.config.sources import SourceRegistry
from src.core.link_discovery import LinkRules, discover_candidates, is_upcoming, qualifies
from tests.conftest import AS_OF, TAIPEI_BASE, listing_html, make_document

LISTING = listing_html(
    ("/xmdoc/cont?xsmsid=A&sid=1", "11/23 捐血活動 中正紀念堂"),
    ("/xmdoc/cont?xsmsid=A&sid=2", "11月份捐血活動行事曆"),
    ("/xmdoc/cont?xsmsid=A&sid=3", "10/01 捐血活動 台北車站"),
    ("/xmdoc/cont?xsmsid=A&sid=1#top", "11/23 捐血活動 中正紀念堂"),
    ("/about", "關於我們"),
    ("/xmdoc/cont?xsmsid=A&sid=4", "捐血活動 西門町"),
    ("/xmdoc/cont?xsmsid=A&sid=5", "1/5 捐血活動 新年場"),
)


def _discover(html: str, rules: LinkRules | None = None):
    source = SourceRegistry.require("taipei")
    return discover_candidates(make_document(html, source.entry_url), source, AS_OF, rules)


class TestDiscoverCandidates:
    """Tests for discover_candidates()."""

    def test_upcoming_drive_found(self):
        candidates = _discover(LISTING)

        first = candidates[0]
        assert first.url == f"{TAIPEI_BASE}/xmdoc/cont?xsmsid=A&sid=1"
        assert first.display_text == "11/23 捐血活動 中正紀念堂"
        assert first.raw_date_tokens == ("11/23",)

    def test_filters_and_order(self):
        urls = [c.url for c in _discover(LISTING)]

        assert urls == [
            f"{TAIPEI_BASE}/xmdoc/cont?xsmsid=A&sid=1",
            f"{TAIPEI_BASE}/xmdoc/cont?xsmsid=A&sid=4",
            f"{TAIPEI_BASE}/xmdoc/cont?xsmsid=A&sid=5",
        ]

    def test_cap(self):
        candidates = _discover(LISTING, LinkRules(max_candidates=2))
        assert len(candidates) == 2

    def test_image_alt_counts_as_text(self):
        html = listing_html(("/xmdoc/cont?sid=9", '<img src="/x.jpg" alt="11/25 捐血活動">'))
        candidates = _discover(html)
        assert [c.raw_date_tokens for c in candidates] == [("11/25",)]

    def test_path_marker(self):
        html = listing_html(("/xmdoc/cont?sid=7", "中正紀念堂 愛心活動"))
        assert _discover(html) == []
        assert len(_discover(html, LinkRules(detail_path_markers=("xmdoc/cont",)))) == 1

    def test_extended_denylist(self):
        rules = LinkRules().extend_denylist("西門町")
        urls = [c.url for c in _discover(LISTING, rules)]
        assert f"{TAIPEI_BASE}/xmdoc/cont?xsmsid=A&sid=4" not in urls

    def test_empty_listing(self):
        assert _discover("<html><body></body></html>") == []


class TestRules:
    """Tests for the link predicates."""

    def test_denylist_beats_marker(self):
        assert not qualifies("捐血活動總表", "/xmdoc/cont?sid=1", LinkRules())

    def test_denylist_beats_path_marker(self):
        rules = LinkRules(detail_path_markers=("xmdoc/cont",))
        assert not qualifies("新聞稿", "/xmdoc/cont?sid=1", rules)

    def test_is_upcoming(self):
        assert is_upcoming(["11/20"], AS_OF)
        assert not is_upcoming(["11/19"], AS_OF)
        assert is_upcoming([], AS_OF)
        assert is_upcoming(["11/19", "11/21"], AS_OF)
