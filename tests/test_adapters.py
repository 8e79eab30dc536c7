"""Tests for source configuration and the adapters."""

import pytest

from src.adapters import ADAPTER_REGISTRY, get_adapter, get_adapter_class, list_adapters
from src.adapters.search_adapter import SearchAdapter
from src.adapters.social_adapter import SocialSourceAdapter, find_post_image, is_valid_post_image
from src.adapters.web_adapter import HsinchuAdapter, WebSourceAdapter
from src.config.sources import SourceDescriptor, SourceKind, SourceRegistry
from src.config.sources.search_sources import build_image_search_url
from src.core.event_model import CandidateLink, EventDraft, Gift
from src.core.exceptions import AdapterNotFoundError, InvalidConfigError, SourceNotFoundError
from tests.conftest import AS_OF, make_document

POSTER = "https://scontent.cdninstagram.com/v/t51/poster_1123.jpg"


# =============================================================================
# Source registry
# =============================================================================


class TestSourceRegistry:
    """Tests for SourceRegistry."""

    def test_sources_registered(self):
        ids = SourceRegistry.ids()
        for source_id in ("taipei", "hsinchu", "kaohsiung_instagram", "taichung_search"):
            assert source_id in ids

    def test_get_by_kind(self):
        social = SourceRegistry.get_by_kind(SourceKind.SOCIAL)
        assert all(s.kind == SourceKind.SOCIAL for s in social)
        assert "kaohsiung_instagram" in [s.id for s in social]

    def test_unknown_source(self):
        with pytest.raises(SourceNotFoundError) as exc_info:
            SourceRegistry.require("nowhere")
        assert "taipei" in exc_info.value.available

    def test_conflicting_registration(self):
        taipei = SourceRegistry.require("taipei")
        conflicting = SourceDescriptor(
            id="taipei",
            kind=SourceKind.SOCIAL,
            display_name="other",
            entry_url="https://example.com",
            base_url="https://example.com",
        )
        with pytest.raises(InvalidConfigError):
            SourceRegistry.register(conflicting)
        assert SourceRegistry.require("taipei") == taipei

    def test_invalid_entry_url(self):
        with pytest.raises(InvalidConfigError):
            SourceDescriptor(id="x", kind=SourceKind.WEB, display_name="x", entry_url="ftp://x", base_url="ftp://x")

    def test_count_by_kind(self):
        counts = SourceRegistry.count_by_kind()
        assert counts[SourceKind.WEB] >= 2
        assert counts[SourceKind.SEARCH] >= 1

    def test_image_search_url(self):
        url = build_image_search_url("台中捐血中心 捐血活動")
        assert "tbm=isch" in url
        assert "tbs=qdr:w" in url


# =============================================================================
# Registry of adapters
# =============================================================================


class TestAdapterRegistry:
    """Tests for adapter resolution."""

    def test_resolution_by_kind_and_id(self):
        assert get_adapter_class(SourceRegistry.require("taipei")) is WebSourceAdapter
        assert get_adapter_class(SourceRegistry.require("hsinchu")) is HsinchuAdapter
        assert get_adapter_class(SourceRegistry.require("kaohsiung_instagram")) is SocialSourceAdapter
        assert get_adapter_class(SourceRegistry.require("taichung_search")) is SearchAdapter

    def test_missing_adapter(self, monkeypatch):
        list_adapters()
        monkeypatch.delitem(ADAPTER_REGISTRY, "search")
        with pytest.raises(AdapterNotFoundError):
            get_adapter_class(SourceRegistry.require("taichung_search"))

    def test_max_candidates_override(self):
        adapter = get_adapter(SourceRegistry.require("taipei"), max_candidates=3)
        assert adapter.link_rules.max_candidates == 3
        assert WebSourceAdapter.link_rules.max_candidates == 30


# =============================================================================
# Vision merge
# =============================================================================


class TestMergeVision:
    """Tests for SourceAdapter.merge_vision()."""

    def test_page_fields_win(self):
        adapter = get_adapter(SourceRegistry.require("taipei"))
        draft = EventDraft(title="頁面標題", raw_date="11/23", poster_url=POSTER, source_url="https://a.tw/p")
        vision = EventDraft(
            title="海報標題",
            raw_date="2025-11-23",
            location="中正紀念堂",
            gift=Gift(name="禮券"),
            source_url=POSTER,
        )

        merged = adapter.merge_vision(draft, [vision])

        assert len(merged) == 1
        assert merged[0].title == "頁面標題"
        assert merged[0].raw_date == "11/23"
        assert merged[0].location == "中正紀念堂"
        assert merged[0].gift.name == "禮券"
        assert merged[0].source_url == "https://a.tw/p"

    def test_no_vision_keeps_draft(self):
        adapter = get_adapter(SourceRegistry.require("taipei"))
        draft = EventDraft(title="頁面標題", source_url="https://a.tw/p")
        assert adapter.merge_vision(draft, []) == [draft]

    def test_vision_precedence(self):
        adapter = get_adapter(SourceRegistry.require("kaohsiung_instagram"))
        draft = adapter.base_draft("https://www.instagram.com/p/ABC/", poster_url=POSTER, title="caption")
        vision = EventDraft(title="海報標題", raw_date="2025-11-23", location="巨蛋", source_url=POSTER)

        merged = adapter.merge_vision(draft, [vision])

        assert merged[0].title == "海報標題"
        assert merged[0].source_url == "https://www.instagram.com/p/ABC/"
        assert merged[0].city == "高雄市"
        assert merged[0].tags == ["高雄捐血中心 Instagram"]
        assert adapter.merge_vision(draft, []) == []

    def test_wants_vision(self):
        web = get_adapter(SourceRegistry.require("taipei"))
        complete = EventDraft(
            title="t", raw_date="11/23", location="l", gift=Gift(name="g"),
            poster_url=POSTER, source_url="https://a.tw/p",
        )
        assert not web.wants_vision(complete)
        assert web.wants_vision(complete.model_copy(update={"gift": None}))
        assert not web.wants_vision(complete.model_copy(update={"poster_url": None, "gift": None}))


# =============================================================================
# Social
# =============================================================================

PROFILE_HTML = """
<html><body>
  <a href="/p/ABC/"><img src="https://scontent.cdninstagram.com/a.jpg" alt="11/23 高雄巨蛋捐血"></a>
  <a href="/p/DEF/"><img src="https://scontent.cdninstagram.com/b.jpg" alt="11月捐血行事曆"></a>
  <a href="/explore/">探索</a>
  <a href="/p/ABC/">重複</a>
  <a href="/p/OLD/"><img src="https://scontent.cdninstagram.com/c.jpg" alt="11/01 捐血"></a>
</body></html>
"""


class TestSocialAdapter:
    """Tests for the social adapter."""

    def test_discover_posts(self):
        source = SourceRegistry.require("kaohsiung_instagram")
        adapter = get_adapter(source)

        candidates = adapter.discover(make_document(PROFILE_HTML, source.entry_url), AS_OF)

        assert [c.url for c in candidates] == ["https://www.instagram.com/p/ABC/"]

    def test_extract_og_image(self):
        source = SourceRegistry.require("kaohsiung_instagram")
        adapter = get_adapter(source)
        html = (
            f'<html><head><meta property="og:image" content="{POSTER}">'
            '<meta property="og:title" content="高雄捐血中心 on Instagram"></head></html>'
        )
        candidate = CandidateLink(url="https://www.instagram.com/p/ABC/")

        draft = adapter.extract(make_document(html, candidate.url), candidate)

        assert draft.poster_url == POSTER
        assert draft.title == "高雄捐血中心 on Instagram"
        assert draft.city == "高雄市"
        assert draft.source_url == candidate.url

    def test_extract_without_image(self):
        adapter = get_adapter(SourceRegistry.require("kaohsiung_instagram"))
        candidate = CandidateLink(url="https://www.instagram.com/p/ABC/")
        assert adapter.extract(make_document("<html></html>", candidate.url), candidate) is None

    def test_fallback_largest_image(self):
        from bs4 import BeautifulSoup

        html = """
          <img src="https://static.xx.fbcdn.net/rsrc.php/sprite.png" width="500" height="500">
          <img src="https://scontent.fbcdn.net/small.jpg" width="40" height="40">
          <img src="https://scontent.fbcdn.net/poster.jpg" width="720" height="960">
          <img src="https://scontent.fbcdn.net/medium.jpg" width="320" height="320">
        """
        url = find_post_image(BeautifulSoup(html, "html.parser"), "https://www.facebook.com")
        assert url == "https://scontent.fbcdn.net/poster.jpg"

    def test_is_valid_post_image(self):
        assert is_valid_post_image(POSTER)
        assert not is_valid_post_image("https://www.facebook.com/emoji/heart.png")
        assert not is_valid_post_image(None)


# =============================================================================
# Search
# =============================================================================

SEARCH_HTML = """
<html><body>
  <a href="/imgres?imgurl=https://img.example.com/poster1.jpg&imgrefurl=https://blog.example.com/1">
    <img src="https://encrypted-tbn0.gstatic.com/images?q=1" alt="台中捐血活動">
  </a>
  <a href="/imgres?imgurl=https://img.example.com/calendar.jpg">
    <img src="https://encrypted-tbn0.gstatic.com/images?q=2" alt="12月捐血活動行事曆">
  </a>
  <a href="/imgres?imgurl=https://img.example.com/poster1.jpg">dup</a>
  <div data-id="x1"><img src="https://encrypted-tbn0.gstatic.com/images?q=3"></div>
  <div data-id="x2"><img src="https://img.example.com/poster2.jpg" alt="捐血送電影票"></div>
  <a href="/search?q=next">下一頁</a>
</body></html>
"""


class TestSearchAdapter:
    """Tests for the image-search adapter."""

    def test_discover_full_size_images(self):
        source = SourceRegistry.require("taichung_search")
        adapter = get_adapter(source)

        candidates = adapter.discover(make_document(SEARCH_HTML, source.entry_url), AS_OF)

        assert [c.url for c in candidates] == [
            "https://img.example.com/poster1.jpg",
            "https://img.example.com/poster2.jpg",
        ]

    def test_candidate_is_poster(self):
        adapter = get_adapter(SourceRegistry.require("taichung_search"))
        assert adapter.requires_detail_fetch is False

        draft = adapter.draft_from_candidate(CandidateLink(url="https://img.example.com/poster1.jpg"))

        assert draft.poster_url == "https://img.example.com/poster1.jpg"
        assert draft.city == "台中市"
        assert adapter.wants_vision(draft)
