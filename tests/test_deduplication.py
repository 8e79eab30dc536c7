"""Tests for same-occasion matching and batch reconciliation.

Tests:
1. locations_overlap() - lenient substring rule and its threshold
2. is_same_occasion() - date / city / location agreement
3. dedupe_batch() - collapsing within one crawl
4. reconcile() - insert / replace / drop against persisted rows
"""

from datetime import date

import pytest

from src.utils.deduplication import (
    dedupe_batch,
    is_same_occasion,
    locations_overlap,
    prefers,
    reconcile,
    same_content,
)
from tests.conftest import make_event, persist

POSTER = "https://www.tp.blood.org.tw/file_pool/poster_1123.jpg"


# =============================================================================
# Matching
# =============================================================================


class TestLocationsOverlap:
    """Tests for locations_overlap()."""

    def test_substring_matches(self):
        assert locations_overlap("地點A", "地點A(詳細地址)")

    def test_noise_ignored(self):
        assert locations_overlap("臺大醫院 (東址)", "台大醫院東址")

    def test_different_places(self):
        assert not locations_overlap("中正紀念堂", "台北車站")

    def test_both_empty_match(self):
        assert locations_overlap(None, "")

    def test_min_overlap_tightens(self):
        assert locations_overlap("站", "台北車站")
        assert not locations_overlap("站", "台北車站", min_overlap=2)
        assert locations_overlap("車站", "台北車站", min_overlap=2)

    def test_one_empty_never_substring(self):
        assert not locations_overlap("", "台北車站")


class TestSameOccasion:
    """Tests for is_same_occasion()."""

    def test_same(self):
        a = make_event(location="中正紀念堂")
        b = make_event(location="中正紀念堂自由廣場", city="臺北市")
        assert is_same_occasion(a, b)

    def test_different_date(self):
        assert not is_same_occasion(make_event(), make_event(date=date(2025, 11, 24)))

    def test_city_mismatch(self):
        assert not is_same_occasion(make_event(), make_event(city="新北市"))

    def test_one_city_missing(self):
        assert not is_same_occasion(make_event(), make_event(city=None))


class TestPrefers:
    """Tests for prefers()."""

    def test_poster_wins(self):
        assert prefers(make_event(poster_url=POSTER), make_event(location="中正紀念堂自由廣場"))

    def test_longer_location_wins(self):
        assert prefers(make_event(location="中正紀念堂自由廣場"), make_event())

    def test_tie_keeps_incumbent(self):
        assert not prefers(make_event(), make_event())


# =============================================================================
# Batch deduplication
# =============================================================================


class TestDedupeBatch:
    """Tests for dedupe_batch()."""

    def test_winner_takes_slot(self):
        first = make_event(title="A")
        other = make_event(title="B", location="台北車站")
        better = make_event(title="C", poster_url=POSTER)

        survivors, dropped = dedupe_batch([first, other, better])

        assert [e.title for e in survivors] == ["C", "B"]
        assert [e.title for e in dropped] == ["A"]

    def test_same_poster_collapses(self):
        a = make_event(poster_url=POSTER, location="台北車站")
        b = make_event(poster_url=POSTER, location="車站", date=date(2025, 11, 30))

        survivors, dropped = dedupe_batch([a, b])

        assert survivors == [a]
        assert dropped == [b]

    def test_distinct_events_kept(self):
        events = [make_event(), make_event(city="新北市")]
        survivors, dropped = dedupe_batch(events)
        assert survivors == events
        assert dropped == []


# =============================================================================
# Reconcile
# =============================================================================


class TestReconcile:
    """Tests for reconcile()."""

    @pytest.mark.parametrize("order", ["text_first", "poster_first"])
    def test_detailed_poster_record_survives_either_order(self, order):
        a = make_event(title="11/23 捐血活動", location="地點A")
        b = make_event(title="11/23 捐血活動", location="地點A(詳細地址)", poster_url=POSTER)
        batch = [a, b] if order == "text_first" else [b, a]

        result = reconcile(batch, [])

        assert result.to_insert == [b]
        assert result.to_drop == [a]

    @pytest.mark.parametrize("order", ["short_first", "long_first"])
    def test_longer_location_survives_either_order(self, order):
        a = make_event(location="地點A")
        b = make_event(location="地點A(詳細地址)")
        batch = [a, b] if order == "short_first" else [b, a]

        assert reconcile(batch, []).to_insert == [b]

    def test_new_events_inserted(self):
        events = [make_event(), make_event(location="台北車站")]
        result = reconcile(events, [])
        assert result.to_insert == events
        assert result.to_replace == []

    def test_poster_record_replaces_text_only_row(self):
        existing = persist(make_event(), "row-1")
        incoming = make_event(poster_url=POSTER)

        result = reconcile([incoming], [existing])

        assert result.to_insert == []
        assert result.to_replace == [("row-1", incoming)]

    def test_text_only_record_dropped_against_poster_row(self):
        existing = persist(make_event(poster_url=POSTER), "row-1")
        incoming = make_event(location="中正紀念堂自由廣場")

        result = reconcile([incoming], [existing])

        assert not result.has_writes
        assert result.to_drop == [incoming]

    def test_longer_location_replaces(self):
        existing = persist(make_event(location="中正紀念堂"), "row-1")
        incoming = make_event(location="中正紀念堂自由廣場")

        result = reconcile([incoming], [existing])

        assert result.to_replace == [("row-1", incoming)]

    def test_poster_url_match_with_new_content_replaces(self):
        existing = persist(make_event(poster_url=POSTER), "row-1")
        incoming = make_event(poster_url=POSTER, title="中正紀念堂捐血活動 (時間更新)")

        result = reconcile([incoming], [existing])

        assert result.to_replace == [("row-1", incoming)]

    def test_poster_url_match_ignores_coordinates(self):
        existing = persist(make_event(poster_url=POSTER, latitude=25.03, longitude=121.52), "row-1")
        incoming = make_event(poster_url=POSTER)

        result = reconcile([incoming], [existing])

        assert not result.has_writes

    def test_single_replacement_per_row(self):
        existing = persist(make_event(), "row-1")
        a = make_event(title="A", location="中正紀念堂廣場")
        b = make_event(title="B", poster_url=POSTER, date=date(2025, 11, 23), location="中正紀念堂")

        result = reconcile([a, b], [existing])

        # a and b are the same occasion: b (poster) wins inside the batch
        assert result.to_replace == [("row-1", b)]
        assert a in result.to_drop

    def test_idempotent(self):
        batch = [
            make_event(poster_url=POSTER),
            make_event(location="台北車站", title="台北車站捐血"),
        ]
        first = reconcile(batch, [])
        persisted = [persist(e, f"row-{i}") for i, e in enumerate(first.to_insert)]

        second = reconcile(batch, persisted)

        assert second.to_insert == []
        assert second.to_replace == []
        assert len(second.to_drop) == 2

    @pytest.mark.parametrize("min_overlap,expected_inserts", [(1, 0), (4, 1)])
    def test_min_location_overlap(self, min_overlap, expected_inserts):
        existing = persist(make_event(location="車站"), "row-1")
        incoming = make_event(location="台北車站")

        result = reconcile([incoming], [existing], min_location_overlap=min_overlap)

        assert len(result.to_insert) == expected_inserts

    def test_same_content(self):
        event = make_event(poster_url=POSTER)
        assert same_content(event, persist(event, "row-1"))
        assert not same_content(event, make_event(poster_url=POSTER, time="09:00-17:00"))
