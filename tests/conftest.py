"""Pytest configuration and shared fixtures."""

import sys
from datetime import date

import pytest

from src.core.event_model import ExtractedEvent, PersistedEvent
from src.core.exceptions import FetchError, PersistenceError
from src.core.page_fetcher import FetchResult, RenderedDocument
from src.core.supabase_client import EventStore

# Fix encoding for Windows
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8")


AS_OF = date(2025, 11, 20)

TAIPEI_BASE = "https://www.tp.blood.org.tw"


# =============================================================================
# HTML builders
# =============================================================================


def listing_html(*anchors: tuple[str, str]) -> str:
    """Listing page with one <li><a> per (href, text)."""
    items = "\n".join(f'<li><a href="{href}">{text}</a></li>' for href, text in anchors)
    return f"<html><body><ul class='list'>{items}</ul></body></html>"


def detail_html(
    title: str = "11/23 中正紀念堂捐血活動",
    date_text: str = "114年11月23日",
    time_text: str = "09:00-17:00",
    location: str = "臺北市中正區中山南路21號",
    organizer: str = "台北捐血中心",
    gift: str = "7-11禮券 NT$200",
    poster: str | None = "/public/Data/file_pool/poster_1123.jpg",
) -> str:
    """Detail page in the xmdoc layout: header logo, poster, labeled lines."""
    poster_tag = f'<img src="{poster}" alt="poster">' if poster else ""
    return f"""
    <html><body>
      <div class="header"><img src="/images/logo.png" width="200" height="80"></div>
      <div class="xccont">
        <h2>{title}</h2>
        {poster_tag}
        <p>活動日期：{date_text}</p>
        <p>活動時間：{time_text}</p>
        <p>活動地點：{location}</p>
        <p>主辦單位：{organizer}</p>
        <p>贈品：{gift}</p>
      </div>
      <script>var dates = "11/1 11/2 11/3 11/4 11/5 11/6";</script>
    </body></html>
    """


def make_document(html: str, url: str = f"{TAIPEI_BASE}/xmdoc/cont?sid=1") -> RenderedDocument:
    return RenderedDocument(url=url, html=html)


def make_event(**overrides: object) -> ExtractedEvent:
    data: dict = {
        "title": "中正紀念堂捐血活動",
        "date": date(2025, 11, 23),
        "location": "中正紀念堂",
        "city": "台北市",
        "source_url": f"{TAIPEI_BASE}/xmdoc/cont?sid=1",
        "tags": ["台北捐血中心"],
    }
    data.update(overrides)
    return ExtractedEvent(**data)


def persist(event: ExtractedEvent, event_id: str) -> PersistedEvent:
    return PersistedEvent(id=event_id, **event.model_dump())


# =============================================================================
# Fakes
# =============================================================================


class FakeFetcher:
    """Stands in for a PageFetcher session: serves HTML from a dict."""

    def __init__(self, pages: dict[str, str]):
        self.pages = pages
        self.requested: list[str] = []
        self.closed = False

    async def __aenter__(self) -> "FakeFetcher":
        return self

    async def __aexit__(self, *args: object) -> None:
        self.closed = True

    async def fetch_rendered(self, url: str, options: object = None) -> FetchResult:
        self.requested.append(url)
        html = self.pages.get(url)
        if html is None:
            return FetchResult(url=url, error=FetchError("HTTP 404", url=url), attempts=2)
        return FetchResult(url=url, document=RenderedDocument(url=url, html=html))


class InMemoryEventStore(EventStore):
    """Event store keeping rows in a dict."""

    def __init__(
        self,
        events: list[PersistedEvent] | None = None,
        fail_writes: bool = False,
        fail_upserts: bool = False,
    ):
        self.rows: dict[str, PersistedEvent] = {e.id: e for e in events or []}
        self.fail_writes = fail_writes
        self.fail_upserts = fail_upserts
        self.deleted: list[str] = []
        self._next_id = len(self.rows) + 1

    async def upsert(self, events: list[ExtractedEvent]) -> list[PersistedEvent]:
        if self.fail_writes or self.fail_upserts:
            raise PersistenceError("write rejected", operation="upsert", table="events")
        saved = []
        for event in events:
            if isinstance(event, PersistedEvent):
                row = event
            else:
                row = persist(event, str(self._next_id))
                self._next_id += 1
            self.rows[row.id] = row
            saved.append(row)
        return saved

    async def delete_by_ids(self, ids: list[str]) -> int:
        if self.fail_writes:
            raise PersistenceError("write rejected", operation="delete", table="events")
        deleted = 0
        for event_id in ids:
            if self.rows.pop(event_id, None) is not None:
                self.deleted.append(event_id)
                deleted += 1
        return deleted

    async def query_by_date_range(self, start: date, end: date | None = None) -> list[PersistedEvent]:
        rows = [
            r for r in self.rows.values()
            if r.date >= start and (end is None or r.date <= end)
        ]
        return sorted(rows, key=lambda r: r.date)

    async def query_by_poster_url(self, url: str) -> list[PersistedEvent]:
        return [r for r in self.rows.values() if r.poster_url == url]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def as_of() -> date:
    return AS_OF


@pytest.fixture
def store() -> InMemoryEventStore:
    return InMemoryEventStore()
