"""Headless-browser page fetching with Playwright.

One ``PageFetcher`` is one browser session: it is opened for a source crawl
with ``async with`` and closed on exit, exception paths included. Every
fetch opens its own tab inside the shared browser context.

Expected failures (timeouts, navigation errors) are returned inside a
``FetchResult`` instead of being raised, so callers can skip the page.
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from bs4 import BeautifulSoup
from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from src.config.settings import Settings
from src.core.exceptions import FetchError, NavigationTimeoutError
from src.core.retry import RetryConfig
from src.logging import get_logger
from src.utils.text import normalize_whitespace
from src.utils.urls import domain_matches, extract_domain

logger = get_logger(__name__)


# ============================================================
# FETCH TYPES
# ============================================================


class WaitStrategy(str, Enum):
    """When a navigation counts as finished."""

    NETWORK_IDLE = "networkidle"  # no network activity for 500ms
    FIXED_DELAY = "fixed_delay"  # DOM loaded, then only the settle delay


@dataclass(frozen=True)
class FetchOptions:
    """Per-fetch navigation options."""

    timeout_ms: int = 60000
    wait_strategy: WaitStrategy = WaitStrategy.NETWORK_IDLE
    # Extra wait after the load event, for content painted after network idle
    settle_delay_ms: int = 3000
    cookies: tuple[dict[str, Any], ...] = ()


@dataclass
class RenderedDocument:
    """DOM snapshot of a rendered page."""

    url: str
    html: str
    final_url: str = ""
    fetched_at: datetime = field(default_factory=datetime.now)
    _soup: BeautifulSoup | None = field(default=None, init=False, repr=False, compare=False)
    _text: str | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.final_url:
            self.final_url = self.url

    @property
    def soup(self) -> BeautifulSoup:
        """Parsed DOM (parsed once, lazily)."""
        if self._soup is None:
            self._soup = BeautifulSoup(self.html, "html.parser")
        return self._soup

    @property
    def text(self) -> str:
        """Visible text of the page, scripts and styles removed."""
        if self._text is None:
            soup = BeautifulSoup(self.html, "html.parser")
            for tag in soup(["script", "style", "noscript", "template"]):
                tag.decompose()
            self._text = normalize_whitespace(soup.get_text("\n"))
        return self._text


@dataclass
class FetchResult:
    """Either a rendered document or the error that prevented it."""

    url: str
    document: RenderedDocument | None = None
    error: FetchError | None = None
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.document is not None


# ============================================================
# COOKIES
# ============================================================

_SAME_SITE = {
    "strict": "Strict",
    "lax": "Lax",
    "none": "None",
    "no_restriction": "None",
}


def to_playwright_cookie(raw: dict[str, Any]) -> dict[str, Any] | None:
    """Convert a browser-extension cookie export entry to Playwright's format."""
    if not raw.get("name") or "value" not in raw or not raw.get("domain"):
        return None

    cookie: dict[str, Any] = {
        "name": raw["name"],
        "value": str(raw["value"]),
        "domain": raw["domain"],
        "path": raw.get("path") or "/",
    }
    expires = raw.get("expires", raw.get("expirationDate"))
    if isinstance(expires, (int, float)) and expires > 0:
        cookie["expires"] = float(expires)
    if "httpOnly" in raw:
        cookie["httpOnly"] = bool(raw["httpOnly"])
    if "secure" in raw:
        cookie["secure"] = bool(raw["secure"])
    same_site = _SAME_SITE.get(str(raw.get("sameSite", "")).lower())
    if same_site:
        cookie["sameSite"] = same_site
    return cookie


def load_cookies(cookies_json: str | None = None, cookies_file: str | None = None) -> list[dict]:
    """Load session cookies from a JSON string, falling back to a JSON file.

    Args:
        cookies_json: JSON array of cookies (COOKIES_JSON)
        cookies_file: Path to a JSON array of cookies

    Returns:
        Cookies in Playwright format (empty if none could be read)
    """
    raw: Any = None

    if cookies_json:
        try:
            raw = json.loads(cookies_json)
        except json.JSONDecodeError as e:
            logger.warning("cookies_json_invalid", error=str(e))

    if raw is None and cookies_file:
        path = Path(cookies_file)
        if path.exists():
            try:
                raw = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("cookies_file_invalid", path=str(path), error=str(e))

    if not isinstance(raw, list):
        return []

    cookies = [c for c in (to_playwright_cookie(r) for r in raw if isinstance(r, dict)) if c]
    logger.debug("cookies_loaded", count=len(cookies))
    return cookies


def cookies_for_url(cookies: list[dict] | tuple[dict, ...], url: str) -> list[dict]:
    """Keep only the cookies whose domain applies to the URL's host."""
    host = extract_domain(url)
    if not host:
        return []
    return [c for c in cookies if domain_matches(c["domain"], host)]


# ============================================================
# PAGE FETCHER
# ============================================================


class PageFetcher:
    """Playwright browser session rendering pages to DOM snapshots.

    Usage:
        async with PageFetcher.from_settings(settings) as fetcher:
            result = await fetcher.fetch_rendered(url)
            if result.ok:
                soup = result.document.soup
    """

    def __init__(
        self,
        headless: bool = True,
        user_agent: str | None = None,
        locale: str = "zh-TW",
        default_options: FetchOptions | None = None,
        retry_config: RetryConfig | None = None,
        source: str | None = None,
    ):
        self.headless = headless
        self.user_agent = user_agent
        self.locale = locale
        self.default_options = default_options or FetchOptions()
        # At most one retry per page
        self.retry_config = retry_config or RetryConfig(max_attempts=2, initial_delay=2.0, jitter=0.5)
        self.source = source

        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None

    @classmethod
    def from_settings(cls, settings: Settings, source: str | None = None) -> "PageFetcher":
        """Build a fetcher from application settings."""
        options = FetchOptions(
            timeout_ms=settings.browser_nav_timeout_ms,
            settle_delay_ms=settings.browser_settle_delay_ms,
            cookies=tuple(load_cookies(settings.cookies_json, settings.cookies_file)),
        )
        return cls(
            headless=settings.browser_headless,
            user_agent=settings.browser_user_agent,
            locale=settings.browser_locale,
            default_options=options,
            retry_config=RetryConfig.for_pages(settings),
            source=source,
        )

    # ==========================================
    # Session lifecycle
    # ==========================================

    async def start(self) -> None:
        """Launch the browser and open the shared context."""
        if self._context is not None:
            return
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless,
            args=["--no-sandbox", "--disable-dev-shm-usage"],
        )
        self._context = await self._browser.new_context(
            viewport={"width": 1920, "height": 1080},
            user_agent=self.user_agent,
            locale=self.locale,
        )
        logger.debug("browser_started", headless=self.headless, source=self.source)

    async def close(self) -> None:
        """Close context, browser and driver; safe to call twice."""
        try:
            if self._context is not None:
                await self._context.close()
            if self._browser is not None:
                await self._browser.close()
        finally:
            self._context = None
            self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
        logger.debug("browser_closed", source=self.source)

    async def __aenter__(self) -> "PageFetcher":
        try:
            await self.start()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # ==========================================
    # Fetching
    # ==========================================

    async def fetch_rendered(self, url: str, options: FetchOptions | None = None) -> FetchResult:
        """Render a URL, retrying once on navigation failure.

        Args:
            url: Page to render
            options: Navigation options (defaults to the fetcher's)

        Returns:
            FetchResult holding the document, or the last FetchError
        """
        options = options or self.default_options
        last_error: FetchError | None = None
        max_attempts = max(self.retry_config.max_attempts, 1)

        for attempt in range(1, max_attempts + 1):
            try:
                document = await self._render(url, options)
                return FetchResult(url=url, document=document, attempts=attempt)
            except FetchError as e:
                last_error = e
                if attempt < max_attempts:
                    delay = self.retry_config.delay_for(attempt)
                    logger.warning(
                        "page_fetch_retry",
                        url=url[:120],
                        error=str(e),
                        attempt=attempt,
                        delay=round(delay, 2),
                    )
                    await asyncio.sleep(delay)

        logger.warning("page_fetch_failed", url=url[:120], error=str(last_error))
        return FetchResult(url=url, error=last_error, attempts=max_attempts)

    async def _render(self, url: str, options: FetchOptions) -> RenderedDocument:
        if self._context is None:
            raise RuntimeError("PageFetcher used outside of 'async with'")

        cookies = cookies_for_url(options.cookies, url)
        if cookies:
            await self._context.add_cookies(cookies)

        wait_until = (
            "networkidle" if options.wait_strategy == WaitStrategy.NETWORK_IDLE else "domcontentloaded"
        )

        page = await self._context.new_page()
        try:
            response = await page.goto(url, wait_until=wait_until, timeout=options.timeout_ms)
            if response is not None and response.status >= 400:
                raise FetchError(f"HTTP {response.status}", url=url, source=self.source)

            if options.settle_delay_ms > 0:
                await page.wait_for_timeout(options.settle_delay_ms)

            html = await page.content()
            logger.debug("page_rendered", url=url[:120], size=len(html))
            return RenderedDocument(url=url, html=html, final_url=page.url)

        except PlaywrightTimeoutError:
            raise NavigationTimeoutError(url, options.timeout_ms, source=self.source) from None
        except PlaywrightError as e:
            raise FetchError(f"Navigation failed: {e.message}", url=url, source=self.source) from e
        finally:
            await page.close()
