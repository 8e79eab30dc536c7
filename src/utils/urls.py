"""URL helpers for link discovery, cookies and image-search results."""

from urllib.parse import parse_qs, urljoin, urlparse

_NON_NAVIGABLE = ("javascript:", "mailto:", "tel:", "data:", "#")


def is_valid_url(url: str | None) -> bool:
    """True for absolute http(s) URLs with a host."""
    if not url:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def make_absolute_url(url: str | None, base_url: str) -> str | None:
    """Resolve an href against the page it was found on.

    Anchors, script links and mail/phone links resolve to None.
    """
    if not url:
        return None

    url = url.strip()
    if not url or url.lower().startswith(_NON_NAVIGABLE):
        return None
    if url.startswith("//"):
        url = f"{urlparse(base_url).scheme or 'https'}:{url}"

    try:
        return urljoin(base_url, url)
    except ValueError:
        return None


def strip_fragment(url: str) -> str:
    """Drop the #fragment; two links differing only there are the same page."""
    return url.split("#", 1)[0]


def extract_domain(url: str | None) -> str | None:
    """Lower-cased host of a URL, or None."""
    if not url:
        return None
    try:
        return urlparse(url).hostname or None
    except ValueError:
        return None


def domain_matches(cookie_domain: str, host: str) -> bool:
    """Whether a cookie domain (".instagram.com") applies to a host."""
    cookie_domain = cookie_domain.lstrip(".").lower()
    host = host.lower()
    return host == cookie_domain or host.endswith("." + cookie_domain)


def get_query_param(url: str, name: str) -> str | None:
    """First value of a query parameter, e.g. ``imgurl`` on image-search links."""
    try:
        values = parse_qs(urlparse(url).query).get(name)
    except ValueError:
        return None
    return values[0] if values else None
