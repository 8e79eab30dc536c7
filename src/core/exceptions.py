"""Unified exception hierarchy for the poster event crawler.

Exception categories:
- Configuration errors (unknown source, invalid settings)
- Fetch errors (navigation failure, timeout)
- Extraction errors (non-event page, no acceptable poster, bad date)
- Enrichment errors (vision service, geocoding)
- Storage errors (Supabase failures)

Expected failures (a page timing out, an address without a match) travel as
typed results and are only raised where a caller asks for it. Configuration
errors always raise.
"""


class PosterCrawlerError(Exception):
    """Base exception for all crawler errors."""

    def __init__(self, message: str, source: str | None = None, details: dict | None = None):
        self.source = source
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        msg = super().__str__()
        if self.source:
            msg = f"[{self.source}] {msg}"
        return msg


# ============================================================
# CONFIGURATION ERRORS
# ============================================================


class ConfigurationError(PosterCrawlerError):
    """Base class for configuration-related errors."""
    pass


class SourceNotFoundError(ConfigurationError):
    """Raised when a source id is not found in the registry."""

    def __init__(self, source_id: str, available: list[str] | None = None):
        self.source_id = source_id
        self.available = available
        msg = f"Unknown source: {source_id}"
        if available:
            msg += f". Available: {', '.join(available[:5])}"
        super().__init__(msg, source=source_id)


class AdapterNotFoundError(ConfigurationError):
    """Raised when no adapter is registered for a source kind or id."""

    def __init__(self, source_id: str, kind: str):
        super().__init__(f"No adapter registered for kind '{kind}'", source=source_id)


class InvalidConfigError(ConfigurationError):
    """Raised when configuration values are invalid."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        details = {"field": field} if field else {}
        super().__init__(message, details=details)


# ============================================================
# FETCH ERRORS
# ============================================================


class FetchError(PosterCrawlerError):
    """Navigation or rendering failure for one page."""

    def __init__(self, message: str, url: str | None = None, source: str | None = None):
        self.url = url
        super().__init__(message, source=source, details={"url": url})


class NavigationTimeoutError(FetchError):
    """Raised when a page does not finish loading in time."""

    def __init__(self, url: str, timeout_ms: int, source: str | None = None):
        self.timeout_ms = timeout_ms
        super().__init__(f"Navigation timed out after {timeout_ms}ms", url=url, source=source)
        self.details["timeout_ms"] = timeout_ms


# ============================================================
# EXTRACTION ERRORS
# ============================================================


class ExtractionRejected(PosterCrawlerError):
    """Raised when a detail page is not a single-event page or has no usable poster."""

    def __init__(self, reason: str, url: str | None = None, source: str | None = None):
        self.reason = reason
        self.url = url
        super().__init__(f"Extraction rejected: {reason}", source=source, details={"url": url})


class DateUnparseable(PosterCrawlerError):
    """Raised when an event's date cannot be normalized."""

    def __init__(self, value: str | None, source: str | None = None):
        self.value = value
        super().__init__(f"Unparseable date: {value!r}", source=source, details={"value": value})


# ============================================================
# ENRICHMENT ERRORS
# ============================================================


class EnrichmentError(PosterCrawlerError):
    """Base class for best-effort enrichment errors."""
    pass


class VisionExtractionError(EnrichmentError):
    """Raised for vision service failures (retried, then swallowed to [])."""

    def __init__(self, message: str, model: str | None = None, source: str | None = None):
        self.model = model
        super().__init__(message, source=source, details={"model": model})


class GeocodeUnresolved(EnrichmentError):
    """An address that could not be turned into coordinates."""

    def __init__(self, address: str, status: str):
        self.address = address
        self.status = status
        super().__init__(
            f"Geocoding failed ({status}) for: {address}",
            details={"address": address, "status": status},
        )


# ============================================================
# STORAGE ERRORS
# ============================================================


class PersistenceError(PosterCrawlerError):
    """Raised when the event store rejects a read or write."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        table: str | None = None,
        source: str | None = None,
    ):
        self.operation = operation
        self.table = table
        super().__init__(
            message,
            source=source,
            details={"operation": operation, "table": table},
        )
