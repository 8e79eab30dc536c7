"""Core modules for the crawler."""

from src.core.event_model import CandidateLink, EventDraft, ExtractedEvent, Gift, PersistedEvent
from src.core.exceptions import (
    ConfigurationError,
    DateUnparseable,
    EnrichmentError,
    ExtractionRejected,
    FetchError,
    GeocodeUnresolved,
    NavigationTimeoutError,
    PersistenceError,
    PosterCrawlerError,
    SourceNotFoundError,
)
from src.core.retry import RetryConfig, with_retry

__all__ = [
    # Event models
    "CandidateLink",
    "EventDraft",
    "ExtractedEvent",
    "Gift",
    "PersistedEvent",
    # Exceptions
    "PosterCrawlerError",
    "ConfigurationError",
    "SourceNotFoundError",
    "FetchError",
    "NavigationTimeoutError",
    "ExtractionRejected",
    "DateUnparseable",
    "EnrichmentError",
    "GeocodeUnresolved",
    "PersistenceError",
    # Retry
    "with_retry",
    "RetryConfig",
]
