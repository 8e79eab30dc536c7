"""Centralized source configuration registry.

Provides a unified registry for every crawled source (institutional web pages,
social-media profiles, image searches). Sources are registered at import time
and can be queried by id or kind.

Usage:
    from src.config.sources import SourceRegistry, SourceKind

    # Get a specific source
    source = SourceRegistry.get("taipei")

    # Get all social sources
    social = SourceRegistry.get_by_kind(SourceKind.SOCIAL)
"""

from dataclasses import dataclass
from enum import Enum

from src.core.exceptions import InvalidConfigError, SourceNotFoundError


class SourceKind(str, Enum):
    """How a source publishes its events - determines the adapter used."""

    WEB = "web"  # JS-rendered institutional listing + detail pages
    SOCIAL = "social"  # Social-media profile with one post per poster
    SEARCH = "search"  # Image-search results page


@dataclass(frozen=True)
class SourceDescriptor:
    """Immutable description of one crawled source."""

    id: str
    kind: SourceKind
    display_name: str
    entry_url: str
    base_url: str
    city: str | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        if not self.id:
            raise InvalidConfigError("Source id must not be empty", field="id")
        if not self.entry_url.startswith(("http://", "https://")):
            raise InvalidConfigError(
                f"Source {self.id} has a non-http entry_url: {self.entry_url}",
                field="entry_url",
            )


class SourceRegistry:
    """Central registry for all event sources.

    Sources are registered at module import time from the config modules.
    Provides lookup by id and kind.
    """

    _sources: dict[str, SourceDescriptor] = {}
    _initialized: bool = False

    @classmethod
    def register(cls, source: SourceDescriptor) -> None:
        """Register a source descriptor.

        Raises:
            InvalidConfigError: If another source already uses the same id
        """
        existing = cls._sources.get(source.id)
        if existing is not None and existing != source:
            raise InvalidConfigError(f"Duplicate source id: {source.id}", field="id")
        cls._sources[source.id] = source

    @classmethod
    def register_many(cls, sources: list[SourceDescriptor]) -> None:
        """Register multiple source descriptors."""
        for source in sources:
            cls.register(source)

    @classmethod
    def get(cls, source_id: str) -> SourceDescriptor | None:
        """Get a source descriptor by id, or None."""
        cls._ensure_initialized()
        return cls._sources.get(source_id)

    @classmethod
    def require(cls, source_id: str) -> SourceDescriptor:
        """Get a source descriptor by id.

        Raises:
            SourceNotFoundError: If the id is not registered
        """
        source = cls.get(source_id)
        if source is None:
            raise SourceNotFoundError(source_id, available=cls.ids())
        return source

    @classmethod
    def get_by_kind(cls, kind: SourceKind) -> list[SourceDescriptor]:
        """Get all active sources of a kind."""
        cls._ensure_initialized()
        return [s for s in cls._sources.values() if s.kind == kind and s.is_active]

    @classmethod
    def get_active(cls) -> list[SourceDescriptor]:
        """Get all active sources, in registration order."""
        cls._ensure_initialized()
        return [s for s in cls._sources.values() if s.is_active]

    @classmethod
    def all(cls) -> list[SourceDescriptor]:
        """Get all registered sources."""
        cls._ensure_initialized()
        return list(cls._sources.values())

    @classmethod
    def ids(cls) -> list[str]:
        """Get all registered source ids."""
        cls._ensure_initialized()
        return list(cls._sources.keys())

    @classmethod
    def count_by_kind(cls) -> dict[SourceKind, int]:
        """Get active source counts by kind."""
        cls._ensure_initialized()
        counts = {kind: 0 for kind in SourceKind}
        for source in cls._sources.values():
            if source.is_active:
                counts[source.kind] += 1
        return counts

    @classmethod
    def _ensure_initialized(cls) -> None:
        """Ensure all source modules are imported."""
        if cls._initialized:
            return
        cls._initialized = True

        # Registration is repeated explicitly so clear() can be followed by a reload
        from src.config.sources import search_sources, social_sources, web_sources

        cls.register_many(web_sources.WEB_SOURCES)
        cls.register_many(social_sources.SOCIAL_SOURCES)
        cls.register_many(search_sources.SEARCH_SOURCES)

    @classmethod
    def clear(cls) -> None:
        """Clear all registered sources (for testing)."""
        cls._sources.clear()
        cls._initialized = False


__all__ = [
    "SourceKind",
    "SourceDescriptor",
    "SourceRegistry",
]
