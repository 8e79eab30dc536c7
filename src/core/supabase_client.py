"""Supabase event store.

The pipeline talks to storage only through the ``EventStore`` interface:
inserts, deletes, a date-range read and a poster lookup. Failures surface as
``PersistenceError`` so callers can count them and carry on.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any

from pydantic import ValidationError
from supabase import Client, create_client

from src.config import get_settings
from src.core.event_model import ExtractedEvent, PersistedEvent
from src.core.exceptions import InvalidConfigError, PersistenceError
from src.logging import get_logger

logger = get_logger(__name__)


class EventStore(ABC):
    """Persistence interface for events."""

    @abstractmethod
    async def upsert(self, events: list[ExtractedEvent]) -> list[PersistedEvent]:
        """Insert events (or update rows when the event carries an id)."""

    @abstractmethod
    async def delete_by_ids(self, ids: list[str]) -> int:
        """Delete rows by id, returning how many were deleted."""

    @abstractmethod
    async def query_by_date_range(self, start: date, end: date | None = None) -> list[PersistedEvent]:
        """Events dated within [start, end] (open-ended without end)."""

    @abstractmethod
    async def query_by_poster_url(self, url: str) -> list[PersistedEvent]:
        """Events using the given poster URL."""

    # Maintenance queries used by the CLI

    async def query_missing_coordinates(self, limit: int = 500) -> list[PersistedEvent]:
        raise NotImplementedError

    async def update_coordinates(self, event_id: str, latitude: float, longitude: float) -> None:
        raise NotImplementedError

    async def query_inline_posters(self) -> list[PersistedEvent]:
        raise NotImplementedError


def row_to_event(row: dict[str, Any]) -> PersistedEvent | None:
    """Convert an events row to a PersistedEvent (None for unreadable rows)."""
    data = dict(row)
    # Older rows stored the gift as plain text
    if isinstance(data.get("gift"), str):
        data["gift"] = {"name": data["gift"]}
    try:
        return PersistedEvent.model_validate(data)
    except ValidationError as e:
        logger.warning("event_row_invalid", event_id=row.get("id"), errors=e.error_count())
        return None


class SupabaseEventStore(EventStore):
    """Client for interacting with the Supabase events table."""

    def __init__(self, client: Client | None = None, table: str | None = None) -> None:
        """Initialize from settings unless a client is given."""
        settings = get_settings()
        if client is None:
            if not settings.supabase_url or not settings.supabase_service_role_key:
                raise InvalidConfigError(
                    "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set",
                    field="supabase_url",
                )
            client = create_client(settings.supabase_url, settings.supabase_service_role_key)
        self._client: Client = client
        self.table = table or settings.supabase_events_table
        self.logger = get_logger("supabase_client")

    @property
    def client(self) -> Client:
        """Get the Supabase client instance."""
        return self._client

    def _rows_to_events(self, rows: list[dict[str, Any]]) -> list[PersistedEvent]:
        return [e for e in (row_to_event(r) for r in rows) if e is not None]

    # ==========================================
    # Writes
    # ==========================================

    async def upsert(self, events: list[ExtractedEvent]) -> list[PersistedEvent]:
        if not events:
            return []

        now = datetime.now().isoformat()
        new_rows = []
        existing_rows = []
        for event in events:
            row = event.to_supabase_dict()
            row["updated_at"] = now
            if isinstance(event, PersistedEvent):
                row["id"] = event.id
                existing_rows.append(row)
            else:
                new_rows.append(row)

        saved: list[dict[str, Any]] = []
        try:
            if new_rows:
                saved += self._client.table(self.table).insert(new_rows).execute().data or []
            if existing_rows:
                saved += self._client.table(self.table).upsert(existing_rows).execute().data or []
        except Exception as e:
            raise PersistenceError(str(e), operation="upsert", table=self.table) from e

        self.logger.debug("events_upserted", inserted=len(new_rows), updated=len(existing_rows))
        return self._rows_to_events(saved)

    async def delete_by_ids(self, ids: list[str]) -> int:
        if not ids:
            return 0
        try:
            response = self._client.table(self.table).delete().in_("id", ids).execute()
        except Exception as e:
            raise PersistenceError(str(e), operation="delete", table=self.table) from e
        return len(response.data or [])

    async def update_coordinates(self, event_id: str, latitude: float, longitude: float) -> None:
        try:
            (
                self._client.table(self.table)
                .update({"latitude": latitude, "longitude": longitude})
                .eq("id", event_id)
                .execute()
            )
        except Exception as e:
            raise PersistenceError(str(e), operation="update", table=self.table) from e

    # ==========================================
    # Reads
    # ==========================================

    async def query_by_date_range(self, start: date, end: date | None = None) -> list[PersistedEvent]:
        try:
            query = self._client.table(self.table).select("*").gte("date", start.isoformat())
            if end is not None:
                query = query.lte("date", end.isoformat())
            response = query.order("date").execute()
        except Exception as e:
            raise PersistenceError(str(e), operation="select", table=self.table) from e
        return self._rows_to_events(response.data or [])

    async def query_by_poster_url(self, url: str) -> list[PersistedEvent]:
        try:
            response = self._client.table(self.table).select("*").eq("poster_url", url).execute()
        except Exception as e:
            raise PersistenceError(str(e), operation="select", table=self.table) from e
        return self._rows_to_events(response.data or [])

    async def query_missing_coordinates(self, limit: int = 500) -> list[PersistedEvent]:
        try:
            response = (
                self._client.table(self.table)
                .select("*")
                .is_("latitude", "null")
                .order("date")
                .limit(limit)
                .execute()
            )
        except Exception as e:
            raise PersistenceError(str(e), operation="select", table=self.table) from e
        return self._rows_to_events(response.data or [])

    async def query_inline_posters(self) -> list[PersistedEvent]:
        """Events whose poster is an inline data: URI instead of a URL."""
        try:
            response = (
                self._client.table(self.table)
                .select("*")
                .ilike("poster_url", "data:image%")
                .execute()
            )
        except Exception as e:
            raise PersistenceError(str(e), operation="select", table=self.table) from e
        return self._rows_to_events(response.data or [])


# Singleton instance
_store: SupabaseEventStore | None = None


def get_event_store() -> SupabaseEventStore:
    """Get or create the Supabase event store singleton."""
    global _store
    if _store is None:
        _store = SupabaseEventStore()
    return _store
