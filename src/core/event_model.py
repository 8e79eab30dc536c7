"""Pydantic models for events that map to the Supabase schema."""

from datetime import date
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Gift(BaseModel):
    """Incentive handed out at the event (free gift, voucher...)."""

    name: str
    value: int | None = None  # NT$ value when stated
    quantity: int | None = None
    image: str | None = None


class CandidateLink(BaseModel):
    """A detail-page link found on a listing page, not yet confirmed as an event."""

    model_config = ConfigDict(frozen=True)

    url: str
    display_text: str = ""
    raw_date_tokens: tuple[str, ...] = ()


def _ordered_unique(values: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for value in values:
        value = value.strip()
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


class EventDraft(BaseModel):
    """Event fields as located on a page, before normalization.

    The date is still the raw token found in the page (or returned by the
    vision service); the normalizer turns a draft into an ExtractedEvent.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str | None = None
    raw_date: str | None = None
    time: str | None = None
    location: str | None = None
    city: str | None = None
    district: str | None = None
    organizer: str | None = None
    gift: Gift | None = None
    poster_url: str | None = None
    source_url: str
    tags: list[str] = Field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        """Whether every field the vision service could fill is already present."""
        return all([self.title, self.raw_date, self.location, self.gift])


class ExtractedEvent(BaseModel):
    """Canonical in-flight event record."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Annotated[str, Field(min_length=1, max_length=500)]
    date: date
    time: str | None = None
    location: str | None = None
    city: str | None = None
    district: str | None = None
    organizer: str | None = None
    gift: Gift | None = None
    poster_url: str | None = None
    source_url: str
    tags: list[str] = Field(default_factory=list)
    latitude: float | None = None
    longitude: float | None = None

    @field_validator("tags")
    @classmethod
    def tags_are_ordered_set(cls, v: list[str]) -> list[str]:
        """Drop duplicate and blank tags, keeping first-seen order."""
        return _ordered_unique(v)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_supabase_dict(self) -> dict:
        """Convert to dictionary for Supabase insertion.

        Maps ExtractedEvent fields to the 'events' table columns.
        """
        return {
            "title": self.title,
            "date": self.date.isoformat(),
            "time": self.time,
            "location": self.location,
            "city": self.city,
            "district": self.district,
            "organizer": self.organizer,
            "gift": self.gift.model_dump() if self.gift else None,
            "tags": self.tags,
            "source_url": self.source_url,
            "poster_url": self.poster_url,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }


class PersistedEvent(ExtractedEvent):
    """Event row as stored in the events table."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    created_at: str | None = None
    updated_at: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def id_as_str(cls, v: object) -> str:
        return str(v)

    @field_validator("tags", mode="before")
    @classmethod
    def tags_default(cls, v: object) -> object:
        return v or []
