"""Event deduplication and merge utilities.

Two records describe the same occasion when they share a date, agree on the
city (both absent, or equal after 臺/台 folding) and their normalized
locations are equal or one contains the other. The substring rule is
deliberately lenient ("地點A" matches "地點A(詳細地址)"); ``min_location_overlap``
tightens it by requiring a minimum length for the shorter key.

When two records collide the one with a poster wins, then the one with the
longer normalized location; on a tie the incumbent is kept.
"""

from dataclasses import dataclass, field

from src.core.event_model import ExtractedEvent, PersistedEvent
from src.logging import get_logger
from src.utils.locations import fold_city_variant, normalize_location_key

logger = get_logger(__name__)

# Fields compared when deciding whether a re-crawled record changed
CONTENT_FIELDS = {
    "title", "date", "time", "location", "city", "district",
    "organizer", "gift", "poster_url", "source_url", "tags",
}


@dataclass
class ReconcileResult:
    """Outcome of merging a crawled batch into the persisted set."""

    to_insert: list[ExtractedEvent] = field(default_factory=list)
    to_replace: list[tuple[str, ExtractedEvent]] = field(default_factory=list)
    to_drop: list[ExtractedEvent] = field(default_factory=list)

    @property
    def has_writes(self) -> bool:
        return bool(self.to_insert or self.to_replace)


def locations_overlap(a: str | None, b: str | None, min_overlap: int = 1) -> bool:
    """Check whether two locations name the same venue.

    Args:
        a: First location
        b: Second location
        min_overlap: Minimum normalized length of the shorter location
            before a substring match counts

    Returns:
        True if the normalized keys are equal or one contains the other
    """
    key_a = normalize_location_key(a)
    key_b = normalize_location_key(b)

    if key_a == key_b:
        return True

    shorter, longer = sorted((key_a, key_b), key=len)
    if len(shorter) < max(min_overlap, 1):
        return False
    return shorter in longer


def same_city(a: str | None, b: str | None) -> bool:
    """Both cities absent, or equal after folding 臺 to 台."""
    if not a and not b:
        return True
    if not a or not b:
        return False
    return fold_city_variant(a) == fold_city_variant(b)


def is_same_occasion(
    a: ExtractedEvent,
    b: ExtractedEvent,
    min_location_overlap: int = 1,
) -> bool:
    """Check if two records describe the same event occasion."""
    if a.date != b.date:
        return False
    if not same_city(a.city, b.city):
        return False
    return locations_overlap(a.location, b.location, min_location_overlap)


def prefers(candidate: ExtractedEvent, incumbent: ExtractedEvent) -> bool:
    """Whether ``candidate`` should replace ``incumbent`` for the same occasion."""
    if bool(candidate.poster_url) != bool(incumbent.poster_url):
        return bool(candidate.poster_url)
    return len(normalize_location_key(candidate.location)) > len(
        normalize_location_key(incumbent.location)
    )


def same_content(a: ExtractedEvent, b: ExtractedEvent) -> bool:
    """Whether two records carry the same crawled content (coordinates ignored)."""
    return a.model_dump(include=CONTENT_FIELDS) == b.model_dump(include=CONTENT_FIELDS)


def _same_poster(a: ExtractedEvent, b: ExtractedEvent) -> bool:
    return bool(a.poster_url) and a.poster_url == b.poster_url


def dedupe_batch(
    events: list[ExtractedEvent],
    min_location_overlap: int = 1,
) -> tuple[list[ExtractedEvent], list[ExtractedEvent]]:
    """Collapse same-occasion records within one crawled batch.

    Order is preserved: a winner takes the slot of the record it beat.

    Args:
        events: Crawled events in discovery order
        min_location_overlap: See ``locations_overlap``

    Returns:
        Tuple of (survivors, dropped)
    """
    survivors: list[ExtractedEvent] = []
    dropped: list[ExtractedEvent] = []

    for event in events:
        index = next(
            (
                i for i, kept in enumerate(survivors)
                if _same_poster(event, kept)
                or is_same_occasion(event, kept, min_location_overlap)
            ),
            None,
        )

        if index is None:
            survivors.append(event)
        elif prefers(event, survivors[index]):
            dropped.append(survivors[index])
            survivors[index] = event
        else:
            dropped.append(event)

    if dropped:
        logger.debug(
            "batch_deduplicated",
            original=len(events),
            unique=len(survivors),
            duplicates=len(dropped),
        )

    return survivors, dropped


def reconcile(
    new_events: list[ExtractedEvent],
    existing: list[PersistedEvent],
    min_location_overlap: int = 1,
) -> ReconcileResult:
    """Merge a crawled batch into the already persisted set.

    Steps:
    1. Deduplicate the batch itself.
    2. A record whose poster URL is already stored replaces that row, unless
       the content is unchanged (then it is dropped).
    3. Otherwise a same-occasion row is looked up; the better record wins.
    4. Records matching nothing are inserted.

    Running it again with the same batch against the resulting set yields
    no inserts and no replacements.

    Args:
        new_events: Normalized events from the current crawl
        existing: Persisted events (date-range read plus poster lookups)
        min_location_overlap: See ``locations_overlap``

    Returns:
        ReconcileResult with inserts, (existing_id, event) replacements and drops
    """
    survivors, dropped = dedupe_batch(new_events, min_location_overlap)
    result = ReconcileResult(to_drop=dropped)

    # existing id -> winning new event, in first-claim order
    claims: dict[str, ExtractedEvent] = {}

    def claim(existing_id: str, event: ExtractedEvent) -> None:
        current = claims.get(existing_id)
        if current is None:
            claims[existing_id] = event
        elif prefers(event, current):
            result.to_drop.append(current)
            claims[existing_id] = event
        else:
            result.to_drop.append(event)

    for event in survivors:
        poster_match = next((e for e in existing if _same_poster(event, e)), None)
        if poster_match is not None:
            if same_content(event, poster_match):
                result.to_drop.append(event)
            else:
                claim(poster_match.id, event)
            continue

        match = next(
            (e for e in existing if is_same_occasion(event, e, min_location_overlap)),
            None,
        )
        if match is None:
            result.to_insert.append(event)
        elif prefers(event, match):
            claim(match.id, event)
        else:
            result.to_drop.append(event)

    result.to_replace = list(claims.items())

    logger.info(
        "batch_reconciled",
        incoming=len(new_events),
        to_insert=len(result.to_insert),
        to_replace=len(result.to_replace),
        to_drop=len(result.to_drop),
    )
    return result
