"""Crawl pipeline.

Runs every selected source through the same stages:
1. Render the entry page and discover candidate links
2. Render each detail page (in discovery order) and extract a draft
3. Read posters with the vision service where the adapter asks for it
4. Normalize drafts, dropping past and undated events
5. Reconcile with the persisted set (one date-range read + poster lookups)
6. Geocode events about to be written
7. Persist: delete replaced rows, insert winners

Sources run one after another. A failing source contributes an error and
no events; it never stops the run.

Usage:
    from src.core.pipeline import CrawlPipeline, PipelineConfig

    config = PipelineConfig(source_ids=["taipei"], dry_run=True)
    pipeline = CrawlPipeline(config, store=get_event_store())
    result = await pipeline.run()
"""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field, replace
from datetime import date, datetime

from src.adapters import get_adapter
from src.config.settings import Settings, get_settings
from src.config.sources import SourceDescriptor, SourceKind, SourceRegistry
from src.core.base_adapter import SourceAdapter
from src.core.detail_extractor import normalize_draft
from src.core.event_model import CandidateLink, EventDraft, ExtractedEvent, PersistedEvent
from src.core.exceptions import ConfigurationError, DateUnparseable, ExtractionRejected, PersistenceError
from src.core.geocoder import GeocodingEnricher
from src.core.page_fetcher import PageFetcher
from src.core.supabase_client import EventStore
from src.core.vision_client import VisionExtractionService
from src.logging import get_logger, log_source_run
from src.utils.deduplication import ReconcileResult, reconcile

logger = get_logger(__name__)

FetcherFactory = Callable[[SourceDescriptor], AbstractAsyncContextManager[PageFetcher]]


@dataclass
class PipelineConfig:
    """Configuration for a crawl run."""

    source_ids: list[str] | None = None  # None = every active source
    kind: SourceKind | None = None
    as_of: date | None = None  # None = today
    dry_run: bool = False
    geocode: bool = True
    vision: bool = True
    max_candidates: int = 30
    summary_threshold: int = 5
    min_location_overlap: int = 1

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: object) -> "PipelineConfig":
        config = cls(
            dry_run=settings.dry_run,
            vision=settings.vision_enabled,
            max_candidates=settings.crawl_max_candidates,
            summary_threshold=settings.summary_date_threshold,
            min_location_overlap=settings.min_location_overlap,
        )
        return replace(config, **overrides)


@dataclass
class CrawlBatch:
    """Crawl state of one source, handed from stage to stage."""

    source: SourceDescriptor
    as_of: date
    candidates: list[CandidateLink] = field(default_factory=list)
    drafts: list[EventDraft] = field(default_factory=list)
    events: list[ExtractedEvent] = field(default_factory=list)
    rejected: int = 0
    expired: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class SourceSummary:
    """Result of crawling one source."""

    source_id: str
    kind: SourceKind

    # Counts
    discovered: int = 0
    extracted: int = 0
    merged: int = 0
    inserted: int = 0
    replaced: int = 0
    expired: int = 0
    rejected: int = 0
    failed: int = 0
    unresolved: int = 0  # written without coordinates

    # Status
    errors: list[str] = field(default_factory=list)
    success: bool = True
    dry_run: bool = False

    # Timing
    duration_seconds: float = 0.0


@dataclass
class PipelineResult:
    """Result of a crawl run over several sources."""

    as_of: date
    summaries: list[SourceSummary] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def inserted(self) -> int:
        return sum(s.inserted for s in self.summaries)

    @property
    def replaced(self) -> int:
        return sum(s.replaced for s in self.summaries)

    @property
    def failed_sources(self) -> list[str]:
        return [s.source_id for s in self.summaries if not s.success]


class CrawlPipeline:
    """Sequential multi-source crawl.

    The pipeline is the only component writing to the event store.
    """

    def __init__(
        self,
        config: PipelineConfig,
        store: EventStore,
        fetcher_factory: FetcherFactory | None = None,
        vision: VisionExtractionService | None = None,
        geocoder: GeocodingEnricher | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.settings = settings or get_settings()
        self.fetcher_factory = fetcher_factory or self._default_fetcher
        self.vision = vision if config.vision else None
        self.geocoder = geocoder if config.geocode else None

    def _default_fetcher(self, source: SourceDescriptor) -> PageFetcher:
        return PageFetcher.from_settings(self.settings, source=source.id)

    def select_sources(self) -> list[SourceDescriptor]:
        """Sources of this run.

        Raises:
            SourceNotFoundError: If a requested id is not registered
        """
        if self.config.source_ids:
            return [SourceRegistry.require(source_id) for source_id in self.config.source_ids]
        if self.config.kind is not None:
            return SourceRegistry.get_by_kind(self.config.kind)
        return SourceRegistry.get_active()

    async def run(self) -> PipelineResult:
        """Crawl every selected source in turn.

        Returns:
            PipelineResult with one summary per source
        """
        start_time = datetime.now()
        as_of = self.config.as_of or start_time.date()
        result = PipelineResult(as_of=as_of)

        sources = self.select_sources()
        logger.info(
            "pipeline_start",
            sources=len(sources),
            as_of=as_of.isoformat(),
            dry_run=self.config.dry_run,
        )

        for source in sources:
            result.summaries.append(await self.run_source(source, as_of))

        result.duration_seconds = (datetime.now() - start_time).total_seconds()
        logger.info(
            "pipeline_complete",
            sources=len(sources),
            inserted=result.inserted,
            replaced=result.replaced,
            failed_sources=result.failed_sources,
            duration=round(result.duration_seconds, 1),
        )
        return result

    async def run_source(self, source: SourceDescriptor, as_of: date) -> SourceSummary:
        """Crawl one source end to end."""
        start_time = datetime.now()
        summary = SourceSummary(source_id=source.id, kind=source.kind, dry_run=self.config.dry_run)

        with log_source_run(source.id, source.kind.value, source.city):
            logger.info("source_start", entry_url=source.entry_url)
            try:
                adapter = get_adapter(
                    source,
                    max_candidates=self.config.max_candidates,
                    summary_threshold=self.config.summary_threshold,
                )
                batch = CrawlBatch(source=source, as_of=as_of)

                async with self.fetcher_factory(source) as fetcher:
                    batch = await self._discover(adapter, fetcher, batch)
                    batch = await self._extract(adapter, fetcher, batch)

                batch = await self._read_posters(adapter, batch)
                batch = self._normalize(batch)

                existing = await self._load_existing(batch)
                reconciled = reconcile(batch.events, existing, self.config.min_location_overlap)
                reconciled, summary.unresolved = await self._geocode(reconciled)
                await self._persist(reconciled, summary)

                summary.discovered = len(batch.candidates)
                summary.extracted = len(batch.events)
                summary.merged = len(reconciled.to_drop)
                summary.rejected = batch.rejected
                summary.expired = batch.expired
                summary.failed += batch.failed
                summary.errors = batch.errors + summary.errors

            except ConfigurationError:
                raise
            except Exception as e:
                logger.error("source_failed", error=str(e), error_type=type(e).__name__)
                summary.success = False
                summary.errors.append(str(e))

            summary.duration_seconds = (datetime.now() - start_time).total_seconds()
            logger.info(
                "source_complete",
                discovered=summary.discovered,
                extracted=summary.extracted,
                merged=summary.merged,
                inserted=summary.inserted,
                replaced=summary.replaced,
                failed=summary.failed,
                success=summary.success,
            )
        return summary

    # ==========================================
    # Stages
    # ==========================================

    async def _discover(self, adapter: SourceAdapter, fetcher: PageFetcher, batch: CrawlBatch) -> CrawlBatch:
        result = await fetcher.fetch_rendered(batch.source.entry_url)
        if not result.ok:
            # Without the entry page the source has nothing to offer
            raise result.error
        candidates = adapter.discover(result.document, batch.as_of)
        return replace(batch, candidates=candidates)

    async def _extract(self, adapter: SourceAdapter, fetcher: PageFetcher, batch: CrawlBatch) -> CrawlBatch:
        drafts: list[EventDraft] = []
        rejected = batch.rejected
        failed = batch.failed
        errors = list(batch.errors)

        for candidate in batch.candidates:
            if not adapter.requires_detail_fetch:
                draft = adapter.draft_from_candidate(candidate)
            else:
                result = await fetcher.fetch_rendered(candidate.url)
                if not result.ok:
                    failed += 1
                    errors.append(str(result.error))
                    continue
                draft = adapter.extract(result.document, candidate)

            if draft is None:
                rejected += 1
                continue
            drafts.append(draft)

        return replace(batch, drafts=drafts, rejected=rejected, failed=failed, errors=errors)

    async def _read_posters(self, adapter: SourceAdapter, batch: CrawlBatch) -> CrawlBatch:
        if self.vision is None:
            if adapter.vision_precedence and batch.drafts:
                logger.warning("vision_unavailable_skipping_posters", drafts=len(batch.drafts))
                return replace(batch, drafts=[], rejected=batch.rejected + len(batch.drafts))
            return batch

        drafts: list[EventDraft] = []
        rejected = batch.rejected
        for draft in batch.drafts:
            if not adapter.wants_vision(draft):
                drafts.append(draft)
                continue
            readings = await self.vision.extract(draft.poster_url, as_of=batch.as_of)
            merged = adapter.merge_vision(draft, readings)
            if not merged:
                rejected += 1
            drafts.extend(merged)

        return replace(batch, drafts=drafts, rejected=rejected)

    def _normalize(self, batch: CrawlBatch) -> CrawlBatch:
        events: list[ExtractedEvent] = []
        rejected = batch.rejected
        expired = batch.expired

        for draft in batch.drafts:
            try:
                event = normalize_draft(draft, batch.as_of, source=batch.source.id)
            except (DateUnparseable, ExtractionRejected) as e:
                logger.info("draft_dropped", url=draft.source_url[:120], reason=str(e))
                rejected += 1
                continue

            if event.date < batch.as_of:
                expired += 1
                continue
            events.append(event)

        return replace(batch, events=events, rejected=rejected, expired=expired)

    async def _load_existing(self, batch: CrawlBatch) -> list[PersistedEvent]:
        """Persisted events that can collide with the batch."""
        if not batch.events:
            return []

        existing = await self.store.query_by_date_range(batch.as_of)
        known_ids = {e.id for e in existing}
        known_posters = {e.poster_url for e in existing if e.poster_url}

        for poster_url in dict.fromkeys(e.poster_url for e in batch.events if e.poster_url):
            if poster_url in known_posters:
                continue
            for row in await self.store.query_by_poster_url(poster_url):
                if row.id not in known_ids:
                    known_ids.add(row.id)
                    existing.append(row)

        return existing

    async def _geocode(self, reconciled: ReconcileResult) -> tuple[ReconcileResult, int]:
        if self.geocoder is None or not reconciled.has_writes:
            unresolved = sum(
                1 for e in reconciled.to_insert + [e for _, e in reconciled.to_replace]
                if not e.has_coordinates
            )
            return reconciled, unresolved

        to_insert, unresolved_new = await self.geocoder.enrich(reconciled.to_insert)
        replacements, unresolved_replaced = await self.geocoder.enrich(
            [event for _, event in reconciled.to_replace]
        )
        to_replace = [
            (existing_id, event)
            for (existing_id, _), event in zip(reconciled.to_replace, replacements)
        ]
        return (
            ReconcileResult(to_insert=to_insert, to_replace=to_replace, to_drop=reconciled.to_drop),
            unresolved_new + unresolved_replaced,
        )

    async def _persist(self, reconciled: ReconcileResult, summary: SourceSummary) -> None:
        if self.config.dry_run:
            logger.info(
                "pipeline_dry_run",
                would_insert=len(reconciled.to_insert),
                would_replace=len(reconciled.to_replace),
            )
            return

        for event in reconciled.to_insert:
            try:
                await self.store.upsert([event])
                summary.inserted += 1
            except PersistenceError as e:
                summary.failed += 1
                summary.errors.append(str(e))
                logger.error("event_insert_failed", title=event.title[:50], error=str(e))

        for existing_id, event in reconciled.to_replace:
            try:
                # The old row goes only once the winner is stored
                await self.store.upsert([event])
                await self.store.delete_by_ids([existing_id])
                summary.replaced += 1
            except PersistenceError as e:
                summary.failed += 1
                summary.errors.append(str(e))
                logger.error(
                    "event_replace_failed",
                    existing_id=existing_id,
                    title=event.title[:50],
                    error=str(e),
                )


async def run_pipeline(
    source_ids: list[str] | None = None,
    kind: SourceKind | None = None,
    dry_run: bool = False,
    limit: int | None = None,
    geocode: bool = True,
    vision: bool = True,
    store: EventStore | None = None,
) -> PipelineResult:
    """Convenience function to run a crawl with settings-based services.

    Args:
        source_ids: Sources to crawl (None = all active)
        kind: Restrict to one source kind
        dry_run: If True, don't write to the database
        limit: Max candidates per source
        geocode: Geocode events before writing
        vision: Read posters with the vision service
        store: Event store (defaults to Supabase)

    Returns:
        PipelineResult with per-source summaries
    """
    settings = get_settings()
    overrides: dict[str, object] = {
        "source_ids": source_ids,
        "kind": kind,
        "dry_run": dry_run or settings.dry_run,
        "geocode": geocode,
        "vision": vision and settings.vision_enabled,
    }
    if limit is not None:
        overrides["max_candidates"] = limit
    config = PipelineConfig.from_settings(settings, **overrides)

    if store is None:
        from src.core.supabase_client import get_event_store

        store = get_event_store()

    vision_service = VisionExtractionService.from_settings(settings) if config.vision else None
    enricher = GeocodingEnricher.from_settings(settings) if config.geocode else None

    pipeline = CrawlPipeline(
        config,
        store=store,
        vision=vision_service,
        geocoder=enricher,
        settings=settings,
    )
    try:
        return await pipeline.run()
    finally:
        if vision_service is not None:
            await vision_service.close()
        if enricher is not None:
            await enricher.close()
