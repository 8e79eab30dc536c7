"""Command line interface for the blood-donation poster crawler.

Usage:
    postercrawl crawl --source taipei --dry-run
    postercrawl crawl --kind social --no-vision
    postercrawl sources --kind web
    postercrawl geocode --limit 200
    postercrawl cleanup --dry-run
"""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from src import __version__
from src.config import get_settings
from src.config.sources import SourceKind, SourceRegistry
from src.core.exceptions import ConfigurationError, PersistenceError
from src.core.pipeline import PipelineResult, SourceSummary, run_pipeline
from src.logging import get_logger, setup_logging
from src.utils.locations import build_full_address

app = typer.Typer(
    name="postercrawl",
    help="Blood-donation event crawler for Taiwanese donation centers",
    add_completion=False,
)
console = Console()
logger = get_logger(__name__)


@app.callback()
def configure() -> None:
    """Configure logging from settings before any command runs."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format, settings.log_file)


def kind_callback(value: str | None) -> SourceKind | None:
    """Convert kind string to SourceKind enum."""
    if value is None:
        return None
    try:
        return SourceKind(value.lower())
    except ValueError:
        valid = ", ".join([k.value for k in SourceKind])
        raise typer.BadParameter(f"Invalid kind. Must be one of: {valid}")


@app.command()
def crawl(
    source: Optional[list[str]] = typer.Option(
        None,
        "--source", "-s",
        help="Crawl only this source id (repeatable)",
    ),
    kind: Optional[str] = typer.Option(
        None,
        "--kind", "-k",
        help="Crawl all sources of this kind (web, social, search)",
    ),
    limit: Optional[int] = typer.Option(
        None,
        "--limit", "-l",
        help="Max candidate links per source",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Crawl and reconcile without writing to the database",
    ),
    no_geocode: bool = typer.Option(
        False,
        "--no-geocode",
        help="Skip geocoding",
    ),
    no_vision: bool = typer.Option(
        False,
        "--no-vision",
        help="Skip poster reading",
    ),
):
    """Crawl sources and store new donation events.

    Examples:
        postercrawl crawl
        postercrawl crawl --source taipei --source hsinchu
        postercrawl crawl --kind search --dry-run
    """
    kind_enum = kind_callback(kind)

    console.print()
    console.print("[bold red]BLOOD DONATION EVENT CRAWL[/bold red]")
    console.print(f"Dry run: {dry_run}, Geocode: {not no_geocode}, Vision: {not no_vision}")
    console.print()

    try:
        result = asyncio.run(
            run_pipeline(
                source_ids=source or None,
                kind=kind_enum,
                dry_run=dry_run,
                limit=limit,
                geocode=not no_geocode,
                vision=not no_vision,
            )
        )
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    print_summary(result)
    if result.failed_sources:
        raise typer.Exit(1)


def print_summary(result: PipelineResult) -> None:
    """Print final summary table."""
    console.print()
    console.print(f"[bold blue]SUMMARY[/bold blue] (as of {result.as_of.isoformat()})")
    console.print()

    table = Table(show_header=True, header_style="bold")
    table.add_column("Source")
    table.add_column("Kind")
    table.add_column("Found", justify="right")
    table.add_column("Extracted", justify="right")
    table.add_column("Merged", justify="right")
    table.add_column("Inserted", justify="right")
    table.add_column("Replaced", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Status")

    for s in result.summaries:
        table.add_row(
            s.source_id,
            s.kind.value,
            str(s.discovered),
            str(s.extracted),
            str(s.merged),
            str(s.inserted),
            str(s.replaced),
            str(s.failed),
            _status(s),
        )

    console.print(table)
    console.print()
    console.print(
        f"[bold]TOTALS:[/bold] Inserted: {result.inserted}, Replaced: {result.replaced}, "
        f"Duration: {result.duration_seconds:.1f}s"
    )

    for s in result.summaries:
        for error in s.errors[:3]:
            console.print(f"  [red]{s.source_id}[/red]: {error[:120]}")


def _status(summary: SourceSummary) -> str:
    if not summary.success:
        return "[red]ERR[/red]"
    if summary.dry_run:
        return "[yellow]DRY[/yellow]"
    return "[green]OK[/green]"


@app.command()
def sources(
    kind: Optional[str] = typer.Option(
        None,
        "--kind", "-k",
        help="Filter by kind (web, social, search)",
    ),
):
    """List configured sources."""
    kind_enum = kind_callback(kind)
    items = SourceRegistry.all()
    if kind_enum is not None:
        items = [s for s in items if s.kind == kind_enum]

    if not items:
        console.print("[yellow]No sources match the criteria[/yellow]")
        raise typer.Exit(0)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Id")
    table.add_column("Kind")
    table.add_column("Name")
    table.add_column("City")
    table.add_column("Active")

    for s in sorted(items, key=lambda x: (x.kind.value, x.id)):
        table.add_row(
            s.id,
            s.kind.value,
            s.display_name[:30],
            s.city or "-",
            "yes" if s.is_active else "no",
        )

    console.print(table)
    console.print()
    for k, c in SourceRegistry.count_by_kind().items():
        console.print(f"  {k.value}: {c}")


@app.command()
def geocode(
    limit: int = typer.Option(
        500,
        "--limit", "-l",
        help="Max events to geocode",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Resolve coordinates without updating rows",
    ),
):
    """Fill coordinates of stored events that have none."""
    from src.core.geocoder import GeocodingEnricher
    from src.core.supabase_client import get_event_store

    enricher = GeocodingEnricher.from_settings(get_settings())
    if enricher is None:
        console.print("[red]Error:[/red] GOOGLE_MAPS_API_KEY is not set")
        raise typer.Exit(1)

    async def backfill() -> tuple[int, int]:
        store = get_event_store()
        resolved = 0
        try:
            events = await store.query_missing_coordinates(limit=limit)
            console.print(f"Events without coordinates: {len(events)}")
            for event in events:
                address = build_full_address(event.city, event.district, event.location)
                coordinates = await enricher.resolve_coordinates(address)
                if coordinates is None:
                    continue
                resolved += 1
                if not dry_run:
                    await store.update_coordinates(event.id, coordinates.latitude, coordinates.longitude)
        finally:
            await enricher.close()
        return resolved, len(events)

    try:
        resolved, total = asyncio.run(backfill())
    except (ConfigurationError, PersistenceError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    logger.info("geocode_backfill_complete", resolved=resolved, total=total, dry_run=dry_run)
    console.print(f"[green]Resolved[/green] {resolved}/{total}")


@app.command()
def cleanup(
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="List the events without deleting them",
    ),
):
    """Delete events whose poster was stored as an inline data: URI."""
    from src.core.supabase_client import get_event_store

    async def purge() -> tuple[int, int]:
        store = get_event_store()
        events = await store.query_inline_posters()
        for event in events[:20]:
            console.print(f"  {event.date.isoformat()} {event.title[:50]}")
        if dry_run or not events:
            return len(events), 0
        deleted = await store.delete_by_ids([e.id for e in events])
        return len(events), deleted

    try:
        found, deleted = asyncio.run(purge())
    except (ConfigurationError, PersistenceError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    logger.info("inline_posters_cleaned", found=found, deleted=deleted, dry_run=dry_run)
    console.print(f"Found: {found}, Deleted: {deleted}")


@app.command()
def version():
    """Show version information."""
    console.print("[bold]Blood Donation Poster Crawler[/bold]")
    console.print(f"Version: {__version__}")

    console.print()
    console.print("[bold]Registered sources:[/bold]")
    for k, c in SourceRegistry.count_by_kind().items():
        console.print(f"  {k.value}: {c}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
