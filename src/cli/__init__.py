"""Command line interface for the crawler.

Usage:
    python -m src.cli [command] [options]

Commands:
    crawl       Crawl sources and store new events
    sources     List configured sources
    geocode     Fill missing coordinates
    cleanup     Delete events with inline posters
"""

from src.cli.main import app

__all__ = ["app"]
