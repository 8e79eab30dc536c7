"""Poster event crawler: collects blood-donation events from web pages, social posts and image search."""

__version__ = "0.1.0"
