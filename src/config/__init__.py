"""Configuration: environment settings and the source registry."""

from src.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
