"""Adapters for the crawled source kinds (web, social, search).

Adapters register under a source kind; a single source can override the
kind's adapter by registering under its own id.
"""

from typing import TYPE_CHECKING, Callable

from src.core.exceptions import AdapterNotFoundError

if TYPE_CHECKING:
    from src.config.sources import SourceDescriptor
    from src.core.base_adapter import SourceAdapter

# Registry keyed by source kind value or source id
ADAPTER_REGISTRY: dict[str, type["SourceAdapter"]] = {}

# Flag to prevent circular imports during loading
_adapters_loaded = False


def register_adapter(key: str) -> Callable[[type["SourceAdapter"]], type["SourceAdapter"]]:
    """Decorator to register an adapter in the registry.

    Usage:
        @register_adapter("web")
        class WebSourceAdapter(SourceAdapter):
            ...

        @register_adapter("hsinchu")
        class HsinchuAdapter(WebSourceAdapter):
            ...
    """

    def decorator(adapter_class: type["SourceAdapter"]) -> type["SourceAdapter"]:
        ADAPTER_REGISTRY[key] = adapter_class
        return adapter_class

    return decorator


def get_adapter_class(source: "SourceDescriptor") -> type["SourceAdapter"]:
    """Resolve the adapter class of a source: by id first, then by kind.

    Raises:
        AdapterNotFoundError: If neither the id nor the kind is registered
    """
    _ensure_adapters_loaded()
    adapter_class = ADAPTER_REGISTRY.get(source.id) or ADAPTER_REGISTRY.get(source.kind.value)
    if adapter_class is None:
        raise AdapterNotFoundError(source.id, source.kind.value)
    return adapter_class


def get_adapter(source: "SourceDescriptor", **kwargs: object) -> "SourceAdapter":
    """Instantiate the adapter of a source."""
    return get_adapter_class(source)(source, **kwargs)


def list_adapters() -> list[str]:
    """List all registered adapter keys."""
    _ensure_adapters_loaded()
    return list(ADAPTER_REGISTRY.keys())


def _ensure_adapters_loaded() -> None:
    """Ensure all adapter modules are loaded."""
    global _adapters_loaded
    if _adapters_loaded:
        return
    _adapters_loaded = True

    # Import adapter modules to trigger registration
    from src.adapters import search_adapter  # noqa: F401
    from src.adapters import social_adapter  # noqa: F401
    from src.adapters import web_adapter  # noqa: F401
