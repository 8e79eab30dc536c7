"""Geocoding service using the Google Geocoding API.

Addresses are Taiwanese "city + district + place" strings; results are
biased to Taiwan (region=tw) and requested in Traditional Chinese. Calls are
serialized with a fixed delay between them and cached per address.
Geocoding is best effort: an unresolved address leaves the event without
coordinates and never blocks persistence.
"""

import asyncio
import hashlib
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from src.config.settings import Settings
from src.core.event_model import ExtractedEvent
from src.core.exceptions import GeocodeUnresolved
from src.core.retry import RetryableHTTPError, RetryConfig, with_retry
from src.logging.logger import get_logger
from src.utils.locations import build_full_address

logger = get_logger(__name__)

GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"


class GeocodeStatus(str, Enum):
    """Outcome of one geocoding call."""

    OK = "ok"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


@dataclass
class GeocodeResult:
    """Result from geocoding an address."""

    status: GeocodeStatus
    coordinates: Coordinates | None = None
    formatted_address: str | None = None
    error: str | None = None

    def coordinates_or_raise(self, address: str) -> Coordinates:
        """Return the coordinates.

        Raises:
            GeocodeUnresolved: If the address was not found or the call failed
        """
        if self.status == GeocodeStatus.OK and self.coordinates is not None:
            return self.coordinates
        raise GeocodeUnresolved(address, self.status.value)


class GoogleGeocoder:
    """Client for the Google Geocoding HTTP API.

    Features:
    - Language/region bias (zh-TW, tw)
    - Retries on 429/5xx and transport errors
    - Typed results instead of exceptions
    """

    def __init__(
        self,
        api_key: str,
        language: str = "zh-TW",
        region: str = "tw",
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.language = language
        self.region = region
        self.timeout = timeout
        self._http_client = client

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    @with_retry(RetryConfig.for_geocoding())
    async def _request(self, address: str) -> dict[str, Any]:
        client = await self.get_client()
        response = await client.get(
            GOOGLE_GEOCODE_URL,
            params={
                "address": address,
                "key": self.api_key,
                "language": self.language,
                "region": self.region,
            },
        )
        if response.status_code == 429 or response.status_code >= 500:
            raise RetryableHTTPError(response.status_code, response.text[:200])
        response.raise_for_status()
        return response.json()

    async def geocode(self, address: str) -> GeocodeResult:
        """Geocode one address.

        Args:
            address: Full address string

        Returns:
            GeocodeResult with status OK, NOT_FOUND or ERROR
        """
        try:
            data = await self._request(address)
        except (httpx.HTTPError, RetryableHTTPError, ValueError) as e:
            logger.warning("geocoding_error", address=address[:80], error=str(e))
            return GeocodeResult(status=GeocodeStatus.ERROR, error=str(e))

        try:
            return self._read_response(address, data)
        except (KeyError, IndexError, TypeError, AttributeError, ValueError) as e:
            logger.warning("geocoding_malformed_response", address=address[:80], error=repr(e))
            return GeocodeResult(status=GeocodeStatus.ERROR, error=f"Malformed response: {e!r}")

    def _read_response(self, address: str, data: dict[str, Any]) -> GeocodeResult:
        status = data.get("status")
        results = data.get("results") or []

        if status == "OK" and results:
            first = results[0]
            location = first["geometry"]["location"]
            coordinates = Coordinates(latitude=float(location["lat"]), longitude=float(location["lng"]))
            logger.debug(
                "geocoding_success",
                address=address[:80],
                lat=coordinates.latitude,
                lng=coordinates.longitude,
            )
            return GeocodeResult(
                status=GeocodeStatus.OK,
                coordinates=coordinates,
                formatted_address=first.get("formatted_address"),
            )

        if status in ("ZERO_RESULTS", "OK"):
            logger.debug("geocoding_no_results", address=address[:80])
            return GeocodeResult(status=GeocodeStatus.NOT_FOUND)

        # OVER_QUERY_LIMIT, REQUEST_DENIED, INVALID_REQUEST, UNKNOWN_ERROR
        error = data.get("error_message") or str(status)
        logger.warning("geocoding_api_error", address=address[:80], status=status, error=error)
        return GeocodeResult(status=GeocodeStatus.ERROR, error=error)


class GeocodingEnricher:
    """Fills coordinates of events, one geocoding call at a time.

    Usage:
        enricher = GeocodingEnricher(GoogleGeocoder(api_key), delay_seconds=0.2)
        events, unresolved = await enricher.enrich(events)
    """

    def __init__(self, geocoder: GoogleGeocoder, delay_seconds: float = 0.2):
        self.geocoder = geocoder
        self.delay_seconds = delay_seconds
        self._lock = asyncio.Lock()
        self._last_request_time: float = 0
        self._cache: dict[str, Coordinates | None] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeocodingEnricher | None":
        """Build an enricher, or None when no API key is configured."""
        if not settings.google_maps_api_key:
            return None
        geocoder = GoogleGeocoder(
            settings.google_maps_api_key,
            language=settings.geocode_language,
            region=settings.geocode_region,
        )
        return cls(geocoder, delay_seconds=settings.geocode_delay_seconds)

    def _cache_key(self, address: str) -> str:
        """Generate cache key for an address."""
        return hashlib.md5(address.strip().encode()).hexdigest()

    async def _wait_for_rate_limit(self) -> None:
        elapsed = time.monotonic() - self._last_request_time
        if elapsed < self.delay_seconds:
            await asyncio.sleep(self.delay_seconds - elapsed)
        self._last_request_time = time.monotonic()

    async def resolve_coordinates(self, address: str | None) -> Coordinates | None:
        """Resolve an address to coordinates.

        Args:
            address: Full address (see build_full_address)

        Returns:
            Coordinates, or None if the address is empty, unknown or the call failed
        """
        if not address or not address.strip():
            return None

        cache_key = self._cache_key(address)
        if cache_key in self._cache:
            logger.debug("geocoding_cache_hit", address=address[:80])
            return self._cache[cache_key]

        async with self._lock:
            await self._wait_for_rate_limit()
            result = await self.geocoder.geocode(address)

        try:
            coordinates: Coordinates | None = result.coordinates_or_raise(address)
        except GeocodeUnresolved as e:
            logger.info("geocode_unresolved", address=address[:80], status=e.status)
            coordinates = None

        # Transient errors are retried on the next run
        if result.status != GeocodeStatus.ERROR:
            self._cache[cache_key] = coordinates
        return coordinates

    async def enrich(self, events: list[ExtractedEvent]) -> tuple[list[ExtractedEvent], int]:
        """Geocode events lacking coordinates.

        Args:
            events: Events to enrich (not modified)

        Returns:
            Tuple of (events with coordinates filled where resolved, unresolved count)
        """
        enriched: list[ExtractedEvent] = []
        unresolved = 0

        for event in events:
            if event.has_coordinates:
                enriched.append(event)
                continue

            address = build_full_address(event.city, event.district, event.location)
            coordinates = await self.resolve_coordinates(address)
            if coordinates is None:
                unresolved += 1
                enriched.append(event)
                continue

            enriched.append(
                event.model_copy(
                    update={"latitude": coordinates.latitude, "longitude": coordinates.longitude}
                )
            )

        if events:
            logger.info("geocoding_complete", total=len(events), unresolved=unresolved)
        return enriched, unresolved

    async def close(self) -> None:
        await self.geocoder.close()
