"""
Google Maps Client

Geocoding and Street View metadata lookups over the public HTTP APIs.
Implements both Geocoder and PanoramaLocator.

Usage:
    async with GoogleMapsClient(api_key) as maps:
        place = await maps.geocode("Eiffel Tower")
        pano = await maps.find_panorama(place.position, radius_m=100)
"""

from typing import Any, Dict, Optional
from urllib.parse import urlencode

import aiohttp

from anywhere.config import settings
from anywhere.core.viewport import Position, Pov
from anywhere.errors import ConfigurationError, ToolExecutionError
from anywhere.logger import get_logger

from .viewer import GeocodeResult, Geocoder, PanoramaLocation, PanoramaLocator

logger = get_logger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
STREETVIEW_METADATA_URL = "https://maps.googleapis.com/maps/api/streetview/metadata"
STREETVIEW_IMAGE_URL = "https://maps.googleapis.com/maps/api/streetview"

# Statuses meaning "no result" rather than a failed request
_EMPTY_STATUSES = {"ZERO_RESULTS", "NOT_FOUND"}


def static_image_url(
    position: Position,
    pov: Pov,
    api_key: str,
    width: int = 1920,
    height: int = 1080,
    fov: int = 90,
) -> str:
    """URL of a Street View still image for the given viewpoint."""
    params = {
        "size": f"{width}x{height}",
        "location": f"{position.lat},{position.lng}",
        "heading": f"{pov.heading}",
        "pitch": f"{pov.pitch}",
        "fov": str(fov),
        "key": api_key,
    }
    return f"{STREETVIEW_IMAGE_URL}?{urlencode(params)}"


class GoogleMapsClient(Geocoder, PanoramaLocator):
    """
    Async client for the Geocoding and Street View metadata APIs.

    A single aiohttp session is reused; close() releases it.
    """

    def __init__(self, api_key: Optional[str] = None, request_timeout_s: Optional[float] = None):
        self._api_key = api_key if api_key is not None else settings.maps.api_key
        if not self._api_key or not self._api_key.strip():
            raise ConfigurationError("GOOGLE_MAPS_API_KEY is required for geocoding")

        self._timeout = aiohttp.ClientTimeout(
            total=request_timeout_s or settings.maps.request_timeout_s,
        )
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "GoogleMapsClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _get_json(self, url: str, params: Dict[str, str]) -> Dict[str, Any]:
        query = dict(params, key=self._api_key)
        try:
            async with self._get_session().get(url, params=query) as response:
                response.raise_for_status()
                payload = await response.json()
        except aiohttp.ClientError as e:
            raise ToolExecutionError(f"Maps request failed: {e}") from e

        status = payload.get("status", "OK")
        if status != "OK" and status not in _EMPTY_STATUSES:
            detail = payload.get("error_message", "")
            raise ToolExecutionError(f"Maps API returned {status} {detail}".strip())
        return payload

    async def geocode(self, query: str) -> Optional[GeocodeResult]:
        payload = await self._get_json(GEOCODE_URL, {"address": query})
        results = payload.get("results") or []
        if not results:
            logger.info(f"Geocoding found nothing for {query!r}")
            return None

        first = results[0]
        location = first["geometry"]["location"]
        return GeocodeResult(
            position=Position(lat=float(location["lat"]), lng=float(location["lng"])),
            formatted_address=first.get("formatted_address", query),
        )

    async def reverse_geocode(self, position: Position) -> Optional[str]:
        payload = await self._get_json(GEOCODE_URL, {"latlng": f"{position.lat},{position.lng}"})
        results = payload.get("results") or []
        if not results:
            return None
        return results[0].get("formatted_address")

    async def find_panorama(self, position: Position, radius_m: int) -> Optional[PanoramaLocation]:
        payload = await self._get_json(
            STREETVIEW_METADATA_URL,
            {
                "location": f"{position.lat},{position.lng}",
                "radius": str(radius_m),
                "source": "outdoor",
            },
        )
        pano_id = payload.get("pano_id")
        if payload.get("status") != "OK" or not pano_id:
            logger.info(f"No Street View coverage within {radius_m}m of {position.lat:.5f},{position.lng:.5f}")
            return None

        location = payload.get("location") or {}
        return PanoramaLocation(
            pano_id=pano_id,
            position=Position(
                lat=float(location.get("lat", position.lat)),
                lng=float(location.get("lng", position.lng)),
            ),
            description=payload.get("copyright"),
        )
