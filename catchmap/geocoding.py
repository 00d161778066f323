"""Address search: typed "lat, lon" parsing and a geopy Nominatim geocoder."""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence
import asyncio
import logging
import re

from .errors import NotFoundError, ValidationError
from .geometry import LatLon, format_coordinates, validate_coordinates

__all__ = [
    "Geocoder",
    "NominatimGeocoder",
    "parse_coordinate_text",
    "DEFAULT_USER_AGENT",
]

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "catchmap"

_COORD_RE = re.compile(r"^-?\d+\.?\d*,\s*-?\d+\.?\d*$")


class Geocoder(Protocol):
    async def search(self, text: str) -> LatLon: ...

    async def reverse(self, point: Sequence[float]) -> str: ...


def parse_coordinate_text(text: str) -> Optional[LatLon]:
    """Return (lat, lon) if ``text`` looks like "lat, lon"; None for free text.

    Raises ValidationError when the pair is out of range.
    """
    cleaned = (text or "").strip()
    if not _COORD_RE.match(cleaned):
        return None
    lat, lon = (part.strip() for part in cleaned.split(","))
    return validate_coordinates(lat, lon)


def _load_nominatim():
    try:
        from geopy.geocoders import Nominatim
        from geopy.exc import GeopyError
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError(
            "geopy is required for address search. Install with `pip install catchmap[geocoding]`."
        ) from exc
    return Nominatim, GeopyError


class NominatimGeocoder:
    """OpenStreetMap Nominatim via geopy; blocking calls run in a worker thread."""

    def __init__(
        self,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        country_codes: str | Sequence[str] | None = "gb",
        timeout: float = 10.0,
        client: Any = None,
    ):
        nominatim, self._geopy_error = _load_nominatim()
        self.country_codes = country_codes
        self.timeout = timeout
        self._client = client or nominatim(user_agent=user_agent, timeout=timeout)

    async def search(self, text: str) -> LatLon:
        query = (text or "").strip()
        if not query:
            raise ValidationError("Please enter an address to search")
        parsed = parse_coordinate_text(query)
        if parsed is not None:
            return parsed
        try:
            res = await asyncio.to_thread(
                self._client.geocode,
                query,
                exactly_one=True,
                country_codes=self.country_codes,
            )
        except self._geopy_error as exc:
            logger.warning("geocoding.search_failed query=%r error=%r", query, exc)
            raise NotFoundError(f"Address search failed for {query!r}") from exc
        if not res:
            raise NotFoundError(f"No results found for {query!r}")
        logger.debug("geocoding.found query=%r lat=%s lon=%s", query, res.latitude, res.longitude)
        return validate_coordinates(res.latitude, res.longitude)

    async def reverse(self, point: Sequence[float]) -> str:
        """Address for ``point``; falls back to the formatted coordinates."""
        at = validate_coordinates(*point)
        fallback = format_coordinates(at)
        try:
            res = await asyncio.to_thread(self._client.reverse, at, exactly_one=True)
        except self._geopy_error as exc:
            logger.warning("geocoding.reverse_failed point=%s error=%r", fallback, exc)
            return fallback
        address = getattr(res, "address", None) if res else None
        return address or fallback
