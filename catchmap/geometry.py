"""Spherical geometry helpers: distances, coordinate checks and circle rings."""

from __future__ import annotations

from typing import Any, Iterable, List, Sequence, Tuple
import math

import numpy as np
from shapely.geometry import Point as ShapelyPoint, Polygon as ShapelyPolygon

from .errors import ValidationError

__all__ = [
    "EARTH_RADIUS_M",
    "LatLon",
    "validate_coordinates",
    "probably_latlon",
    "haversine_meters",
    "distance",
    "distance_vec",
    "destination_point",
    "circle_ring",
    "circle_polygon",
    "as_shapely_point",
    "format_coordinates",
]

EARTH_RADIUS_M = 6_371_000.0

LatLon = Tuple[float, float]


def probably_latlon(lat: float, lon: float) -> bool:
    """Return True when (lat, lon) fall inside the valid WGS84 ranges."""

    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


def validate_coordinates(lat: Any, lon: Any) -> LatLon:
    """Coerce to floats and range-check; raises ValidationError."""
    try:
        lat_f = float(lat)
        lon_f = float(lon)
    except (TypeError, ValueError):
        raise ValidationError("Please enter valid coordinates") from None
    if math.isnan(lat_f) or math.isnan(lon_f) or not probably_latlon(lat_f, lon_f):
        raise ValidationError(
            "Coordinates must be within valid ranges "
            "(lat: -90 to 90, lng: -180 to 180)"
        )
    return (lat_f, lon_f)


def haversine_meters(p1: Sequence[float], p2: Sequence[float]) -> float:
    """Great-circle distance in meters between two (lat, lon) points."""
    from math import atan2, cos, radians, sin, sqrt

    lat1, lon1, lat2, lon2 = map(radians, (p1[0], p1[1], p2[0], p2[1]))
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_M * c


distance = haversine_meters


def distance_vec(point: Sequence[float], centers: Iterable[Sequence[float]]) -> np.ndarray:
    """Vectorized haversine from one (lat, lon) point to many centers, in meters."""
    arr = np.asarray(list(centers), dtype=float)
    if arr.size == 0:
        return np.zeros(0, dtype=float)
    lat1, lon1 = np.radians([point[0], point[1]])
    lat2 = np.radians(arr[:, 0])
    lon2 = np.radians(arr[:, 1])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = np.sin(dlat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2) ** 2
    return EARTH_RADIUS_M * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


def destination_point(
    origin: Sequence[float], bearing_deg: float, distance_m: float
) -> LatLon:
    """Point reached travelling ``distance_m`` from ``origin`` on ``bearing_deg``."""
    lat1 = math.radians(origin[0])
    lon1 = math.radians(origin[1])
    brg = math.radians(bearing_deg)
    delta = distance_m / EARTH_RADIUS_M

    lat2 = math.asin(
        math.sin(lat1) * math.cos(delta)
        + math.cos(lat1) * math.sin(delta) * math.cos(brg)
    )
    lon2 = lon1 + math.atan2(
        math.sin(brg) * math.sin(delta) * math.cos(lat1),
        math.cos(delta) - math.sin(lat1) * math.sin(lat2),
    )
    lon2 = (lon2 + 3 * math.pi) % (2 * math.pi) - math.pi
    return (math.degrees(lat2), math.degrees(lon2))


def circle_ring(
    center: Sequence[float], radius_m: float, segments: int = 64
) -> List[Tuple[float, float]]:
    """Closed ring of (lon, lat) vertices approximating a geodesic circle."""
    if segments < 3:
        raise ValueError("segments must be >= 3")
    ring: List[Tuple[float, float]] = []
    for i in range(segments):
        lat, lon = destination_point(center, 360.0 * i / segments, radius_m)
        ring.append((lon, lat))
    ring.append(ring[0])
    return ring


def circle_polygon(
    center: Sequence[float], radius_m: float, segments: int = 64
) -> ShapelyPolygon:
    return ShapelyPolygon(circle_ring(center, radius_m, segments))


def as_shapely_point(point: Sequence[float]) -> ShapelyPoint:
    """Shapely points are (x, y) = (lon, lat)."""
    return ShapelyPoint(float(point[1]), float(point[0]))


def format_coordinates(point: Sequence[float], precision: int = 6) -> str:
    return f"{point[0]:.{precision}f}, {point[1]:.{precision}f}"
