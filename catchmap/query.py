"""Coverage queries and school comparison over the favorite schools."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple
import logging

import numpy as np

from .entities import RadiusCircle
from .geometry import LatLon, distance_vec, format_coordinates, haversine_meters
from .registry import SchoolRegistry
from .units import Unit, convert

__all__ = ["CatchmentQueryEngine", "CoverageHit", "PointReport"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CoverageHit:
    school_id: str
    school_name: str
    distance_m: float
    years: Tuple[int, ...]

    def distance_in(self, unit: Unit | str) -> float:
        return convert(self.distance_m, Unit.METERS, unit)


@dataclass(frozen=True, slots=True)
class PointReport:
    """Popup model for a clicked point."""

    point: LatLon
    hits: Tuple[CoverageHit, ...]
    unit: Unit

    @property
    def covered(self) -> bool:
        return bool(self.hits)

    def lines(self) -> List[str]:
        out = [format_coordinates(self.point)]
        if not self.hits:
            out.append("Not within any favorite school catchments")
            return out
        out.append("Within catchment of:")
        for hit in self.hits:
            value = hit.distance_in(self.unit)
            shown = f"{value:.0f}" if self.unit is Unit.METERS else f"{value:.2f}"
            out.append(f"{hit.school_name}: {shown} {self.unit.value} away")
        return out


class CatchmentQueryEngine:
    def __init__(self, registry: SchoolRegistry):
        self.registry = registry

    def schools_covering(self, point: Sequence[float]) -> Set[str]:
        """Ids of schools with at least one zone containing ``point`` (inclusive)."""
        covering: Set[str] = set()
        for school in self.registry:
            d = haversine_meters(point, school.coordinates)
            for zone in school.zones:
                if d <= zone.radius_meters:
                    covering.add(school.id)
                    break
        return covering

    def coverage_by_year(self, point: Sequence[float]) -> Dict[str, Dict[int, bool]]:
        """Per school, per zone year: whether that year's zone contains ``point``."""
        out: Dict[str, Dict[int, bool]] = {}
        for school in self.registry:
            d = haversine_meters(point, school.coordinates)
            out[school.id] = {
                z.year: d <= z.radius_meters for z in sorted(school.zones, key=lambda z: z.year)
            }
        return out

    def describe_point(self, point: Sequence[float], unit: Unit | str = Unit.KM) -> PointReport:
        hits: List[CoverageHit] = []
        for school in self.registry:
            d = haversine_meters(point, school.coordinates)
            years = tuple(sorted((z.year for z in school.zones if d <= z.radius_meters), reverse=True))
            if years:
                hits.append(CoverageHit(school.id, school.name, d, years))
        hits.sort(key=lambda h: h.distance_m)
        return PointReport(point=(float(point[0]), float(point[1])), hits=tuple(hits), unit=Unit.coerce(unit))

    def coverage_matrix(self, points: Iterable[Sequence[float]]) -> np.ndarray:
        """Boolean [n_points, n_schools] matrix in favorites order."""
        schools = list(self.registry)
        pts = [tuple(p) for p in points]
        matrix = np.zeros((len(pts), len(schools)), dtype=bool)
        if not pts or not schools:
            return matrix
        reach = np.array(
            [max((z.radius_meters for z in s.zones), default=-1.0) for s in schools]
        )
        centers = [s.coordinates for s in schools]
        for i, p in enumerate(pts):
            matrix[i, :] = distance_vec(p, centers) <= reach
        logger.debug("query.coverage_matrix points=%d schools=%d", len(pts), len(schools))
        return matrix

    def compare_schools(self, reference: Optional[Sequence[float]] = None):
        """One row per favorite school: zone stats in km and optional distance to ``reference``."""
        import pandas as pd

        rows = []
        for school in self.registry:
            radii = {z.year: z.radius_km for z in school.zones}
            latest = max(radii) if radii else None
            row = {
                "school_id": school.id,
                "name": school.name,
                "zones": len(radii),
                "years": sorted(radii, reverse=True),
                "min_radius_km": min(radii.values()) if radii else None,
                "max_radius_km": max(radii.values()) if radii else None,
                "latest_year": latest,
                "latest_radius_km": radii[latest] if latest is not None else None,
                "average_km": school.average.radius if school.average else None,
            }
            if reference is not None:
                d = haversine_meters(reference, school.coordinates)
                row["distance_km"] = d / 1000.0
                row["covers_reference"] = school.id in self.schools_covering(reference)
            rows.append(row)
        df = pd.DataFrame(rows)
        if reference is not None and not df.empty:
            df = df.sort_values("distance_km", kind="stable").reset_index(drop=True)
        return df

    def statistics(self, circles: Optional[Sequence[RadiusCircle]] = None) -> Dict[str, float]:
        schools = list(self.registry)
        if circles is None:
            circles = self.registry.circles()
        zone_circles = [c for c in circles if not c.is_average]
        return {
            "total_circles": len(circles),
            "visible_circles": sum(1 for c in circles if c.is_visible),
            "schools": len(schools),
            "years": len({c.year for c in zone_circles}),
            "schools_with_catchment_data": sum(1 for s in schools if s.zones),
            "average_radius_km": (
                sum(convert(c.radius, c.unit, Unit.KM) for c in zone_circles) / len(zone_circles)
                if zone_circles
                else 0.0
            ),
        }
