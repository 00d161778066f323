"""Domain entities (School, CatchmentZone, pins, circles) and collection helpers."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import ValidationError
from .geometry import LatLon, circle_ring, haversine_meters, validate_coordinates
from .units import Unit, coerce_radius, to_km, to_meters

__all__ = [
    "AVERAGE_YEAR",
    "CatchmentZone",
    "AverageCatchment",
    "School",
    "RadiusCircle",
    "PinType",
    "PinInfo",
    "SchoolList",
    "zone_id_for",
    "average_circle_id",
    "iter_circles",
]

# Year sentinel used by RadiusCircle for a school's average catchment.
AVERAGE_YEAR = 0


def zone_id_for(school_id: str, year: int) -> str:
    return f"{school_id}-{year}"


def average_circle_id(school_id: str) -> str:
    return f"avg-{school_id}"


def validate_non_empty_str(name: str):
    """Decorator factory: enforce non-empty string attribute on __post_init__."""

    def deco(cls):
        orig_post = getattr(cls, "__post_init__", None)

        def post(self):
            value = getattr(self, name)
            if not value or not isinstance(value, str) or not value.strip():
                raise ValidationError(f"{cls.__name__}.{name} must be a non-empty string")
            if orig_post:
                orig_post(self)

        cls.__post_init__ = post
        return cls

    return deco


@dataclass(frozen=True, slots=True)
class CatchmentZone:
    year: int
    radius: float
    unit: Unit
    color: str
    is_visible: bool = True
    id: str = ""

    def __post_init__(self):
        object.__setattr__(self, "year", int(self.year))
        object.__setattr__(self, "radius", coerce_radius(self.radius))
        object.__setattr__(self, "unit", Unit.coerce(self.unit))
        object.__setattr__(self, "is_visible", bool(self.is_visible))

    @property
    def radius_meters(self) -> float:
        return to_meters(self.radius, self.unit)

    @property
    def radius_km(self) -> float:
        return to_km(self.radius, self.unit)

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "year": self.year,
            "radius": self.radius,
            "unit": self.unit.value,
            "color": self.color,
            "isVisible": self.is_visible,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "CatchmentZone":
        missing = [k for k in ("id", "radius", "unit", "year", "color") if not payload.get(k)]
        if missing:
            raise ValidationError(f"Catchment zone payload missing {', '.join(missing)}")
        return cls(
            id=str(payload["id"]),
            year=int(payload["year"]),
            radius=payload["radius"],
            unit=payload["unit"],
            color=str(payload["color"]),
            is_visible=payload.get("isVisible") is not False,
        )


@dataclass(frozen=True, slots=True)
class AverageCatchment:
    radius: float
    color: str
    is_visible: bool = False
    unit: Unit = Unit.KM

    def to_payload(self) -> dict:
        return {
            "radius": self.radius,
            "unit": self.unit.value,
            "color": self.color,
            "isVisible": self.is_visible,
        }

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> Optional["AverageCatchment"]:
        if not payload:
            return None
        return cls(
            radius=float(payload.get("radius") or 0.0),
            unit=Unit.coerce(payload.get("unit") or Unit.KM),
            color=str(payload.get("color") or ""),
            is_visible=bool(payload.get("isVisible", False)),
        )


@validate_non_empty_str("name")
@dataclass(frozen=True, slots=True)
class School:
    id: str
    name: str
    coordinates: LatLon
    address: str = ""
    zones: Tuple[CatchmentZone, ...] = ()
    average: Optional[AverageCatchment] = None
    is_active: bool = True
    is_favorite: bool = True

    def __post_init__(self):
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(
            self, "coordinates", validate_coordinates(*self.coordinates)
        )
        object.__setattr__(self, "zones", tuple(self.zones))

    def __contains__(self, point: LatLon) -> bool:
        d = haversine_meters(point, self.coordinates)
        return any(d <= z.radius_meters for z in self.zones)

    @property
    def years(self) -> List[int]:
        return sorted({z.year for z in self.zones}, reverse=True)

    def zone_for_year(self, year: int) -> Optional[CatchmentZone]:
        for z in self.zones:
            if z.year == year:
                return z
        return None

    def zone_by_id(self, zone_id: str) -> Optional[CatchmentZone]:
        for z in self.zones:
            if z.id == zone_id:
                return z
        return None

    def with_zone(self, zone: CatchmentZone) -> "School":
        """Return a copy holding ``zone``, replacing any zone for the same year."""
        if self.zone_for_year(zone.year) is None:
            return replace(self, zones=self.zones + (zone,))
        return replace(
            self, zones=tuple(zone if z.year == zone.year else z for z in self.zones)
        )

    def without_zone(self, zone_id: str) -> "School":
        return replace(self, zones=tuple(z for z in self.zones if z.id != zone_id))

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "coordinates": [self.coordinates[0], self.coordinates[1]],
            "catchmentZones": [z.to_payload() for z in self.zones],
            "averageCatchment": self.average.to_payload() if self.average else None,
            "isActive": self.is_active,
            "isFavorite": self.is_favorite,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "School":
        """Build a School from the store's wire shape, dropping malformed zones."""
        coords = payload.get("coordinates") or (None, None)
        if len(coords) != 2:
            raise ValidationError("School coordinates must be [lat, lon]")
        by_year: Dict[int, CatchmentZone] = {}
        for raw in payload.get("catchmentZones") or []:
            if not isinstance(raw, dict):
                continue
            try:
                zone = CatchmentZone.from_payload(raw)
            except (ValidationError, TypeError, ValueError):
                continue
            by_year[zone.year] = zone
        return cls(
            id=str(payload.get("id") or ""),
            name=str(payload.get("name") or ""),
            address=str(payload.get("address") or ""),
            coordinates=(coords[0], coords[1]),
            zones=tuple(by_year.values()),
            average=AverageCatchment.from_payload(payload.get("averageCatchment")),
            is_active=payload.get("isActive", True) is not False,
            is_favorite=True,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "lat": self.coordinates[0],
            "lon": self.coordinates[1],
            "zone_count": len(self.zones),
            "years": self.years,
            "average_km": self.average.radius if self.average else None,
        }


@dataclass(frozen=True, slots=True)
class RadiusCircle:
    id: str
    center: LatLon
    radius: float
    unit: Unit
    school_id: str
    school_name: str
    year: int
    color: str
    is_visible: bool = True

    @property
    def is_average(self) -> bool:
        return self.year == AVERAGE_YEAR

    @property
    def radius_meters(self) -> float:
        return to_meters(self.radius, self.unit)

    def contains(self, point: LatLon) -> bool:
        return haversine_meters(point, self.center) <= self.radius_meters

    def label(self) -> str:
        if self.is_average:
            return f"{self.school_name} - Average: {self.radius} {self.unit.value}"
        return f"{self.school_name} - {self.radius} {self.unit.value} ({self.year})"

    def to_feature(self, segments: int = 64) -> dict:
        """GeoJSON Feature with a geodesic polygon approximation."""
        ring = circle_ring(self.center, self.radius_meters, segments)
        return {
            "type": "Feature",
            "id": self.id,
            "geometry": {
                "type": "Polygon",
                "coordinates": [[list(pt) for pt in ring]],
            },
            "properties": {
                "school_id": self.school_id,
                "school_name": self.school_name,
                "year": self.year,
                "radius": self.radius,
                "unit": self.unit.value,
                "color": self.color,
                "is_visible": self.is_visible,
            },
        }


class PinType(str, Enum):
    SCHOOL = "school"
    LOCATION = "location"
    MEASUREMENT = "measurement"


@dataclass(frozen=True, slots=True)
class PinInfo:
    id: str
    type: PinType
    coordinates: LatLon
    title: str = ""
    school_id: Optional[str] = None
    is_draggable: bool = True

    def __post_init__(self):
        object.__setattr__(self, "type", PinType(self.type))
        object.__setattr__(self, "coordinates", validate_coordinates(*self.coordinates))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "coordinates": [self.coordinates[0], self.coordinates[1]],
            "title": self.title,
            "schoolId": self.school_id,
            "isDraggable": self.is_draggable,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "PinInfo":
        coords = raw["coordinates"]
        return cls(
            id=str(raw["id"]),
            type=raw["type"],
            coordinates=(coords[0], coords[1]),
            title=str(raw.get("title") or ""),
            school_id=raw.get("schoolId"),
            is_draggable=bool(raw.get("isDraggable", True)),
        )


class SchoolList(list):
    def to_dicts(self) -> list[dict]:
        return [obj.to_dict() for obj in self]

    def to_df(self, columns: list[str] | None = None):
        import pandas as pd

        df = pd.DataFrame(self.to_dicts())
        if columns is not None:
            cols = [c for c in columns if c in df.columns]
            df = df[cols]
        return df

    def unique(self, attr):
        if callable(attr):
            getter = attr
        else:
            getter = lambda o: getattr(o, attr, None)
        values = [getter(obj) for obj in self]
        return sorted(set(v for v in values if v is not None))

    def by_id(self) -> Dict[str, School]:
        return {s.id: s for s in self}


def iter_circles(schools: Iterable[School]) -> Iterable[RadiusCircle]:
    """Project zones and averages of ``schools`` to map-facing circles."""
    for school in schools:
        for zone in school.zones:
            yield RadiusCircle(
                id=zone.id or zone_id_for(school.id, zone.year),
                center=school.coordinates,
                radius=zone.radius,
                unit=zone.unit,
                school_id=school.id,
                school_name=school.name,
                year=zone.year,
                color=zone.color,
                is_visible=zone.is_visible,
            )
        avg = school.average
        if avg is not None and avg.radius > 0:
            yield RadiusCircle(
                id=average_circle_id(school.id),
                center=school.coordinates,
                radius=avg.radius,
                unit=avg.unit,
                school_id=school.id,
                school_name=school.name,
                year=AVERAGE_YEAR,
                color=avg.color,
                is_visible=avg.is_visible,
            )
