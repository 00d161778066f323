"""Radius unit handling (km, miles, meters)."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from .errors import ValidationError

__all__ = [
    "Unit",
    "METERS_PER_UNIT",
    "convert",
    "to_meters",
    "to_km",
    "coerce_radius",
    "ZoneForm",
]


class Unit(str, Enum):
    KM = "km"
    MILES = "miles"
    METERS = "meters"

    @classmethod
    def coerce(cls, value: Any) -> "Unit":
        if isinstance(value, Unit):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(
                f"Unknown unit {value!r}; expected one of km, miles, meters"
            ) from None


METERS_PER_UNIT = {
    Unit.KM: 1000.0,
    Unit.MILES: 1609.34,
    Unit.METERS: 1.0,
}


def convert(value: float, from_unit: Unit | str, to_unit: Unit | str) -> float:
    """Convert ``value`` between units by normalizing through meters."""
    src = Unit.coerce(from_unit)
    dst = Unit.coerce(to_unit)
    if src is dst:
        return float(value)
    meters = float(value) * METERS_PER_UNIT[src]
    return meters / METERS_PER_UNIT[dst]


def to_meters(value: float, unit: Unit | str) -> float:
    return convert(value, unit, Unit.METERS)


def to_km(value: float, unit: Unit | str) -> float:
    return convert(value, unit, Unit.KM)


def coerce_radius(value: Any) -> float:
    """Parse a user-supplied radius; must be a finite number > 0."""
    try:
        radius = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Please enter a valid radius") from None
    if radius != radius or radius in (float("inf"), float("-inf")) or radius <= 0:
        raise ValidationError("Please enter a valid radius")
    return radius


@dataclass(frozen=True, slots=True)
class ZoneForm:
    """Pending "add zone" input: the quantity survives unit switches."""

    radius: float = 1.5
    unit: Unit = Unit.KM
    year: int | None = None
    school_id: str = ""

    def switch_unit(self, unit: Unit | str) -> "ZoneForm":
        new_unit = Unit.coerce(unit)
        return replace(
            self, radius=convert(self.radius, self.unit, new_unit), unit=new_unit
        )
