"""Map pins, placement modes and two-point distance measurement."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Sequence
import logging
import uuid

from .entities import PinInfo, PinType
from .errors import NotFoundError, ValidationError
from .geometry import LatLon, haversine_meters, validate_coordinates
from .units import Unit, convert

if TYPE_CHECKING:  # pragma: no cover
    from .local_cache import LocalCache
    from .registry import SchoolRegistry

__all__ = ["PlacementMode", "Measurement", "ClickOutcome", "PinManager"]

logger = logging.getLogger(__name__)

DEFAULT_SCHOOL_PIN_TITLE = "New School Location"
DEFAULT_LOCATION_PIN_TITLE = "Custom Location"


class PlacementMode(str, Enum):
    OFF = "off"
    SCHOOL = "school"
    LOCATION = "location"


@dataclass(frozen=True, slots=True)
class Measurement:
    a: LatLon
    b: LatLon
    meters: float

    def display(self, unit: Unit | str) -> str:
        unit = Unit.coerce(unit)
        value = convert(self.meters, Unit.METERS, unit)
        shown = f"{value:.0f}" if unit is Unit.METERS else f"{value:.3f}"
        return f"{shown} {unit.value}"


@dataclass(frozen=True, slots=True)
class ClickOutcome:
    """What a map click did: ``measuring``, ``measured``, ``placed`` or ``query``."""

    kind: str
    point: LatLon
    pin: Optional[PinInfo] = None
    measurement: Optional[Measurement] = None


def _new_pin_id(ptype: PinType) -> str:
    return f"{ptype.value}-{uuid.uuid4().hex[:12]}"


class PinManager:
    def __init__(
        self,
        registry: "SchoolRegistry",
        *,
        cache: Optional["LocalCache"] = None,
        display_unit: Unit | str = Unit.KM,
        id_factory: Callable[[PinType], str] = _new_pin_id,
    ):
        self.registry = registry
        self.cache = cache
        self.display_unit = Unit.coerce(display_unit)
        self._id_factory = id_factory
        self._pins: Dict[str, PinInfo] = {}
        self.mode = PlacementMode.OFF
        self.measuring = False
        self._measure_points: List[LatLon] = []
        self.pending_school_title = DEFAULT_SCHOOL_PIN_TITLE
        registry.on_remove(self._on_school_removed)

    # --- read side ---
    @property
    def pins(self) -> List[PinInfo]:
        return list(self._pins.values())

    def get(self, pin_id: str) -> PinInfo:
        try:
            return self._pins[pin_id]
        except KeyError:
            raise NotFoundError(f"Pin {pin_id!r} not found") from None

    def pins_for_school(self, school_id: str) -> List[PinInfo]:
        return [p for p in self._pins.values() if p.school_id == school_id]

    def latest_unassigned_school_pin(self) -> Optional[PinInfo]:
        for pin in reversed(list(self._pins.values())):
            if pin.type is PinType.SCHOOL and pin.school_id is None:
                return pin
        return None

    @property
    def measure_points(self) -> List[LatLon]:
        return list(self._measure_points)

    # --- modes ---
    def enter_placement(self, mode: PlacementMode | str, title: Optional[str] = None) -> None:
        mode = PlacementMode(mode)
        self.cancel_measurement()
        self.mode = mode
        if mode is PlacementMode.SCHOOL:
            self.pending_school_title = (title or "").strip() or DEFAULT_SCHOOL_PIN_TITLE

    def cancel_placement(self) -> None:
        self.mode = PlacementMode.OFF

    def start_measurement(self) -> None:
        self.mode = PlacementMode.OFF
        self.measuring = True
        self._measure_points.clear()

    def cancel_measurement(self) -> None:
        self.measuring = False
        self._measure_points.clear()

    # --- clicks ---
    def handle_click(self, point: Sequence[float]) -> ClickOutcome:
        """Route a map click: measurement first, then placement, else a coverage query."""
        at = validate_coordinates(*point)
        if self.measuring:
            self._measure_points.append(at)
            if len(self._measure_points) < 2:
                return ClickOutcome("measuring", at)
            a, b = self._measure_points
            measurement = Measurement(a=a, b=b, meters=haversine_meters(a, b))
            self._add(PinInfo(self._id_factory(PinType.MEASUREMENT), PinType.MEASUREMENT, a, "Point A"))
            pin = self._add(
                PinInfo(
                    self._id_factory(PinType.MEASUREMENT),
                    PinType.MEASUREMENT,
                    b,
                    f"Point B - Distance: {measurement.display(self.display_unit)}",
                )
            )
            self.cancel_measurement()
            logger.info("pins.measured meters=%.1f", measurement.meters)
            return ClickOutcome("measured", at, pin=pin, measurement=measurement)

        if self.mode is PlacementMode.SCHOOL:
            pin = self._add(
                PinInfo(self._id_factory(PinType.SCHOOL), PinType.SCHOOL, at, self.pending_school_title)
            )
        elif self.mode is PlacementMode.LOCATION:
            pin = self._add(
                PinInfo(self._id_factory(PinType.LOCATION), PinType.LOCATION, at, DEFAULT_LOCATION_PIN_TITLE)
            )
        else:
            return ClickOutcome("query", at)
        self.mode = PlacementMode.OFF
        return ClickOutcome("placed", at, pin=pin)

    def place_precise(self, lat: float, lng: float) -> ClickOutcome:
        """Place a pin at typed coordinates using the active mode."""
        at = validate_coordinates(lat, lng)
        if self.mode is PlacementMode.OFF and not self.measuring:
            raise ValidationError("Select a pin placement mode first")
        return self.handle_click(at)

    # --- pin mutations ---
    async def drag_pin(self, pin_id: str, coordinates: Sequence[float]) -> PinInfo:
        """Move a pin; a school-linked pin relocates its school first."""
        pin = self.get(pin_id)
        at = validate_coordinates(*coordinates)
        if pin.school_id is not None and pin.school_id in self.registry:
            await self.registry.relocate(pin.school_id, at)
        # the pin may have been removed while the relocation was in flight
        if pin_id not in self._pins:
            raise NotFoundError(f"Pin {pin_id!r} not found")
        moved = replace(self._pins[pin_id], coordinates=at)
        self._pins[pin_id] = moved
        self._changed()
        return moved

    def assign_pin_to_school(self, pin_id: str, school_id: str) -> PinInfo:
        pin = self.get(pin_id)
        school = self.registry.get(school_id)
        linked = replace(pin, type=PinType.SCHOOL, school_id=school.id, title=school.name)
        self._pins[pin_id] = linked
        self._changed()
        return linked

    def remove_pin(self, pin_id: str) -> PinInfo:
        pin = self.get(pin_id)
        del self._pins[pin_id]
        self._changed()
        return pin

    def clear(self) -> None:
        self._pins.clear()
        self.mode = PlacementMode.OFF
        self.cancel_measurement()
        self._changed()

    def restore(self, pins: Iterable[PinInfo]) -> None:
        """Load cached pins, dropping links to schools that no longer exist."""
        self._pins.clear()
        for pin in pins:
            if pin.school_id is not None and pin.school_id not in self.registry:
                logger.info("pins.restore_dropped pin_id=%s school_id=%s", pin.id, pin.school_id)
                continue
            self._pins[pin.id] = pin

    def _add(self, pin: PinInfo) -> PinInfo:
        self._pins[pin.id] = pin
        self._changed()
        return pin

    def _on_school_removed(self, school_id: str) -> None:
        stale = [pid for pid, p in self._pins.items() if p.school_id == school_id]
        for pid in stale:
            del self._pins[pid]
        if stale:
            self._changed()

    def _changed(self) -> None:
        if self.cache is not None:
            self.cache.save_pins(self.pins)
