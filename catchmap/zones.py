"""Per-school catchment zones and the derived average catchment."""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Iterable, Optional
import logging

from .entities import AverageCatchment, CatchmentZone, School, zone_id_for
from .errors import NotFoundError, ValidationError
from .palettes import validate_color
from .units import Unit, coerce_radius, to_km

if TYPE_CHECKING:  # pragma: no cover
    from .registry import SchoolRegistry

__all__ = [
    "average_radius_km",
    "build_average",
    "CatchmentZoneStore",
]

logger = logging.getLogger(__name__)


def average_radius_km(zones: Iterable[CatchmentZone]) -> Optional[float]:
    """Mean zone radius in km, rounded to one decimal; None when there are no zones."""
    radii = [to_km(z.radius, z.unit) for z in zones]
    if not radii:
        return None
    return round(sum(radii) / len(radii), 1)


def build_average(
    zones: Iterable[CatchmentZone],
    *,
    previous: Optional[AverageCatchment],
    color: str,
    default_visible: bool = False,
) -> Optional[AverageCatchment]:
    radius = average_radius_km(zones)
    if radius is None:
        return None
    visible = previous.is_visible if previous is not None else default_visible
    return AverageCatchment(radius=radius, unit=Unit.KM, color=color, is_visible=visible)


class CatchmentZoneStore:
    """Zone CRUD over the registry's schools; one zone per (school, year)."""

    def __init__(self, registry: "SchoolRegistry"):
        self.registry = registry

    def _with_average(self, school: School) -> School:
        return replace(
            school,
            average=build_average(
                school.zones,
                previous=school.average,
                color=self.registry.average_color,
                default_visible=self.registry.show_average,
            ),
        )

    async def upsert_zone(
        self,
        school_id: str,
        year: int,
        radius: float,
        unit: Unit | str,
        color: Optional[str] = None,
    ) -> School:
        radius = coerce_radius(radius)
        unit = Unit.coerce(unit)
        try:
            year = int(year)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid year {year!r}") from None
        if color is not None:
            validate_color(color)
        if not school_id or school_id not in self.registry:
            raise ValidationError("Please select a school")

        def build(school: School) -> School:
            zone_color = color or self.registry.colors.color_for(
                school.id, year, self.registry.index_of(school.id)
            )
            zone = CatchmentZone(
                id=zone_id_for(school.id, year),
                year=year,
                radius=radius,
                unit=unit,
                color=zone_color,
                is_visible=True,
            )
            return self._with_average(school.with_zone(zone))

        school = await self.registry.update_school(
            school_id,
            build,
            success_message="Catchment zone saved successfully!",
            failure_message="Failed to save catchment zone",
        )
        logger.info(
            "zones.upserted school_id=%s year=%d radius=%s unit=%s",
            school_id,
            year,
            radius,
            unit.value,
        )
        return school

    async def remove_zone(self, zone_id: str) -> School:
        school, _zone = self.registry.find_zone(zone_id)

        def build(current: School) -> School:
            if current.zone_by_id(zone_id) is None:
                # removed by an earlier queued mutation
                raise NotFoundError(f"Catchment zone {zone_id!r} not found")
            return self._with_average(current.without_zone(zone_id))

        return await self.registry.update_school(
            school.id,
            build,
            success_message="Catchment zone removed successfully!",
            failure_message="Failed to remove catchment zone",
        )

    async def set_zone_visibility(self, zone_id: str, visible: bool) -> School:
        school, _zone = self.registry.find_zone(zone_id)
        return await self.registry.update_school(
            school.id,
            lambda current: self._replace_zone(current, zone_id, is_visible=bool(visible)),
            success_message="Visibility updated",
            failure_message="Failed to save visibility change",
        )

    async def set_zone_color(self, zone_id: str, color: str) -> School:
        validate_color(color)
        school, zone = self.registry.find_zone(zone_id)
        updated = await self.registry.update_school(
            school.id,
            lambda current: self._replace_zone(current, zone_id, color=color),
            success_message="Color updated successfully!",
            failure_message="Failed to save color change",
        )
        self.registry.colors.set_override(school.id, zone.year, color)
        return updated

    async def set_average_visibility(self, school_id: str, visible: bool) -> School:
        school = self.registry.get(school_id)
        if school.average is None:
            raise ValidationError("School has no catchment zones to average")

        def build(current: School) -> School:
            if current.average is None:
                raise ValidationError("School has no catchment zones to average")
            return replace(current, average=replace(current.average, is_visible=bool(visible)))

        return await self.registry.update_school(
            school_id,
            build,
            success_message="Average catchment updated",
            failure_message="Failed to save average visibility",
        )

    def _replace_zone(self, school: School, zone_id: str, **changes) -> School:
        zone = school.zone_by_id(zone_id)
        if zone is None:
            raise NotFoundError(f"Catchment zone {zone_id!r} not found")
        return school.with_zone(replace(zone, **changes))
