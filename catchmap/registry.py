"""Bounded set of favorite schools; the only owner of School entities."""

from __future__ import annotations

from dataclasses import replace
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence
import logging
import uuid

from .entities import CatchmentZone, RadiusCircle, School, SchoolList, iter_circles
from .errors import CapacityError, NotFoundError, ValidationError
from .geometry import LatLon, validate_coordinates
from .palettes import ColorAssigner
from .sync import PersistenceSync
from .zones import build_average

__all__ = ["SchoolRegistry", "DEFAULT_MAX_FAVORITES"]

logger = logging.getLogger(__name__)

DEFAULT_MAX_FAVORITES = 6


def _new_school_id() -> str:
    return uuid.uuid4().hex


class SchoolRegistry:
    def __init__(
        self,
        sync: PersistenceSync,
        colors: ColorAssigner,
        *,
        max_favorites: int = DEFAULT_MAX_FAVORITES,
        average_color: str = "#6B7280",
        show_average: bool = False,
        id_factory: Callable[[], str] = _new_school_id,
    ):
        if max_favorites < 1:
            raise ValueError("max_favorites must be >= 1")
        self.sync = sync
        self.colors = colors
        self.max_favorites = max_favorites
        self.average_color = average_color
        self.show_average = show_average
        self._id_factory = id_factory
        # dict order is the favorites order used by schools-mode palettes
        self._schools: Dict[str, School] = {}
        self._pending_creates = 0
        self._removal_listeners: List[Callable[[str], None]] = []

    # --- read side ---
    def __len__(self) -> int:
        return len(self._schools)

    def __iter__(self) -> Iterator[School]:
        return iter(list(self._schools.values()))

    def __contains__(self, school_id: object) -> bool:
        return school_id in self._schools

    @property
    def favorites(self) -> SchoolList:
        return SchoolList(self._schools.values())

    def get(self, school_id: str) -> School:
        try:
            return self._schools[school_id]
        except KeyError:
            raise NotFoundError(f"Favorite school {school_id!r} not found") from None

    def index_of(self, school_id: str) -> Optional[int]:
        for i, sid in enumerate(self._schools):
            if sid == school_id:
                return i
        return None

    def find_zone(self, zone_id: str) -> tuple[School, CatchmentZone]:
        for school in self._schools.values():
            zone = school.zone_by_id(zone_id)
            if zone is not None:
                return school, zone
        raise NotFoundError(f"Catchment zone {zone_id!r} not found")

    def circles(self) -> List[RadiusCircle]:
        return list(iter_circles(self._schools.values()))

    def to_df(self, columns: list[str] | None = None):
        return self.favorites.to_df(columns=columns)

    def on_remove(self, listener: Callable[[str], None]) -> None:
        self._removal_listeners.append(listener)

    # --- state replacement (called only after a confirmed remote write) ---
    def _store(self, school: School) -> None:
        self._schools[school.id] = school

    def _drop(self, school: School) -> None:
        self._schools.pop(school.id, None)
        self.colors.forget_school(school.id)
        for listener in list(self._removal_listeners):
            listener(school.id)

    def seed(self, schools: Iterable[School]) -> List[School]:
        """Replace local state with ``schools`` fetched from the store."""
        self._schools.clear()
        kept: List[School] = []
        for school in schools:
            if school.id in self._schools:
                logger.warning("registry.seed_duplicate school_id=%s", school.id)
                continue
            if len(self._schools) >= self.max_favorites:
                logger.warning(
                    "registry.seed_over_capacity dropped=%s limit=%d",
                    school.id,
                    self.max_favorites,
                )
                continue
            average = build_average(
                school.zones,
                previous=school.average,
                color=self.average_color,
                default_visible=self.show_average,
            )
            school = replace(school, average=average)
            self._schools[school.id] = school
            kept.append(school)
        return kept

    # --- mutations ---
    async def add_favorite(
        self, name: str, address: str, coordinates: Sequence[float]
    ) -> School:
        if not name or not str(name).strip():
            raise ValidationError("Please enter a school name")
        coords = validate_coordinates(*coordinates)
        if len(self._schools) + self._pending_creates >= self.max_favorites:
            raise CapacityError(self.max_favorites)

        school = School(
            id=self._id_factory(),
            name=str(name).strip(),
            address=str(address or "").strip(),
            coordinates=coords,
        )
        self._pending_creates += 1
        try:
            return await self.sync.create(
                school.id,
                build=lambda: school,
                apply=self._store,
                success_message="School added to favorites!",
                failure_message="Failed to add school to favorites",
            )
        finally:
            self._pending_creates -= 1

    async def remove_favorite(self, school_id: str) -> School:
        self.get(school_id)
        return await self.sync.delete(
            school_id,
            build=lambda: self.get(school_id),
            apply=self._drop,
            success_message="School removed from favorites!",
            failure_message="Failed to remove school from favorites",
        )

    async def relocate(self, school_id: str, coordinates: Sequence[float]) -> School:
        """Move a school; every circle centered on it follows on the next projection."""
        coords = validate_coordinates(*coordinates)
        self.get(school_id)
        school = await self.sync.update(
            school_id,
            build=lambda: replace(self.get(school_id), coordinates=coords),
            apply=self._store,
            success_message="School location updated!",
            failure_message="Failed to update school location",
        )
        logger.info(
            "registry.relocated school_id=%s lat=%.6f lon=%.6f", school_id, *coords
        )
        return school

    async def update_school(
        self,
        school_id: str,
        build: Callable[[School], School],
        *,
        success_message: str,
        failure_message: str,
    ) -> School:
        """Persist ``build(current)`` and commit it; used by the zone store."""
        self.get(school_id)
        return await self.sync.update(
            school_id,
            build=lambda: build(self.get(school_id)),
            apply=self._store,
            success_message=success_message,
            failure_message=failure_message,
        )
