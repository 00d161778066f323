"""CatchmentEngine: wires the registry, zones, colors, pins and map surface.

After every public operation the engine reconciles the map surface with the
projected circles and pins, so rendering always reflects committed state.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union
import asyncio
import logging
import secrets

from .catchmap_config import EngineConfig
from .entities import PinInfo, RadiusCircle, School
from .errors import NotFoundError, ValidationError
from .geocoding import Geocoder, NominatimGeocoder
from .geometry import LatLon, validate_coordinates
from .local_cache import FormPreferences, LocalCache
from .palettes import ColorAssigner, PaletteName, PaletteType
from .pins import ClickOutcome, PinManager, PlacementMode
from .query import CatchmentQueryEngine, PointReport
from .registry import SchoolRegistry
from .rendering import MapSurface, RecordingMapSurface
from .sync import FavoritesStore, LoggingNotifier, Notifier, PersistenceSync
from .units import Unit, ZoneForm
from .zones import CatchmentZoneStore

__all__ = ["CatchmentEngine"]

logger = logging.getLogger(__name__)

SEARCH_ZOOM = 15


class CatchmentEngine:
    def __init__(
        self,
        store: FavoritesStore,
        *,
        config: Optional[EngineConfig] = None,
        surface: Optional[MapSurface] = None,
        notifier: Optional[Notifier] = None,
        geocoder: Optional[Geocoder] = None,
        cache: Optional[LocalCache] = None,
        **registry_kwargs: Any,
    ):
        if config is None:
            config = EngineConfig()
            config.validate()
        self.config = config
        self.notifier: Notifier = notifier or LoggingNotifier()
        self.sync = PersistenceSync(store, notifier=self.notifier, timeout=config.network_timeout)
        self.colors = ColorAssigner(config.palette)
        self.registry = SchoolRegistry(
            self.sync,
            self.colors,
            max_favorites=config.max_favorites,
            average_color=config.average_color,
            show_average=config.show_average_zones,
            **registry_kwargs,
        )
        self.zones = CatchmentZoneStore(self.registry)
        self.query = CatchmentQueryEngine(self.registry)
        if cache is None and config.cache_dir:
            cache = LocalCache(config.cache_dir)
        self.cache = cache
        self.pins = PinManager(self.registry, cache=cache, display_unit=config.default_unit)
        self.surface: MapSurface = surface if surface is not None else RecordingMapSurface()
        self._geocoder = geocoder
        self.form = FormPreferences(
            unit=config.default_unit,
            palette_type=config.palette_type,
            palette_name=config.palette_name,
        )
        self.zone_form = ZoneForm(radius=config.default_radius, unit=Unit.coerce(config.default_unit))
        self.map_center: LatLon = tuple(config.default_center)
        self.year_filter: Optional[int] = None
        self.focused_school: Optional[str] = None
        self._clear_token: Optional[str] = None
        self._rendered: Dict[str, Tuple[str, tuple]] = {}

    # ------------------------------------------------------------------
    # start-up and rendering
    # ------------------------------------------------------------------
    async def load(self) -> List[School]:
        """Seed favorites from the store, restore cached UI state and draw."""
        schools = self.registry.seed(await self.sync.load())
        if self.cache is not None:
            pins, form = self.cache.load()
            self.form = form
            self.zone_form = replace(self.zone_form, unit=Unit.coerce(form.unit))
            self.pins.display_unit = Unit.coerce(form.unit)
            self.year_filter = form.selected_year
            self.colors.apply_palette(form.palette_type, form.palette_name)
            self.pins.restore(pins)
        zone_count = sum(len(s.zones) for s in schools)
        self.notifier.success(f"Loaded {len(schools)} schools with {zone_count} catchment zones")
        self._render()
        return schools

    def _circle_visible(self, circle: RadiusCircle) -> bool:
        if not circle.is_visible:
            return False
        if self.focused_school is not None and circle.school_id != self.focused_school:
            return False
        if self.year_filter is not None and not circle.is_average:
            return circle.year == self.year_filter
        return True

    def visible_circles(self) -> List[RadiusCircle]:
        """Projected circles with view filters folded into ``is_visible``."""
        return [replace(c, is_visible=self._circle_visible(c)) for c in self.registry.circles()]

    def _render(self) -> None:
        desired: Dict[str, Tuple[str, tuple, Any]] = {}
        for circle in self.visible_circles():
            sig = (circle.center, circle.radius_meters, circle.color, circle.is_visible, circle.label())
            desired[circle.id] = ("circle", sig, circle)
        for pin in self.pins.pins:
            desired[pin.id] = ("marker", (pin.coordinates, pin.title, pin.type.value), pin)

        for entity_id in [k for k in self._rendered if k not in desired]:
            self.surface.remove(entity_id)
            del self._rendered[entity_id]

        for entity_id, (kind, sig, obj) in desired.items():
            previous = self._rendered.get(entity_id)
            if previous == (kind, sig):
                continue
            if previous is None or previous[0] != kind:
                if previous is not None:
                    self.surface.remove(entity_id)
                if kind == "circle":
                    self.surface.draw_circle(obj)
                else:
                    self.surface.draw_marker(obj)
            elif kind == "circle":
                self.surface.restyle(
                    entity_id,
                    center=obj.center,
                    radius_m=obj.radius_meters,
                    color=obj.color,
                    visible=obj.is_visible,
                    label=obj.label(),
                )
            else:
                self.surface.restyle(entity_id, center=obj.coordinates, title=obj.title)
            self._rendered[entity_id] = (kind, sig)

    async def _rendered_after(self, awaitable):
        try:
            return await awaitable
        finally:
            self._render()

    def _save_form(self) -> None:
        if self.cache is not None:
            self.cache.save_form(self.form)

    # ------------------------------------------------------------------
    # favorites
    # ------------------------------------------------------------------
    async def add_school(
        self,
        name: str,
        address: str = "",
        coordinates: Optional[Sequence[float]] = None,
    ) -> School:
        """Add a favorite at ``coordinates``, the placed school pin, or the map center."""
        pin = None
        if coordinates is None:
            pin = self.pins.latest_unassigned_school_pin()
            coordinates = pin.coordinates if pin is not None else self.map_center
        school = await self._rendered_after(
            self.registry.add_favorite(name, address or self.form.address, coordinates)
        )
        if pin is not None and pin.id in {p.id for p in self.pins.pins}:
            self.pins.assign_pin_to_school(pin.id, school.id)
            self._render()
        return school

    async def remove_school(self, school_id: str) -> School:
        school = await self._rendered_after(self.registry.remove_favorite(school_id))
        if self.focused_school == school_id:
            self.focused_school = None
            self._render()
        return school

    async def relocate_school(self, school_id: str, coordinates: Sequence[float]) -> School:
        return await self._rendered_after(self.registry.relocate(school_id, coordinates))

    # ------------------------------------------------------------------
    # zones
    # ------------------------------------------------------------------
    async def add_zone(
        self,
        school_id: str,
        year: int,
        radius: Optional[float] = None,
        unit: Unit | str | None = None,
        color: Optional[str] = None,
    ) -> School:
        radius = self.zone_form.radius if radius is None else radius
        unit = self.zone_form.unit if unit is None else unit
        return await self._rendered_after(
            self.zones.upsert_zone(school_id, year, radius, unit, color)
        )

    async def remove_zone(self, zone_id: str) -> School:
        return await self._rendered_after(self.zones.remove_zone(zone_id))

    async def set_zone_visibility(self, zone_id: str, visible: bool) -> School:
        return await self._rendered_after(self.zones.set_zone_visibility(zone_id, visible))

    async def set_zone_color(self, zone_id: str, color: str) -> School:
        return await self._rendered_after(self.zones.set_zone_color(zone_id, color))

    async def set_average_visibility(self, school_id: str, visible: bool) -> School:
        return await self._rendered_after(self.zones.set_average_visibility(school_id, visible))

    def switch_unit(self, unit: Unit | str) -> ZoneForm:
        """Change the display/input unit; the pending radius keeps its length."""
        self.zone_form = self.zone_form.switch_unit(unit)
        self.form.unit = self.zone_form.unit.value
        self.pins.display_unit = self.zone_form.unit
        self._save_form()
        return self.zone_form

    # ------------------------------------------------------------------
    # colors
    # ------------------------------------------------------------------
    async def _recolor(self, school_ids: Iterable[str]) -> List[School]:
        def rebuild(current: School) -> School:
            return self.colors.recolor(current, self.registry.index_of(current.id))

        pending = []
        for school_id in school_ids:
            school = self.registry.get(school_id)
            if rebuild(school) == school:
                continue
            pending.append(
                self.registry.update_school(
                    school_id,
                    rebuild,
                    success_message=f"Colors updated for {school.name}",
                    failure_message=f"Failed to save colors for {school.name}",
                )
            )
        results = await self._rendered_after(asyncio.gather(*pending, return_exceptions=True))
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            raise failures[0]
        return list(results)

    async def apply_palette(self, ptype: PaletteType | str, name: PaletteName | str) -> List[School]:
        """Select a global palette and persist the recolored zones of every school."""
        selection = self.colors.apply_palette(ptype, name)
        self.form.palette_type = selection.type.value
        self.form.palette_name = selection.name.value
        self._save_form()
        return await self._recolor([s.id for s in self.registry])

    async def reset_colors(self) -> List[School]:
        self.colors.reset()
        self.form.palette_type = self.colors.selection.type.value
        self.form.palette_name = self.colors.selection.name.value
        self._save_form()
        return await self._recolor([s.id for s in self.registry])

    async def set_school_scheme(self, school_id: str, colors: Sequence[str]) -> List[School]:
        self.registry.get(school_id)
        self.colors.set_school_scheme(school_id, colors)
        return await self._recolor([school_id])

    # ------------------------------------------------------------------
    # view state
    # ------------------------------------------------------------------
    def available_years(self) -> List[int]:
        return sorted({z.year for s in self.registry for z in s.zones}, reverse=True)

    def set_year_filter(self, year: Optional[int]) -> None:
        self.year_filter = None if year is None else int(year)
        self.form.selected_year = self.year_filter
        self._save_form()
        self._render()

    def focus_school(self, school_id: Optional[str]) -> None:
        if school_id is not None:
            school = self.registry.get(school_id)
            self.surface.center_on(school.coordinates)
        self.focused_school = school_id
        self._render()

    # ------------------------------------------------------------------
    # map interaction
    # ------------------------------------------------------------------
    def enter_placement(self, mode: PlacementMode | str, title: Optional[str] = None) -> None:
        self.pins.enter_placement(mode, title)

    def cancel_placement(self) -> None:
        self.pins.cancel_placement()

    def start_measurement(self) -> None:
        self.pins.start_measurement()

    def cancel_measurement(self) -> None:
        self.pins.cancel_measurement()

    def handle_click(self, point: Sequence[float]) -> Union[ClickOutcome, PointReport]:
        """Measurement, then pin placement, otherwise a coverage popup."""
        outcome = self.pins.handle_click(point)
        if outcome.kind != "query":
            self._render()
            return outcome
        report = self.query.describe_point(outcome.point, self.form.unit)
        self.surface.show_popup(outcome.point, report.lines())
        return report

    def place_precise(self, lat: float, lng: float) -> ClickOutcome:
        outcome = self.pins.place_precise(lat, lng)
        self.surface.center_on(outcome.point)
        self._render()
        return outcome

    async def drag_pin(self, pin_id: str, coordinates: Sequence[float]) -> PinInfo:
        """Move a pin; school pins relocate the school and re-center its circles."""
        return await self._rendered_after(self.pins.drag_pin(pin_id, coordinates))

    def remove_pin(self, pin_id: str) -> PinInfo:
        pin = self.pins.remove_pin(pin_id)
        self._render()
        return pin

    def assign_pin_to_school(self, pin_id: str, school_id: str) -> PinInfo:
        pin = self.pins.assign_pin_to_school(pin_id, school_id)
        self._render()
        return pin

    def schools_covering(self, point: Sequence[float]) -> Set[str]:
        return self.query.schools_covering(validate_coordinates(*point))

    @property
    def geocoder(self) -> Geocoder:
        if self._geocoder is None:
            self._geocoder = NominatimGeocoder(
                user_agent=self.config.geocoder_user_agent,
                country_codes=self.config.geocoder_country_codes or None,
                timeout=self.config.network_timeout,
            )
        return self._geocoder

    async def search_address(self, text: str) -> LatLon:
        try:
            point = await self.geocoder.search(text)
        except NotFoundError:
            self.notifier.error("Address not found. Please try a different search term.")
            raise
        self.map_center = point
        self.surface.center_on(point, SEARCH_ZOOM)
        self.form.address = (text or "").strip()
        self._save_form()
        return point

    async def reverse_geocode(self, point: Sequence[float]) -> str:
        return await self.geocoder.reverse(point)

    # ------------------------------------------------------------------
    # bulk operations
    # ------------------------------------------------------------------
    def confirm_clear(self) -> str:
        """Issue the one-shot token that :meth:`clear_all` requires."""
        self._clear_token = secrets.token_hex(8)
        return self._clear_token

    async def clear_all(self, confirmation: str) -> int:
        token, self._clear_token = self._clear_token, None
        if token is None or confirmation != token:
            raise ValidationError("Clearing all schools requires confirmation")
        return await self.purge_all()

    async def purge_all(self) -> int:
        """Remove every favorite and pin without asking; returns schools removed."""
        ids = [s.id for s in self.registry]
        results = await asyncio.gather(
            *(self.registry.remove_favorite(sid) for sid in ids), return_exceptions=True
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        if not failures:
            self.pins.clear()
            self.colors.reset()
            self.focused_school = None
        self._render()
        if failures:
            raise failures[0]
        logger.info("engine.purged schools=%d", len(ids))
        return len(ids)

    # ------------------------------------------------------------------
    # reporting
    # ------------------------------------------------------------------
    def statistics(self) -> Dict[str, float]:
        return self.query.statistics(self.visible_circles())

    def compare_schools(self, reference: Optional[Sequence[float]] = None):
        return self.query.compare_schools(reference)

    def export_geojson(self, *, visible_only: bool = False, segments: int = 64) -> dict:
        circles = self.visible_circles()
        if visible_only:
            circles = [c for c in circles if c.is_visible]
        return {
            "type": "FeatureCollection",
            "features": [c.to_feature(segments) for c in circles],
        }
