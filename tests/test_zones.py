import asyncio

import pytest

from catchmap.entities import AverageCatchment, CatchmentZone
from catchmap.errors import NotFoundError, PersistenceError, ValidationError
from catchmap.palettes import PALETTES, PaletteName, PaletteType
from catchmap.zones import CatchmentZoneStore, average_radius_km, build_average


def _z(radius, unit, year=2024):
    return CatchmentZone(id=f"s-{year}", year=year, radius=radius, unit=unit, color="#FF6B6B")


def test_average_radius_km():
    assert average_radius_km([]) is None
    assert average_radius_km([_z(1, "km"), _z(1000, "meters", 2023)]) == 1.0
    assert average_radius_km([_z(1, "km"), _z(1609.34, "meters", 2023)]) == 1.3
    assert average_radius_km([_z(1, "miles")]) == 1.6


def test_build_average_keeps_previous_visibility():
    first = build_average([_z(1, "km")], previous=None, color="#6B7280")
    assert first.is_visible is False
    shown = build_average([_z(3, "km")], previous=AverageCatchment(1.0, "#6B7280", True), color="#6B7280")
    assert shown.is_visible is True
    assert shown.radius == 3.0
    assert build_average([], previous=shown, color="#6B7280") is None


@pytest.fixture
def zones(registry):
    asyncio.run(registry.add_favorite("Hill Primary", "", (51.5, -0.12)))
    return CatchmentZoneStore(registry)


def test_upsert_replaces_same_year(zones, registry):
    asyncio.run(zones.upsert_zone("s1", 2024, 1, "km"))
    school = asyncio.run(zones.upsert_zone("s1", 2024, 2, "km"))

    assert [z.id for z in school.zones] == ["s1-2024"]
    assert school.zones[0].radius == 2
    assert school.average.radius == 2.0
    assert registry.get("s1") == school


def test_upsert_assigns_palette_color(zones):
    school = asyncio.run(zones.upsert_zone("s1", 2023, 1.5, "miles"))
    vibrant = PALETTES[(PaletteType.SCHOOLS, PaletteName.VIBRANT)]
    assert school.zones[0].color == vibrant[0]


def test_upsert_validates_synchronously(zones, store):
    calls_before = list(store.calls)
    with pytest.raises(ValidationError):
        asyncio.run(zones.upsert_zone("s1", 2024, 0, "km"))
    with pytest.raises(ValidationError):
        asyncio.run(zones.upsert_zone("s1", 2024, 1, "leagues"))
    with pytest.raises(ValidationError, match="Please select a school"):
        asyncio.run(zones.upsert_zone("ghost", 2024, 1, "km"))
    with pytest.raises(ValidationError, match="Please select a school"):
        asyncio.run(zones.upsert_zone("", 2024, 1, "km"))
    assert store.calls == calls_before


def test_remove_zone_recomputes_then_clears_average(zones):
    asyncio.run(zones.upsert_zone("s1", 2024, 1, "km"))
    asyncio.run(zones.upsert_zone("s1", 2023, 3, "km"))

    school = asyncio.run(zones.remove_zone("s1-2023"))
    assert school.average.radius == 1.0

    school = asyncio.run(zones.remove_zone("s1-2024"))
    assert school.zones == ()
    assert school.average is None
    with pytest.raises(NotFoundError):
        asyncio.run(zones.remove_zone("s1-2024"))


def test_failed_remove_leaves_zone_and_average(zones, registry, store, notifier):
    asyncio.run(zones.upsert_zone("s1", 2024, 1, "km"))
    asyncio.run(zones.upsert_zone("s1", 2023, 2, "km"))
    before = registry.get("s1")
    store.fail_ops.add("update")

    with pytest.raises(PersistenceError):
        asyncio.run(zones.remove_zone("s1-2023"))

    assert registry.get("s1") == before
    assert before.average.radius == 1.5
    assert notifier.errors[-1].startswith("Failed to remove catchment zone")


def test_visibility_color_and_average_toggles(zones, registry):
    with pytest.raises(ValidationError):
        asyncio.run(zones.set_average_visibility("s1", True))

    asyncio.run(zones.upsert_zone("s1", 2024, 1, "km"))
    asyncio.run(zones.set_zone_visibility("s1-2024", False))
    asyncio.run(zones.set_zone_color("s1-2024", "#123456"))
    school = asyncio.run(zones.set_average_visibility("s1", True))

    assert school.zones[0].is_visible is False
    assert school.zones[0].color == "#123456"
    assert school.average.is_visible is True
    assert registry.colors.color_for("s1", 2024, 0) == "#123456"

    # re-saving the year keeps the custom color and the average visibility
    school = asyncio.run(zones.upsert_zone("s1", 2024, 2, "km"))
    assert school.zones[0].color == "#123456"
    assert school.average.is_visible is True


def test_concurrent_upserts_do_not_lose_zones(zones, store):
    store.delay = 0.01

    async def both():
        await asyncio.gather(
            zones.upsert_zone("s1", 2023, 1, "km"),
            zones.upsert_zone("s1", 2024, 2, "km"),
        )

    asyncio.run(both())
    assert sorted(z.year for z in store.rows["s1"].zones) == [2023, 2024]
