import pandas as pd
import pytest

from catchmap.entities import (
    AverageCatchment,
    CatchmentZone,
    PinInfo,
    PinType,
    School,
    SchoolList,
    iter_circles,
    zone_id_for,
)
from catchmap.errors import ValidationError
from catchmap.units import Unit


def _zone(year, radius=1.0, unit="km", color="#FF6B6B"):
    return CatchmentZone(id=zone_id_for("s1", year), year=year, radius=radius, unit=unit, color=color)


def test_school_requires_name_and_valid_coordinates():
    with pytest.raises(ValidationError):
        School(id="s1", name="  ", coordinates=(51.5, -0.12))
    with pytest.raises(ValidationError):
        School(id="s1", name="Hill Primary", coordinates=(95, 0))


def test_with_zone_replaces_same_year_in_place():
    school = School(id="s1", name="Hill Primary", coordinates=(51.5, -0.12))
    school = school.with_zone(_zone(2023)).with_zone(_zone(2024))
    school = school.with_zone(_zone(2023, radius=2.0))

    assert [z.year for z in school.zones] == [2023, 2024]
    assert school.zone_for_year(2023).radius == 2.0
    assert school.years == [2024, 2023]


def test_contains_checks_any_zone():
    school = School(
        id="s1",
        name="Hill Primary",
        coordinates=(51.5, -0.12),
        zones=(_zone(2022, radius=100, unit="meters"), _zone(2024, radius=1)),
    )
    assert (51.5045, -0.12) in school  # ~500 m north
    assert (51.518, -0.12) not in school  # ~2 km north


def test_payload_round_trip_drops_malformed_zones():
    payload = {
        "id": "s1",
        "name": "Hill Primary",
        "address": "1 Hill Rd",
        "coordinates": [51.5, -0.12],
        "catchmentZones": [
            {"id": "s1-2024", "year": 2024, "radius": 1.2, "unit": "km", "color": "#FF6B6B"},
            {"id": "s1-2023", "year": 2023, "radius": 900, "unit": "meters"},
            {"id": "s1-2022", "year": 2022, "radius": -1, "unit": "km", "color": "#FF6B6B"},
            "garbage",
        ],
        "averageCatchment": {"radius": 1.2, "unit": "km", "color": "#6B7280", "isVisible": True},
        "isActive": True,
    }
    school = School.from_payload(payload)

    assert [z.year for z in school.zones] == [2024]
    assert school.average == AverageCatchment(radius=1.2, color="#6B7280", is_visible=True)
    again = School.from_payload(school.to_payload())
    assert again == school


def test_iter_circles_projects_zones_and_average():
    school = School(
        id="s1",
        name="Hill Primary",
        coordinates=(51.5, -0.12),
        zones=(_zone(2024),),
        average=AverageCatchment(radius=1.0, color="#6B7280"),
    )
    circles = list(iter_circles([school]))

    assert [c.id for c in circles] == ["s1-2024", "avg-s1"]
    avg = circles[1]
    assert avg.is_average and avg.year == 0
    assert avg.is_visible is False
    assert avg.label() == "Hill Primary - Average: 1.0 km"
    assert circles[0].label() == "Hill Primary - 1.0 km (2024)"

    feature = circles[0].to_feature(segments=8)
    assert feature["geometry"]["type"] == "Polygon"
    assert len(feature["geometry"]["coordinates"][0]) == 9


def test_pin_info_dict_uses_camel_case():
    pin = PinInfo(id="school-1", type="school", coordinates=(51.5, -0.12), school_id="s1")
    raw = pin.to_dict()
    assert raw["schoolId"] == "s1"
    assert raw["isDraggable"] is True
    assert PinInfo.from_dict(raw) == pin
    assert pin.type is PinType.SCHOOL


def test_school_list_to_df():
    schools = SchoolList(
        [
            School(id="s1", name="Hill Primary", coordinates=(51.5, -0.12)),
            School(id="s2", name="Vale Academy", coordinates=(51.51, -0.13)),
        ]
    )
    df = schools.to_df(columns=["id", "name", "zone_count"])
    assert isinstance(df, pd.DataFrame)
    assert list(df.columns) == ["id", "name", "zone_count"]
    assert schools.unique("name") == ["Hill Primary", "Vale Academy"]
    assert set(schools.by_id()) == {"s1", "s2"}


def test_zone_units_are_coerced():
    zone = CatchmentZone(id="s1-2024", year="2024", radius="1609.34", unit="METERS", color="#FF6B6B")
    assert zone.year == 2024
    assert zone.unit is Unit.METERS
    assert zone.radius_km == pytest.approx(1.60934)
