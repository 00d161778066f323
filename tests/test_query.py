import numpy as np
import pandas as pd
import pytest

from catchmap.entities import CatchmentZone, School
from catchmap.geometry import distance
from catchmap.query import CatchmentQueryEngine
from catchmap.units import Unit

CENTER = (51.5, -0.12)
NEAR = (51.5045, -0.12)  # ~500 m north
FAR = (51.518, -0.12)  # ~2 km north


def _zone(sid, year, radius, unit="km"):
    return CatchmentZone(id=f"{sid}-{year}", year=year, radius=radius, unit=unit, color="#FF6B6B")


@pytest.fixture
def query(registry):
    registry.seed(
        [
            School(
                id="a",
                name="Hill Primary",
                coordinates=CENTER,
                zones=(_zone("a", 2022, 1), _zone("a", 2023, 1.2), _zone("a", 2024, 600, "meters")),
            ),
            School(id="b", name="Vale Academy", coordinates=(51.6, -0.3), zones=(_zone("b", 2024, 1),)),
            School(id="c", name="Empty School", coordinates=CENTER),
        ]
    )
    return CatchmentQueryEngine(registry)


def test_school_reported_once_when_several_zones_cover(query):
    assert query.schools_covering(NEAR) == {"a"}


def test_far_point_not_covered(query):
    assert query.schools_covering(FAR) == set()


def test_boundary_is_inclusive(registry):
    d = distance(CENTER, NEAR)
    registry.seed(
        [School(id="a", name="Hill", coordinates=CENTER, zones=(_zone("a", 2024, d, "meters"),))]
    )
    assert CatchmentQueryEngine(registry).schools_covering(NEAR) == {"a"}


def test_coverage_by_year_keeps_years_distinct(query):
    point = (51.5063, -0.12)  # ~700 m: outside the 600 m zone
    result = query.coverage_by_year(point)
    assert result["a"] == {2022: True, 2023: True, 2024: False}
    assert result["b"] == {2024: False}
    assert result["c"] == {}


def test_describe_point_formats_distance_per_unit(query):
    report = query.describe_point(NEAR, "meters")
    assert report.covered
    assert report.hits[0].years == (2024, 2023, 2022)
    lines = report.lines()
    assert lines[0] == "51.504500, -0.120000"
    assert lines[2] == "Hill Primary: 500 meters away"

    km_lines = query.describe_point(NEAR, Unit.KM).lines()
    assert km_lines[2] == "Hill Primary: 0.50 km away"

    assert query.describe_point(FAR).lines()[1] == "Not within any favorite school catchments"


def test_coverage_matrix(query):
    matrix = query.coverage_matrix([NEAR, FAR, (51.6, -0.3)])
    assert matrix.dtype == np.bool_
    assert matrix.tolist() == [
        [True, False, False],
        [False, False, False],
        [False, True, False],
    ]


def test_compare_schools_dataframe(query):
    df = query.compare_schools(reference=FAR)
    assert isinstance(df, pd.DataFrame)
    assert list(df["school_id"]) == ["a", "c", "b"]
    row = df.set_index("school_id").loc["a"]
    assert row["zones"] == 3
    assert row["latest_year"] == 2024
    assert row["latest_radius_km"] == pytest.approx(0.6)
    assert row["max_radius_km"] == pytest.approx(1.2)
    assert row["average_km"] == pytest.approx(0.9)
    assert row["covers_reference"] == False  # noqa: E712


def test_statistics(query, registry):
    stats = query.statistics()
    assert stats["total_circles"] == 6  # four zones + two averages
    assert stats["schools"] == 3
    assert stats["years"] == 3
    assert stats["schools_with_catchment_data"] == 2
    assert stats["visible_circles"] == 4
    assert stats["average_radius_km"] == pytest.approx((1 + 1.2 + 0.6 + 1) / 4)
