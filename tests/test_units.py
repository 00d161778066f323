import itertools

import pytest

from catchmap.errors import ValidationError
from catchmap.units import Unit, ZoneForm, coerce_radius, convert, to_km, to_meters


@pytest.mark.parametrize("a,b", list(itertools.product(list(Unit), repeat=2)))
def test_convert_is_its_own_inverse(a, b):
    for x in (0.001, 1.5, 42.0, 12345.678):
        assert convert(convert(x, a, b), b, a) == pytest.approx(x, abs=1e-6)


def test_convert_normalizes_through_meters():
    assert to_meters(1, "km") == 1000
    assert to_meters(1, Unit.MILES) == pytest.approx(1609.34)
    assert to_km(1609.34, "meters") == pytest.approx(1.60934)
    assert convert(2, "miles", "km") == pytest.approx(3.21868)


def test_unit_coerce_rejects_unknown():
    assert Unit.coerce(" KM ") is Unit.KM
    with pytest.raises(ValidationError):
        Unit.coerce("furlongs")


@pytest.mark.parametrize("bad", [0, -1, "abc", None, float("nan"), float("inf")])
def test_coerce_radius_rejects_non_positive_or_non_numeric(bad):
    with pytest.raises(ValidationError, match="valid radius"):
        coerce_radius(bad)


def test_zone_form_switch_unit_preserves_quantity():
    form = ZoneForm(radius=1.5, unit=Unit.KM)
    meters = form.switch_unit("meters")
    assert meters.unit is Unit.METERS
    assert meters.radius == pytest.approx(1500)

    back = meters.switch_unit(Unit.KM)
    assert back.radius == pytest.approx(1.5)
