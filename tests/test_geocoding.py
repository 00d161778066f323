import asyncio
from types import SimpleNamespace

import pytest

pytest.importorskip("geopy")

from geopy.exc import GeocoderTimedOut

from catchmap.errors import NotFoundError, ValidationError
from catchmap.geocoding import NominatimGeocoder, parse_coordinate_text


class FakeNominatim:
    def __init__(self, results=None, error=None):
        self.results = results or {}
        self.error = error
        self.queries = []

    def geocode(self, query, exactly_one=True, country_codes=None):
        self.queries.append((query, country_codes))
        if self.error:
            raise self.error
        return self.results.get(query)

    def reverse(self, point, exactly_one=True):
        if self.error:
            raise self.error
        return SimpleNamespace(address="10 Downing St, London")


def test_parse_coordinate_text():
    assert parse_coordinate_text("51.5074, -0.1278") == (51.5074, -0.1278)
    assert parse_coordinate_text("-33.9,151") == (-33.9, 151.0)
    assert parse_coordinate_text("Westminster, London") is None
    with pytest.raises(ValidationError):
        parse_coordinate_text("95.0, 10.0")


def test_search_uses_client_with_country_codes():
    client = FakeNominatim({"SW1A 2AA": SimpleNamespace(latitude=51.5034, longitude=-0.1276)})
    geocoder = NominatimGeocoder(client=client)

    assert asyncio.run(geocoder.search(" SW1A 2AA ")) == (51.5034, -0.1276)
    assert client.queries == [("SW1A 2AA", "gb")]


def test_search_coordinates_skip_network():
    client = FakeNominatim()
    geocoder = NominatimGeocoder(client=client)
    assert asyncio.run(geocoder.search("51.5, -0.12")) == (51.5, -0.12)
    assert client.queries == []


def test_search_not_found_and_service_errors():
    geocoder = NominatimGeocoder(client=FakeNominatim())
    with pytest.raises(NotFoundError):
        asyncio.run(geocoder.search("Atlantis"))

    failing = NominatimGeocoder(client=FakeNominatim(error=GeocoderTimedOut("slow")))
    with pytest.raises(NotFoundError):
        asyncio.run(failing.search("Atlantis"))
    with pytest.raises(ValidationError):
        asyncio.run(failing.search("   "))


def test_reverse_falls_back_to_coordinates():
    ok = NominatimGeocoder(client=FakeNominatim())
    assert asyncio.run(ok.reverse((51.5034, -0.1276))) == "10 Downing St, London"

    failing = NominatimGeocoder(client=FakeNominatim(error=GeocoderTimedOut("slow")))
    assert asyncio.run(failing.reverse((51.5, -0.12))) == "51.500000, -0.120000"
