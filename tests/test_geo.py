import pytest
import requests
from geopy.exc import GeocoderServiceError

import utils.geo as geo
from models import RouteLeg
from utils.errors import UpstreamError, ValidationError
from utils.geo import (
    calculate_distance, calculate_eta, format_eta, get_route_direction,
    get_driving_route_osrm
)


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code}")

    def json(self):
        return self.payload


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append((url, params))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


@pytest.fixture
def fake_session(monkeypatch):
    def install(response):
        session = FakeSession(response)
        monkeypatch.setattr("utils.http.get_session", lambda: session)
        return session
    return install


def test_distance_is_zero_for_same_point():
    assert calculate_distance(30.7333, 76.7794, 30.7333, 76.7794) == 0


def test_distance_is_symmetric_and_plausible():
    # PGIMER ↔ Ivy Hospital, 약 8km
    d1 = calculate_distance(30.7649, 76.7757, 30.7081, 76.7104)
    d2 = calculate_distance(30.7081, 76.7104, 30.7649, 76.7757)
    assert d1 == pytest.approx(d2)
    assert 8000 < d1 < 9500


def test_distance_one_degree_latitude():
    assert calculate_distance(0, 0, 1, 0) == pytest.approx(111195, rel=1e-3)


def test_eta_zero_speed_means_unknown():
    assert calculate_eta(1000, 0) == 0
    assert calculate_eta(1000, -5) == 0


def test_eta_seconds():
    assert calculate_eta(1000, 60) == pytest.approx(60)


@pytest.mark.parametrize("seconds, text", [
    (0, "Calculating..."),
    (-3, "Calculating..."),
    (45, "45 sec"),
    (125, "2 min 5 sec"),
])
def test_format_eta(seconds, text):
    assert format_eta(seconds) == text


@pytest.mark.parametrize("heading, direction", [
    (0, "N_S"), (44.9, "N_S"), (315, "N_S"), (359, "N_S"),
    (45, "E_W"), (134, "E_W"),
    (135, "S_N"), (224, "S_N"),
    (225, "W_E"), (314, "W_E"),
    (-10, "N_S"), (405, "E_W"),
])
def test_route_direction_sectors(heading, direction):
    assert get_route_direction(heading) == direction


def test_osrm_route_swaps_coordinates(fake_session):
    session = fake_session(FakeResponse({
        "code": "Ok",
        "routes": [{
            "distance": 1234.5,
            "duration": 180.0,
            "geometry": {"coordinates": [[76.7794, 30.7333], [76.7757, 30.7649]]},
        }],
    }))

    leg = get_driving_route_osrm(30.7333, 76.7794, 30.7649, 76.7757, "shortest")

    assert isinstance(leg, RouteLeg)
    assert leg.coordinates == ((30.7333, 76.7794), (30.7649, 76.7757))
    assert leg.distance_meters == 1234.5
    assert leg.kind == "shortest"
    url, params = session.calls[0]
    assert url.endswith("/route/v1/driving/76.7794,30.7333;76.7757,30.7649")
    assert params["geometries"] == "geojson"


def test_osrm_no_route_is_upstream_error(fake_session):
    fake_session(FakeResponse({"code": "NoRoute", "routes": []}))
    with pytest.raises(UpstreamError):
        get_driving_route_osrm(0, 0, 1, 1)


def test_osrm_network_failure_is_upstream_error(fake_session):
    fake_session(requests.exceptions.ConnectionError("down"))
    with pytest.raises(UpstreamError):
        get_driving_route_osrm(0, 0, 1, 1)


def test_osrm_rejects_unknown_route_kind(fake_session):
    session = fake_session(FakeResponse({}))
    with pytest.raises(ValidationError):
        get_driving_route_osrm(0, 0, 1, 1, "scenic")
    assert session.calls == []


class FakeGeocoder:
    def __init__(self, error=None):
        self.error = error

    def reverse(self, point, exactly_one=True):
        if self.error:
            raise self.error
        return type("Loc", (), {"address": "Sector 17, Chandigarh"})()

    def geocode(self, query, exactly_one=False, limit=5):
        if self.error:
            raise self.error
        return [type("Loc", (), {"address": query, "latitude": 30.74, "longitude": 76.78})()]


def test_reverse_geocode(monkeypatch):
    monkeypatch.setattr(geo, "get_geocoder", lambda: FakeGeocoder())
    assert geo.reverse_geocode(30.74, 76.78) == "Sector 17, Chandigarh"


def test_geocode_failure_is_upstream_error(monkeypatch):
    monkeypatch.setattr(geo, "get_geocoder", lambda: FakeGeocoder(GeocoderServiceError("503")))
    with pytest.raises(UpstreamError):
        geo.geocode("Sector 17")
