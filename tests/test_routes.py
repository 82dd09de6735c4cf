import pytest

import routes.tokens as token_routes
from conftest import login
from models import RouteLeg, db, Ambulance
from utils.errors import UpstreamError


def fake_osrm(from_lat, from_lng, to_lat, to_lng, kind="fastest"):
    return RouteLeg(coordinates=((from_lat, from_lng), (to_lat, to_lng)),
                    distance_meters=1000.0, duration_seconds=120.0, kind=kind)


@pytest.fixture
def osrm(monkeypatch):
    monkeypatch.setattr(token_routes, "get_driving_route_osrm", fake_osrm)


def test_health(client):
    assert client.get("/api/health").get_json() == {"status": "ok"}


def test_login_and_me(client, seeded):
    assert client.get("/api/auth/me").get_json()["user"] is None

    bad = login(client, "driver@test.local", "wrong-password")
    assert bad.status_code == 401

    resp = login(client, "Driver@Test.local")
    assert resp.status_code == 200
    assert resp.get_json()["role"] == "ambulance"
    assert client.get("/api/auth/me").get_json()["user"]["id"] == "op-driver"

    client.post("/api/auth/logout")
    assert client.get("/api/auth/me").get_json()["user"] is None


def test_login_with_wrong_role(client, seeded):
    resp = client.post("/api/auth/login", json={"email": "driver@test.local", "password": "password123",
                                                "role": "hospital"})
    assert resp.status_code == 403


def test_unauthenticated_create_is_forbidden(client, seeded):
    resp = client.post("/api/tokens", json={"ambulance_id": "amb-1", "pickup_lat": 30.74, "pickup_lng": 76.78})
    assert resp.status_code == 403


def test_dispatch_flow_over_http(app, seeded, osrm):
    driver = app.test_client()
    desk = app.test_client()
    login(driver, "driver@test.local")
    login(desk, "desk@test.local")

    created = driver.post("/api/tokens", json={
        "ambulance_id": "amb-1", "pickup_lat": 30.74, "pickup_lng": 76.78,
        "pickup_address": "Sector 17", "origin_lat": 30.7333, "origin_lng": 76.7794,
    })
    assert created.status_code == 201
    token_id = created.get_json()["id"]

    # 같은 구급차로 두 번째 요청
    again = driver.post("/api/tokens", json={"ambulance_id": "amb-1", "pickup_lat": 30.74, "pickup_lng": 76.78})
    assert again.status_code == 409

    # 경로 배정 전에는 계획 경로 시간이 없음
    assert driver.get(f"/api/tokens/{token_id}/eta").get_json()["planned_duration_seconds"] is None

    pending = desk.get("/api/tokens?status=pending").get_json()
    assert [t["id"] for t in pending["tokens"]] == [token_id]

    assigned = desk.post(f"/api/tokens/{token_id}/assign", json={"hospital_id": "h-pgimer"})
    assert assigned.status_code == 200
    body = assigned.get_json()
    assert body["status"] == "route_selected"
    assert body["route_distance_meters"] == 2000

    assert driver.post(f"/api/tokens/{token_id}/arrived").status_code == 409
    for step in ("start", "arrived", "next-leg"):
        resp = driver.post(f"/api/tokens/{token_id}/{step}")
        assert resp.status_code == 200, resp.get_json()
    assert driver.get(f"/api/tokens/{token_id}").get_json()["status"] == "to_hospital"

    eta = driver.get(f"/api/tokens/{token_id}/eta").get_json()
    assert eta["target"] == "hospital"
    assert eta["eta_seconds"] > 0
    assert eta["planned_duration_seconds"] == 120.0

    fleet = desk.get("/api/ambulances").get_json()["ambulances"]
    assert {a["id"]: a["fleet_status"] for a in fleet}["amb-1"] == "Patient Onboard"

    done = driver.post(f"/api/tokens/{token_id}/complete", json={"ambulance_id": "amb-1"})
    assert done.status_code == 200
    assert done.get_json()["status"] == "completed"
    assert driver.get("/api/tokens/active?ambulance_id=amb-1").get_json()["token"] is None


def test_driver_cannot_assign_and_no_route_is_fetched(client, seeded, monkeypatch):
    calls = []

    def counting(*args, **kwargs):
        calls.append(args)
        return fake_osrm(*args, **kwargs)
    monkeypatch.setattr(token_routes, "get_driving_route_osrm", counting)
    login(client, "driver@test.local")
    token_id = client.post("/api/tokens", json={
        "ambulance_id": "amb-1", "pickup_lat": 30.74, "pickup_lng": 76.78,
    }).get_json()["id"]

    resp = client.post(f"/api/tokens/{token_id}/assign", json={"hospital_id": "h-pgimer"})
    assert resp.status_code == 403
    assert calls == []


def test_unknown_step_is_404(client, seeded):
    login(client, "driver@test.local")
    assert client.post("/api/tokens/any-id/teleport").status_code == 404


def test_hospital_create_aborts_on_route_failure(client, seeded, monkeypatch):
    def broken(*args, **kwargs):
        raise UpstreamError("경로를 찾을 수 없습니다.")
    monkeypatch.setattr(token_routes, "get_driving_route_osrm", broken)
    login(client, "desk@test.local")

    resp = client.post("/api/tokens/hospital", json={
        "ambulance_id": "amb-2", "pickup_lat": 30.74, "pickup_lng": 76.78, "hospital_id": "h-pgimer",
    })
    assert resp.status_code == 502
    assert resp.get_json()["error"] == "병원 응급 배차 중 오류가 발생했습니다."
    assert client.get("/api/tokens").get_json()["count"] == 0


def test_hospital_create(client, seeded, osrm):
    login(client, "desk@test.local")
    resp = client.post("/api/tokens/hospital", json={
        "ambulance_id": "amb-2", "pickup_lat": 30.74, "pickup_lng": 76.78,
        "hospital_id": "h-pgimer", "emergency_type": "heart-attack",
    })
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["status"] == "route_selected"
    assert body["medical_keyword"] == "Cardiac"
    assert body["ambulance_origin_lat"] == 30.7046


def test_driver_cannot_use_hospital_create(client, seeded, osrm):
    login(client, "driver@test.local")
    resp = client.post("/api/tokens/hospital", json={"ambulance_id": "amb-1"})
    assert resp.status_code == 403


def test_decline_and_acknowledge(app, seeded):
    driver = app.test_client()
    desk = app.test_client()
    login(driver, "driver@test.local")
    login(desk, "desk@test.local")
    token_id = driver.post("/api/tokens", json={
        "ambulance_id": "amb-1", "pickup_lat": 30.74, "pickup_lng": 76.78,
    }).get_json()["id"]

    assert desk.post(f"/api/tokens/{token_id}/decline", json={}).status_code == 400
    resp = desk.post(f"/api/tokens/{token_id}/decline", json={"reason": "No beds"})
    assert resp.get_json()["status"] == "declined"

    assert driver.post(f"/api/tokens/{token_id}/acknowledge-decline").status_code == 200
    assert db.session.get(Ambulance, "amb-1").active_token_id is None


def test_release_ambulance(app, seeded):
    driver = app.test_client()
    desk = app.test_client()
    login(driver, "driver@test.local")
    login(desk, "desk@test.local")
    token_id = driver.post("/api/tokens", json={
        "ambulance_id": "amb-1", "pickup_lat": 30.74, "pickup_lng": 76.78,
    }).get_json()["id"]

    assert driver.post("/api/ambulances/amb-1/release").status_code == 403
    assert desk.post("/api/ambulances/amb-1/release").status_code == 200
    assert desk.get(f"/api/tokens/{token_id}").get_json()["status"] == "cancelled"


def test_location_update_derives_direction(client, seeded):
    login(client, "driver@test.local")
    resp = client.post("/api/ambulances/amb-1/location", json={"lat": 30.75, "lng": 76.79, "heading": 180, "speed": 35})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["route_direction"] == "S_N"
    assert body["speed"] == 35

    assert client.post("/api/ambulances/amb-2/location", json={"lat": 30.75, "lng": 76.79}).status_code == 403
    assert client.post("/api/ambulances/amb-1/location", json={"lat": "north", "lng": 76.79}).status_code == 400


def test_recommend_endpoint(client, seeded):
    resp = client.post("/api/hospitals/recommend", json={"lat": 30.7333, "lng": 76.7794, "emergency_type": "stroke"})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["medical_keyword"] == "Neuro"
    assert body["best"]["hospital"]["id"] == "h-pgimer"
    assert body["best"]["reason"] == "Specialized in Neuro"

    assert client.post("/api/hospitals/recommend", json={"lat": "x"}).status_code == 400


def test_hospital_directory(client, seeded):
    body = client.get("/api/hospitals?lat=30.7333&lng=76.7794").get_json()
    distances = [h["distance_meters"] for h in body["hospitals"]]
    assert distances == sorted(distances)
    assert all(h["resolved_specialties"] for h in body["hospitals"])


def test_hospital_update_reconciles_specialties(client, seeded):
    login(client, "desk@test.local")
    assert client.post("/api/hospitals/h-ivy/updates", json={
        "update_type": "department", "update_data": {"name": "Cardiology"},
    }).status_code == 403

    resp = client.post("/api/hospitals/h-pgimer/updates", json={
        "update_type": "department", "update_data": {"name": "Cardiology wing"},
    })
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["specialties_changed"] is True
    assert body["hospital"]["specialties"] == ["Cardiac"]

    bad = client.post("/api/hospitals/h-pgimer/updates", json={"update_type": "gossip", "update_data": {}})
    assert bad.status_code == 400


def test_reconcile_endpoint_is_admin_only(client, seeded):
    login(client, "desk@test.local")
    assert client.post("/api/hospitals/reconcile-specialties").status_code == 403

    client.post("/api/auth/logout")
    login(client, "admin@test.local")
    resp = client.post("/api/hospitals/reconcile-specialties", json={"hospital_ids": ["h-pgimer"]})
    assert resp.status_code == 200
    # "PGIMER Chandigarh"에서는 전문 분야를 추론할 수 없으므로 빈 목록으로 갱신
    assert resp.get_json()["changed"] == ["h-pgimer"]


def test_capacity_endpoints(client, seeded, simulator):
    one = client.get("/api/hospitals/h-ivy/capacity")
    assert one.status_code == 200
    assert one.get_json()["hospital_type"] == "private"
    assert client.get("/api/hospitals/missing/capacity").status_code == 404

    every = client.get("/api/hospitals/capacity").get_json()
    assert "h-ivy" in every["capacities"]
    assert every["count"] == len(simulator.all_capacities())


def test_geo_route(client, monkeypatch):
    monkeypatch.setattr("routes.geo.get_driving_route_osrm", fake_osrm)
    body = client.get("/api/geo/route?origin_lat=30.1&origin_lng=76.1&dest_lat=30.2&dest_lng=76.2").get_json()
    assert body["distance_meters"] == 1000.0
    assert body["eta_text"] == "2 min 0 sec"
    assert client.get("/api/geo/route?origin_lat=30.1").status_code == 400


def test_geo_reverse_upstream_failure(client, monkeypatch):
    def broken(lat, lng):
        raise UpstreamError("Nominatim down")
    monkeypatch.setattr("routes.geo.reverse_geocode", broken)
    resp = client.get("/api/geo/reverse?lat=30.1&lng=76.1")
    assert resp.status_code == 502
    assert "Nominatim" not in resp.get_json()["error"]
