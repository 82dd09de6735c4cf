import random
from types import SimpleNamespace

import pytest

from app import create_app
from models import db, Operator, Ambulance, Hospital
from services.capacity_service import CapacitySimulator, InMemoryCapacityStore
from services.realtime import RecordingNotifier
from services.token_service import Actor, TokenService
from utils.password import hash_password

PASSWORD = "password123"


@pytest.fixture
def simulator():
    return CapacitySimulator(InMemoryCapacityStore(), rng=random.Random(7), interval_seconds=0.01)


@pytest.fixture
def app(simulator):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
    }, simulator=simulator)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def seeded(app):
    """병원 2곳, 구급차 2대, 기사 2명, 병원 계정 1개, 관리자 1명"""
    hashed = hash_password(PASSWORD)

    pgimer = Hospital(id="h-pgimer", name="PGIMER Chandigarh", latitude=30.7649, longitude=76.7757,
                      specialties=["Trauma", "Neuro"])
    ivy = Hospital(id="h-ivy", name="Ivy Hospital", latitude=30.7081, longitude=76.7104, specialties=[])
    db.session.add_all([pgimer, ivy])
    db.session.flush()

    driver = Operator(id="op-driver", email="driver@test.local", password=hashed, role="ambulance")
    other_driver = Operator(id="op-driver2", email="driver2@test.local", password=hashed, role="ambulance")
    desk = Operator(id="op-desk", email="desk@test.local", password=hashed, role="hospital",
                    hospital_id=pgimer.id, organization_name=pgimer.name)
    admin = Operator(id="op-admin", email="admin@test.local", password=hashed, role="admin")
    db.session.add_all([driver, other_driver, desk, admin])
    db.session.flush()

    amb1 = Ambulance(id="amb-1", vehicle_number="CH01-AMB-1001", driver_id=driver.id,
                     current_lat=30.7333, current_lng=76.7794, speed=40)
    amb2 = Ambulance(id="amb-2", vehicle_number="CH01-AMB-1002", driver_id=other_driver.id,
                     current_lat=30.7046, current_lng=76.7179)
    db.session.add_all([amb1, amb2])
    db.session.commit()

    return SimpleNamespace(
        pgimer=pgimer.to_dict(),
        ivy=ivy.to_dict(),
        driver=Actor(id=driver.id, role="ambulance"),
        other_driver=Actor(id=other_driver.id, role="ambulance"),
        desk=Actor(id=desk.id, role="hospital", hospital_id=pgimer.id),
        admin=Actor(id=admin.id, role="admin"),
    )


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def services(seeded, notifier):
    """역할별 TokenService (같은 notifier 공유)"""
    return SimpleNamespace(
        driver=TokenService(seeded.driver, notifier=notifier),
        other_driver=TokenService(seeded.other_driver, notifier=notifier),
        desk=TokenService(seeded.desk, notifier=notifier),
        admin=TokenService(seeded.admin, notifier=notifier),
    )


def make_leg(start, end, distance=1000.0, duration=120.0, kind="fastest"):
    return {
        "coordinates": [list(start), list(end)],
        "distance_meters": distance,
        "duration_seconds": duration,
        "kind": kind,
    }


def login(client, email, password=PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})
