from datetime import datetime, timedelta

import pytest
from freezegun import freeze_time

from models import db, Hospital, HospitalUpdate
from services.specialty_service import infer_specialties, add_hospital_update, reconcile_specialties
from utils.errors import ValidationError, NotFoundError


def test_infer_from_hospital_text():
    result = infer_specialties("City Heart Institute", [])
    assert result["specialties"] == ["Cardiac"]
    assert result["evidence"] == ["Cardiac: heart"]


def test_infer_empty_input():
    assert infer_specialties(None, []) == {"specialties": [], "evidence": []}
    assert infer_specialties("", None) == {"specialties": [], "evidence": []}


def test_infer_from_update_payload():
    updates = [{"update_type": "department", "update_data": {"name": "Oncology Wing"}}]
    result = infer_specialties("Ivy Hospital", updates)
    assert result["specialties"] == ["Oncology"]
    assert result["evidence"] == ["Oncology: department: oncology"]


def test_infer_follows_vocabulary_order():
    result = infer_specialties("Trauma and Heart Centre", [])
    assert result["specialties"] == ["Cardiac", "Trauma"]


def test_infer_is_pure():
    updates = [{"update_type": "equipment", "update_data": {"items": ["Ventilator", "MRI"]}}]
    first = infer_specialties("Ivy Hospital", updates)
    second = infer_specialties("Ivy Hospital", updates)
    assert first == second
    assert first["specialties"] == ["Respiratory"]


def test_add_update_validates(seeded, notifier):
    with pytest.raises(ValidationError):
        add_hospital_update("h-ivy", "gossip", {"x": 1})
    with pytest.raises(ValidationError):
        add_hospital_update("h-ivy", "department", None)
    with pytest.raises(NotFoundError):
        add_hospital_update("missing", "department", {"name": "Cardiology"})
    assert notifier.events == []


def test_add_update_publishes_insert(seeded, notifier):
    update = add_hospital_update("h-ivy", "specialist", {"doctor": "Cardiologist"}, notifier=notifier)
    assert update.id
    assert HospitalUpdate.query.count() == 1
    [event] = notifier.of("hospital_updates")
    assert event["event"] == "INSERT"
    assert event["new"]["hospital_id"] == "h-ivy"


def test_reconcile_uses_recent_window(seeded, notifier):
    with freeze_time("2026-03-01 12:00:00"):
        now = datetime.now()
        db.session.add_all([
            HospitalUpdate(hospital_id="h-ivy", update_type="department",
                           update_data={"name": "Cardiology"}, created_at=now - timedelta(days=40)),
            HospitalUpdate(hospital_id="h-ivy", update_type="equipment",
                           update_data={"item": "ventilator"}, created_at=now - timedelta(days=2)),
        ])
        db.session.commit()

        changed = reconcile_specialties(["h-ivy"], notifier=notifier)

    assert changed == ["h-ivy"]
    hospital = db.session.get(Hospital, "h-ivy")
    assert hospital.specialties == ["Respiratory"]
    assert hospital.last_updated_specialties == datetime(2026, 3, 1, 12, 0, 0)
    assert [e["new"]["id"] for e in notifier.of("hospitals")] == ["h-ivy"]


def test_reconcile_is_idempotent(seeded):
    db.session.add(HospitalUpdate(hospital_id="h-ivy", update_type="department",
                                  update_data={"name": "Pediatric ward"}, created_at=datetime(2026, 2, 27)))
    db.session.commit()

    with freeze_time("2026-03-01"):
        assert reconcile_specialties(["h-ivy"]) == ["h-ivy"]
    stamp = db.session.get(Hospital, "h-ivy").last_updated_specialties

    with freeze_time("2026-03-02"):
        assert reconcile_specialties(["h-ivy"]) == []
    assert db.session.get(Hospital, "h-ivy").last_updated_specialties == stamp


def test_reconcile_unknown_ids_is_noop(seeded):
    assert reconcile_specialties(["nope"]) == []
