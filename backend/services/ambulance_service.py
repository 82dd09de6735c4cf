#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""구급차 위치/상태 관련 비즈니스 로직"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from models import db, Ambulance, EmergencyToken, ACTIVE_TOKEN_STATUSES
from utils.errors import ValidationError, AuthorizationError, NotFoundError
from utils.geo import get_route_direction

FLEET_AVAILABLE = "Available"
FLEET_DISPATCHED = "Dispatched"
FLEET_EN_ROUTE = "En Route To Patient"
FLEET_ONBOARD = "Patient Onboard"

# 토큰 상태 → 관제 화면 상태
_FLEET_BY_TOKEN_STATUS = {
    "pending": FLEET_DISPATCHED,
    "assigned": FLEET_DISPATCHED,
    "route_selected": FLEET_DISPATCHED,
    "in_progress": FLEET_EN_ROUTE,
    "at_patient": FLEET_ONBOARD,
    "to_hospital": FLEET_ONBOARD,
}


def fleet_status(ambulance: Dict[str, Any], token: Optional[Dict[str, Any]] = None) -> str:
    """구급차 + 진행 중 토큰 → Available / Dispatched / En Route To Patient / Patient Onboard"""
    if token and token.get("status") in _FLEET_BY_TOKEN_STATUS:
        return _FLEET_BY_TOKEN_STATUS[token["status"]]
    if ambulance.get("emergency_status") in ("active", "responding"):
        return FLEET_DISPATCHED
    return FLEET_AVAILABLE


def list_fleet(driver_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """구급차 목록 + 관제 상태 (driver_id를 주면 해당 기사의 구급차만)"""
    query = Ambulance.query
    if driver_id:
        query = query.filter(Ambulance.driver_id == driver_id)
    ambulances = query.order_by(Ambulance.vehicle_number).all()

    active_tokens = EmergencyToken.query.filter(
        EmergencyToken.ambulance_id.in_([a.id for a in ambulances]),
        EmergencyToken.status.in_(ACTIVE_TOKEN_STATUSES),
    ).order_by(EmergencyToken.created_at.desc()).all()
    token_by_ambulance = {}
    for token in active_tokens:
        token_by_ambulance.setdefault(token.ambulance_id, token)

    fleet = []
    for ambulance in ambulances:
        data = ambulance.to_dict()
        token = token_by_ambulance.get(ambulance.id)
        data["active_token"] = token.to_dict() if token else None
        data["fleet_status"] = fleet_status(data, data["active_token"])
        fleet.append(data)
    return fleet


def update_location(actor, ambulance_id: str, lat: Any, lng: Any, heading: Any = None, speed: Any = None,
                    notifier=None, now_fn: Optional[Callable[[], datetime]] = None) -> Ambulance:
    """
    구급차 위치 갱신

    진행 방향이 있으면 route_direction도 함께 계산해서 저장한다.
    """
    ambulance = db.session.get(Ambulance, ambulance_id)
    if ambulance is None:
        raise NotFoundError("구급차를 찾을 수 없습니다.")
    if actor is None or (not actor.is_admin and ambulance.driver_id != actor.id):
        raise AuthorizationError("본인이 운행하는 구급차만 위치를 갱신할 수 있습니다.")

    try:
        lat = float(lat)
        lng = float(lng)
        heading = float(heading) if heading is not None else None
        speed = float(speed) if speed is not None else None
    except (TypeError, ValueError):
        raise ValidationError("lat, lng(, heading, speed)는 숫자여야 합니다.")
    if not (-90 <= lat <= 90) or not (-180 <= lng <= 180):
        raise ValidationError("좌표가 범위를 벗어났습니다.")
    if speed is not None and speed < 0:
        raise ValidationError("속도는 음수일 수 없습니다.")

    ambulance.current_lat = lat
    ambulance.current_lng = lng
    if heading is not None:
        ambulance.heading = heading % 360
        ambulance.route_direction = get_route_direction(heading)
    if speed is not None:
        ambulance.speed = speed
    ambulance.last_updated = now_fn() if now_fn else datetime.now()
    db.session.commit()

    if notifier is not None:
        notifier.publish('ambulances', 'UPDATE', new=ambulance.to_dict())
    return ambulance
