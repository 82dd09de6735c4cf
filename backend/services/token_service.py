#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
응급 토큰 상태 머신

pending → route_selected → in_progress → at_patient → to_hospital → completed
(pending → declined, 진행 중 어느 상태에서든 → cancelled)

모든 상태 변경은 현재 상태를 조건으로 하는 조건부 UPDATE로 수행한다.
반영된 행이 0건이면 ConflictError로 처리하며, 구급차 쪽 변경은 하지 않는다.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy import func, literal
from sqlalchemy.exc import SQLAlchemyError

from models import (
    db, Ambulance, EmergencyToken, RouteLeg,
    ACTIVE_TOKEN_STATUSES, TOKEN_STATUSES
)
from utils.errors import (
    DispatchError, ValidationError, AuthorizationError,
    NotFoundError, ConflictError, UpstreamError
)

ROLE_AMBULANCE = 'ambulance'
ROLE_HOSPITAL = 'hospital'
ROLE_ADMIN = 'admin'
ROLES = (ROLE_AMBULANCE, ROLE_HOSPITAL, ROLE_ADMIN)

# 동작 → (허용되는 현재 상태, 다음 상태)
TRANSITIONS = {
    'assign_with_routes': (('pending', 'assigned'), 'route_selected'),
    'assign_legacy': (('pending', 'assigned'), 'assigned'),
    'set_route': (('assigned',), 'route_selected'),
    'decline': (('pending',), 'declined'),
    'start_journey': (('route_selected',), 'in_progress'),
    'arrived_at_patient': (('in_progress',), 'at_patient'),
    'start_to_hospital': (('at_patient',), 'to_hospital'),
    'complete': (('to_hospital',), 'completed'),
    'cancel': (ACTIVE_TOKEN_STATUSES, 'cancelled'),
}

# 사용자에게 보여줄 동작 이름
ACTION_LABELS = {
    'create_by_vehicle': '응급 요청 생성',
    'create_by_hospital': '병원 응급 배차',
    'assign_with_routes': '병원 배정',
    'assign_legacy': '병원 배정',
    'set_route': '경로 설정',
    'decline': '응급 요청 거절',
    'start_journey': '출동 시작',
    'arrived_at_patient': '환자 도착 처리',
    'start_to_hospital': '병원 이송 시작',
    'complete': '이송 완료 처리',
    'cancel': '응급 요청 취소',
    'release_ambulance': '구급차 해제',
    'acknowledge_decline': '거절 확인',
}


@dataclass(frozen=True)
class Actor:
    """요청자 (세션에서 구성)"""

    id: str
    role: str
    hospital_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def check_transition(status: str, action: str) -> str:
    """현재 상태에서 동작이 허용되면 다음 상태 반환, 아니면 ConflictError"""
    if action not in TRANSITIONS:
        raise ValidationError(f"알 수 없는 동작입니다: {action}")
    allowed, target = TRANSITIONS[action]
    if status not in allowed:
        raise ConflictError(f"'{status}' 상태에서는 {ACTION_LABELS[action]}을(를) 할 수 없습니다.")
    return target


def _coerce_leg(leg: Union[RouteLeg, Dict[str, Any], None], name: str) -> RouteLeg:
    if isinstance(leg, RouteLeg):
        return leg
    if leg is None:
        raise ValidationError(f"{name} 경로가 필요합니다.")
    return RouteLeg.from_dict(leg)


def _coerce_coord(lat: Any, lng: Any, name: str):
    try:
        lat_f = float(lat)
        lng_f = float(lng)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} 좌표가 필요합니다.")
    if not (-90 <= lat_f <= 90) or not (-180 <= lng_f <= 180):
        raise ValidationError(f"{name} 좌표가 범위를 벗어났습니다.")
    return lat_f, lng_f


def _hospital_fields(hospital: Dict[str, Any]) -> Dict[str, Any]:
    if not hospital or not hospital.get("id") or not hospital.get("name"):
        raise ValidationError("병원 정보(id, name)가 필요합니다.")
    lat, lng = _coerce_coord(hospital.get("lat"), hospital.get("lng"), "병원")
    return {
        "hospital_id": str(hospital["id"]),
        "hospital_name": hospital["name"],
        "hospital_lat": lat,
        "hospital_lng": lng,
    }


def _route_fields(to_patient: RouteLeg, to_hospital: RouteLeg) -> Dict[str, Any]:
    """두 구간 + 레거시 단일 경로 필드"""
    return {
        "route_to_patient": to_patient.to_dict(),
        "route_to_patient_distance_meters": to_patient.distance_meters,
        "route_to_patient_duration_seconds": to_patient.duration_seconds,
        "route_to_hospital": to_hospital.to_dict(),
        "route_to_hospital_distance_meters": to_hospital.distance_meters,
        "route_to_hospital_duration_seconds": to_hospital.duration_seconds,
        # 레거시: 환자까지 경로 + 전체 거리/시간
        "selected_route": to_patient.to_dict(),
        "route_type": to_patient.kind,
        "route_distance_meters": to_patient.distance_meters + to_hospital.distance_meters,
        "route_duration_seconds": to_patient.duration_seconds + to_hospital.duration_seconds,
    }


class TokenService:
    """
    응급 토큰 상태 머신 서비스

    공개 메서드는 예외를 밖으로 던지지 않는다. 실패하면 False/None을 반환하고
    원인은 last_error에 남긴다.
    """

    def __init__(self, actor: Optional[Actor], notifier=None, now_fn: Optional[Callable[[], datetime]] = None):
        self.actor = actor
        self.notifier = notifier
        self.now_fn = now_fn
        self.last_error: Optional[DispatchError] = None

    # ------------------------------------------------------------------
    # 내부 헬퍼
    # ------------------------------------------------------------------
    def _now(self) -> datetime:
        return self.now_fn() if self.now_fn else datetime.now()

    def _run(self, action: str, fn: Callable[[], Any], default: Any = False) -> Any:
        self.last_error = None
        try:
            return fn()
        except DispatchError as e:
            db.session.rollback()
            self.last_error = e
            print(f"⚠️  {ACTION_LABELS.get(action, action)} 실패 [{type(e).__name__}]: {e}")
            return default
        except SQLAlchemyError as e:
            db.session.rollback()
            self.last_error = UpstreamError("저장소 처리 중 오류가 발생했습니다.")
            print(f"❌ {ACTION_LABELS.get(action, action)} 저장소 오류: {e}")
            return default

    def _publish(self, table: str, event: str, row):
        if self.notifier is not None and row is not None:
            self.notifier.publish(table, event, new=row.to_dict())

    def _require_actor(self) -> Actor:
        if self.actor is None:
            raise AuthorizationError("로그인이 필요합니다.")
        if self.actor.role not in ROLES:
            raise AuthorizationError(f"알 수 없는 역할입니다: {self.actor.role}")
        return self.actor

    def _require_role(self, *roles: str) -> Actor:
        actor = self._require_actor()
        if actor.is_admin or actor.role in roles:
            return actor
        raise AuthorizationError("이 작업을 수행할 권한이 없습니다.")

    def _get_token(self, token_id: str) -> EmergencyToken:
        token = db.session.get(EmergencyToken, token_id) if token_id else None
        if token is None:
            raise NotFoundError("응급 토큰을 찾을 수 없습니다.")
        return token

    def _get_ambulance(self, ambulance_id: str) -> Ambulance:
        ambulance = db.session.get(Ambulance, ambulance_id) if ambulance_id else None
        if ambulance is None:
            raise NotFoundError("구급차를 찾을 수 없습니다.")
        return ambulance

    def _operates(self, ambulance: Ambulance) -> bool:
        return self.actor is not None and ambulance.driver_id == self.actor.id

    def _require_vehicle_operator(self, ambulance_id: str) -> Ambulance:
        """구급차 기사 본인 (또는 관리자)"""
        actor = self._require_role(ROLE_AMBULANCE)
        ambulance = self._get_ambulance(ambulance_id)
        if not actor.is_admin and not self._operates(ambulance):
            raise AuthorizationError("본인이 운행하는 구급차만 처리할 수 있습니다.")
        return ambulance

    def _conditional_update(self, token_id: str, action: str, values: Dict[str, Any]) -> str:
        """현재 상태 조건부 UPDATE. 반영 0건이면 NotFound/Conflict"""
        allowed, target = TRANSITIONS[action]
        values = dict(values, status=target)
        result = db.session.execute(
            db.update(EmergencyToken)
            .where(EmergencyToken.id == token_id, EmergencyToken.status.in_(allowed))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.session.rollback()
            token = self._get_token(token_id)
            # 허용 상태가 아니면 여기서 ConflictError
            check_transition(token.status, action)
            raise ConflictError(f"{ACTION_LABELS[action]} 요청이 반영되지 않았습니다.")
        return target

    def _clear_ambulance(self, ambulance_id: str, token_id: Optional[str]) -> Optional[Ambulance]:
        """
        구급차의 active_token_id/emergency_status 초기화

        다른 진행 중 토큰을 가리키고 있으면 건드리지 않는다.
        """
        ambulance = db.session.get(Ambulance, ambulance_id)
        if ambulance is None:
            return None
        observed = ambulance.active_token_id
        if token_id is not None and observed not in (None, token_id):
            other = db.session.get(EmergencyToken, observed)
            if other is not None and other.is_active:
                print(f"⚠️  구급차 {ambulance.vehicle_number}는 다른 진행 중 토큰에 연결되어 있어 초기화하지 않습니다.")
                return None

        condition = (Ambulance.active_token_id.is_(None) if observed is None
                     else Ambulance.active_token_id == observed)
        db.session.execute(
            db.update(Ambulance)
            .where(Ambulance.id == ambulance_id, condition)
            .values(active_token_id=None, emergency_status='inactive', last_updated=self._now())
            .execution_options(synchronize_session=False)
        )
        return ambulance

    def _transition(self, token_id: str, action: str, values: Dict[str, Any], clear_ambulance_id: Optional[str] = None) -> bool:
        target = self._conditional_update(token_id, action, values)
        if clear_ambulance_id is not None:
            self._clear_ambulance(clear_ambulance_id, token_id)
        db.session.commit()

        # 다시 읽어서 실제 반영 여부 확인
        db.session.expire_all()
        token = self._get_token(token_id)
        if token.status != target:
            raise ConflictError(f"{ACTION_LABELS[action]} 요청이 반영되지 않았습니다.")

        self._publish('emergency_tokens', 'UPDATE', token)
        if clear_ambulance_id is not None:
            self._publish('ambulances', 'UPDATE', db.session.get(Ambulance, clear_ambulance_id))
        return True

    def _create(self, ambulance: Ambulance, fields: Dict[str, Any]) -> EmergencyToken:
        """토큰 생성 + 구급차 연결 (한 트랜잭션)"""
        observed = ambulance.active_token_id
        if observed is not None:
            current = db.session.get(EmergencyToken, observed)
            if current is not None and current.is_active:
                raise ConflictError(f"구급차에 이미 진행 중인 응급 요청이 있습니다 ({current.token_code}).")

        now = self._now()
        token = EmergencyToken(ambulance_id=ambulance.id, created_at=now, **fields)
        db.session.add(token)
        db.session.flush()

        # 처음 읽은 active_token_id 값이 그대로일 때만 연결
        condition = (Ambulance.active_token_id.is_(None) if observed is None
                     else Ambulance.active_token_id == observed)
        result = db.session.execute(
            db.update(Ambulance)
            .where(Ambulance.id == ambulance.id, condition)
            .values(active_token_id=token.id, emergency_status='active', last_updated=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConflictError("구급차 상태가 동시에 변경되어 응급 요청을 만들 수 없습니다.")
        db.session.commit()

        db.session.expire_all()
        token = self._get_token(token.id)
        self._publish('emergency_tokens', 'INSERT', token)
        self._publish('ambulances', 'UPDATE', db.session.get(Ambulance, ambulance.id))
        return token

    # ------------------------------------------------------------------
    # 생성
    # ------------------------------------------------------------------
    def create_by_vehicle(self, ambulance_id: str, pickup_lat: float, pickup_lng: float,
                          pickup_address: Optional[str] = None,
                          origin_lat: Optional[float] = None, origin_lng: Optional[float] = None) -> Optional[EmergencyToken]:
        """구급차 기사가 환자 위치로 응급 요청 생성 (pending)"""
        def run():
            ambulance = self._require_vehicle_operator(ambulance_id)
            lat, lng = _coerce_coord(pickup_lat, pickup_lng, "환자 위치")
            origin = (None, None)
            if origin_lat is not None and origin_lng is not None:
                origin = _coerce_coord(origin_lat, origin_lng, "구급차 출발")
            return self._create(ambulance, {
                "pickup_lat": lat,
                "pickup_lng": lng,
                "pickup_address": pickup_address or None,
                "ambulance_origin_lat": origin[0],
                "ambulance_origin_lng": origin[1],
                "status": 'pending',
            })
        return self._run('create_by_vehicle', run, default=None)

    def create_by_hospital(self, ambulance_id: str, ambulance_lat: float, ambulance_lng: float,
                           pickup_lat: float, pickup_lng: float, pickup_address: Optional[str],
                           hospital: Dict[str, Any], route_to_patient, route_to_hospital,
                           emergency_type: Optional[str] = None,
                           medical_keyword: Optional[str] = None) -> Optional[EmergencyToken]:
        """병원이 구급차를 지정해 바로 route_selected 상태로 생성"""
        def run():
            self._require_role(ROLE_HOSPITAL)
            ambulance = self._get_ambulance(ambulance_id)
            origin = _coerce_coord(ambulance_lat, ambulance_lng, "구급차 출발")
            lat, lng = _coerce_coord(pickup_lat, pickup_lng, "환자 위치")
            leg1 = _coerce_leg(route_to_patient, "환자까지")
            leg2 = _coerce_leg(route_to_hospital, "병원까지")

            fields = {
                "pickup_lat": lat,
                "pickup_lng": lng,
                "pickup_address": pickup_address or None,
                "ambulance_origin_lat": origin[0],
                "ambulance_origin_lng": origin[1],
                "emergency_type": emergency_type or None,
                "medical_keyword": medical_keyword or None,
                "status": 'route_selected',
                "assigned_at": self._now(),
            }
            fields.update(_hospital_fields(hospital))
            fields.update(_route_fields(leg1, leg2))
            return self._create(ambulance, fields)
        return self._run('create_by_hospital', run, default=None)

    # ------------------------------------------------------------------
    # 병원 측 동작
    # ------------------------------------------------------------------
    def assign_hospital_with_routes(self, token_id: str, hospital: Dict[str, Any], route_to_patient, route_to_hospital) -> bool:
        """병원 수락: 병원 + 두 구간 경로 첨부, route_selected"""
        def run():
            self._require_role(ROLE_HOSPITAL)
            values = _hospital_fields(hospital)
            values.update(_route_fields(
                _coerce_leg(route_to_patient, "환자까지"),
                _coerce_leg(route_to_hospital, "병원까지"),
            ))
            values["assigned_at"] = func.coalesce(EmergencyToken.assigned_at, literal(self._now(), db.DateTime))
            return self._transition(token_id, 'assign_with_routes', values)
        return self._run('assign_with_routes', run)

    def assign_hospital(self, token_id: str, hospital: Dict[str, Any]) -> bool:
        """레거시: 경로 없이 병원만 배정 (assigned)"""
        def run():
            self._require_role(ROLE_HOSPITAL)
            values = _hospital_fields(hospital)
            values["assigned_at"] = func.coalesce(EmergencyToken.assigned_at, literal(self._now(), db.DateTime))
            return self._transition(token_id, 'assign_legacy', values)
        return self._run('assign_legacy', run)

    def set_route(self, token_id: str, route) -> bool:
        """레거시: 단일 경로 선택 (assigned → route_selected)"""
        def run():
            self._require_role(ROLE_HOSPITAL)
            leg = _coerce_leg(route, "선택")
            return self._transition(token_id, 'set_route', {
                "selected_route": leg.to_dict(),
                "route_type": leg.kind,
                "route_distance_meters": leg.distance_meters,
                "route_duration_seconds": leg.duration_seconds,
            })
        return self._run('set_route', run)

    def decline(self, token_id: str, reason: str) -> bool:
        """
        병원 거절 (declined)

        구급차 상태는 여기서 바꾸지 않는다. 구급차 쪽이 거절을 확인하고
        acknowledge_decline으로 직접 초기화한다.
        """
        def run():
            actor = self._require_role(ROLE_HOSPITAL)
            text = (reason or "").strip()
            if not text:
                raise ValidationError("거절 사유를 입력해야 합니다.")
            values = {"decline_reason": text}
            if actor.hospital_id:
                values["hospital_id"] = actor.hospital_id
            return self._transition(token_id, 'decline', values)
        return self._run('decline', run)

    def release_ambulance(self, ambulance_id: str) -> bool:
        """진행 중 토큰을 강제 취소하고 구급차 상태를 무조건 초기화"""
        def run():
            self._require_role(ROLE_HOSPITAL)
            ambulance = self._get_ambulance(ambulance_id)
            active = EmergencyToken.query.filter(
                EmergencyToken.ambulance_id == ambulance.id,
                EmergencyToken.status.in_(ACTIVE_TOKEN_STATUSES),
            ).all()
            cancelled_ids = [t.id for t in active]
            if cancelled_ids:
                db.session.execute(
                    db.update(EmergencyToken)
                    .where(EmergencyToken.id.in_(cancelled_ids),
                           EmergencyToken.status.in_(ACTIVE_TOKEN_STATUSES))
                    .values(status='cancelled')
                    .execution_options(synchronize_session=False)
                )
            db.session.execute(
                db.update(Ambulance)
                .where(Ambulance.id == ambulance.id)
                .values(active_token_id=None, emergency_status='inactive', last_updated=self._now())
                .execution_options(synchronize_session=False)
            )
            db.session.commit()

            db.session.expire_all()
            for token_id in cancelled_ids:
                self._publish('emergency_tokens', 'UPDATE', db.session.get(EmergencyToken, token_id))
            self._publish('ambulances', 'UPDATE', db.session.get(Ambulance, ambulance_id))
            return True
        return self._run('release_ambulance', run)

    # ------------------------------------------------------------------
    # 구급차 측 동작
    # ------------------------------------------------------------------
    def start_journey(self, token_id: str) -> bool:
        def run():
            token = self._get_token(token_id)
            self._require_vehicle_operator(token.ambulance_id)
            return self._transition(token_id, 'start_journey', {"started_at": self._now()})
        return self._run('start_journey', run)

    def arrived_at_patient(self, token_id: str) -> bool:
        def run():
            token = self._get_token(token_id)
            self._require_vehicle_operator(token.ambulance_id)
            return self._transition(token_id, 'arrived_at_patient', {"arrived_at_patient_at": self._now()})
        return self._run('arrived_at_patient', run)

    def start_to_hospital(self, token_id: str) -> bool:
        def run():
            token = self._get_token(token_id)
            self._require_vehicle_operator(token.ambulance_id)
            return self._transition(token_id, 'start_to_hospital', {})
        return self._run('start_to_hospital', run)

    def complete(self, token_id: str, ambulance_id: str) -> bool:
        """병원 도착 확인 (completed) + 구급차 초기화"""
        def run():
            token = self._get_token(token_id)
            if token.ambulance_id != ambulance_id:
                raise ValidationError("토큰의 구급차와 일치하지 않습니다.")
            self._require_vehicle_operator(ambulance_id)
            return self._transition(token_id, 'complete', {"completed_at": self._now()},
                                    clear_ambulance_id=ambulance_id)
        return self._run('complete', run)

    def cancel(self, token_id: str, ambulance_id: str) -> bool:
        """양측 모두 취소 가능 (cancelled) + 구급차 초기화"""
        def run():
            actor = self._require_actor()
            token = self._get_token(token_id)
            if token.ambulance_id != ambulance_id:
                raise ValidationError("토큰의 구급차와 일치하지 않습니다.")
            if actor.role == ROLE_AMBULANCE:
                self._require_vehicle_operator(ambulance_id)
            return self._transition(token_id, 'cancel', {}, clear_ambulance_id=ambulance_id)
        return self._run('cancel', run)

    def acknowledge_decline(self, token_id: str) -> bool:
        """구급차 쪽에서 거절을 확인하고 자기 구급차 상태를 초기화"""
        def run():
            token = self._get_token(token_id)
            ambulance = self._require_vehicle_operator(token.ambulance_id)
            if token.status != 'declined':
                raise ConflictError("거절된 요청이 아닙니다.")
            result = db.session.execute(
                db.update(Ambulance)
                .where(Ambulance.id == ambulance.id, Ambulance.active_token_id == token.id)
                .values(active_token_id=None, emergency_status='inactive', last_updated=self._now())
                .execution_options(synchronize_session=False)
            )
            db.session.commit()
            if result.rowcount:
                db.session.expire_all()
                self._publish('ambulances', 'UPDATE', db.session.get(Ambulance, ambulance.id))
            return True
        return self._run('acknowledge_decline', run)

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------
    def _visible_query(self):
        actor = self._require_actor()
        query = EmergencyToken.query
        if actor.role == ROLE_AMBULANCE:
            own = db.session.query(Ambulance.id).filter(Ambulance.driver_id == actor.id)
            query = query.filter(EmergencyToken.ambulance_id.in_(own))
        return query

    def list_tokens(self, status: Optional[str] = None, hospital_id: Optional[str] = None,
                    since: Optional[datetime] = None, until: Optional[datetime] = None,
                    limit: int = 100) -> List[EmergencyToken]:
        """최신순 토큰 목록 (구급차 기사는 본인 구급차 토큰만)"""
        def run():
            query = self._visible_query()
            if status:
                statuses = [s for s in status.split(',') if s]
                unknown = [s for s in statuses if s not in TOKEN_STATUSES]
                if unknown:
                    raise ValidationError(f"알 수 없는 상태입니다: {', '.join(unknown)}")
                query = query.filter(EmergencyToken.status.in_(statuses))
            if hospital_id:
                query = query.filter(EmergencyToken.hospital_id == hospital_id)
            if since:
                query = query.filter(EmergencyToken.created_at >= since)
            if until:
                query = query.filter(EmergencyToken.created_at <= until)
            return query.order_by(EmergencyToken.created_at.desc()).limit(limit).all()
        return self._run('list_tokens', run, default=[])

    def get_token(self, token_id: str) -> Optional[EmergencyToken]:
        def run():
            token = self._visible_query().filter(EmergencyToken.id == token_id).first()
            if token is None:
                raise NotFoundError("응급 토큰을 찾을 수 없습니다.")
            return token
        return self._run('get_token', run, default=None)

    def active_token_for(self, ambulance_id: str) -> Optional[EmergencyToken]:
        """구급차의 진행 중 토큰 (없으면 None)"""
        def run():
            return self._visible_query().filter(
                EmergencyToken.ambulance_id == ambulance_id,
                EmergencyToken.status.in_(ACTIVE_TOKEN_STATUSES),
            ).order_by(EmergencyToken.created_at.desc()).first()
        return self._run('active_token_for', run, default=None)
