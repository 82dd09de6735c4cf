import secrets
import uuid
from datetime import datetime

from flask_sqlalchemy import SQLAlchemy

from .records import RouteLeg, CapacityCounters

# SQLAlchemy 객체 생성 (Flask 앱은 app.py에서 초기화)
# app.py에서 db.init_app(app)로 연결됨
db = SQLAlchemy()

ACTIVE_TOKEN_STATUSES = ('pending', 'assigned', 'route_selected', 'in_progress', 'at_patient', 'to_hospital')
TERMINAL_TOKEN_STATUSES = ('completed', 'cancelled', 'declined')
TOKEN_STATUSES = ACTIVE_TOKEN_STATUSES + TERMINAL_TOKEN_STATUSES


def _new_id() -> str:
    return str(uuid.uuid4())


def _new_token_code() -> str:
    return secrets.token_hex(4)


def _iso(value):
    return value.isoformat() if value else None


#### 사용자 (구급차 기사 / 병원 / 관리자)
class Operator(db.Model):
    __tablename__ = 'operator'

    # 컬럼 정의
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password = db.Column(db.String(255), nullable=False) # 해시 저장
    full_name = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(20), nullable=False) # 'ambulance', 'hospital', 'admin'
    organization_name = db.Column(db.String(255), nullable=True)
    hospital_id = db.Column(db.String(36), db.ForeignKey('hospital.id'), nullable=True) # 병원 사용자만
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)

    def __repr__(self):
        return f"Operator('{self.email}', '{self.role}')"


#### 구급차 정보
class Ambulance(db.Model):
    __tablename__ = 'ambulance'

    # 컬럼 정의
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    vehicle_number = db.Column(db.String(50), unique=True, nullable=False)
    driver_id = db.Column(db.String(36), db.ForeignKey('operator.id'), nullable=True)
    current_lat = db.Column(db.Float, nullable=True)
    current_lng = db.Column(db.Float, nullable=True)
    heading = db.Column(db.Float, nullable=False, default=0)
    speed = db.Column(db.Float, nullable=False, default=0) # km/h
    emergency_status = db.Column(db.String(20), nullable=False, default='inactive') # 'inactive', 'active', 'responding'
    route_direction = db.Column(db.String(3), nullable=True) # 'N_S', 'S_N', 'E_W', 'W_E'
    destination_lat = db.Column(db.Float, nullable=True)
    destination_lng = db.Column(db.Float, nullable=True)
    destination_name = db.Column(db.String(255), nullable=True)
    vehicle_health = db.Column(db.JSON, nullable=True)
    # 현재 진행 중인 토큰 (구급차 1대당 최대 1개)
    active_token_id = db.Column(db.String(36), nullable=True)
    last_updated = db.Column(db.DateTime, nullable=False, default=datetime.now)

    driver = db.relationship('Operator', foreign_keys=[driver_id])

    def to_dict(self):
        return {
            "id": self.id,
            "vehicle_number": self.vehicle_number,
            "driver_id": self.driver_id,
            "driver_name": (self.driver.full_name or self.driver.email) if self.driver else None,
            "current_lat": self.current_lat,
            "current_lng": self.current_lng,
            "heading": self.heading,
            "speed": self.speed,
            "emergency_status": self.emergency_status,
            "route_direction": self.route_direction,
            "destination_lat": self.destination_lat,
            "destination_lng": self.destination_lng,
            "destination_name": self.destination_name,
            "battery_percentage": (self.vehicle_health or {}).get("battery_percent"),
            "active_token_id": self.active_token_id,
            "last_updated": _iso(self.last_updated),
        }

    def __repr__(self):
        return f"Ambulance('{self.vehicle_number}', '{self.emergency_status}')"


#### 병원 정보
class Hospital(db.Model):
    __tablename__ = 'hospital'

    # 컬럼 정의
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    specialties = db.Column(db.JSON, nullable=True) # 추론된 전문 분야 목록
    capabilities = db.Column(db.JSON, nullable=True)
    last_updated_specialties = db.Column(db.DateTime, nullable=True)

    # 관계 정의 (이 병원의 모든 HospitalUpdate)
    updates = db.relationship('HospitalUpdate', backref='hospital', lazy='dynamic')

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "lat": self.latitude,
            "lng": self.longitude,
            "specialties": list(self.specialties or []),
            "capabilities": self.capabilities or {},
            "last_updated_specialties": _iso(self.last_updated_specialties),
        }

    def __repr__(self):
        return f"Hospital('{self.name}')"


#### 병원 변경 기록 (추가만 가능)
class HospitalUpdate(db.Model):
    __tablename__ = 'hospital_update'

    # 컬럼 정의
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    hospital_id = db.Column(db.String(36), db.ForeignKey('hospital.id'), nullable=False) # FK
    update_type = db.Column(db.String(20), nullable=False) # 'department', 'equipment', 'specialist', 'capacity', 'accreditation'
    update_data = db.Column(db.JSON, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)

    def to_dict(self):
        return {
            "id": self.id,
            "hospital_id": self.hospital_id,
            "update_type": self.update_type,
            "update_data": self.update_data,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"HospitalUpdate('{self.hospital_id}', '{self.update_type}')"


#### 병원 수용 능력 (시뮬레이터 상태 저장)
class HospitalCapacity(db.Model):
    __tablename__ = 'hospital_capacity'

    hospital_id = db.Column(db.String(36), primary_key=True)
    counters = db.Column(db.JSON, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.now)

    def to_counters(self) -> CapacityCounters:
        return CapacityCounters.from_dict(self.counters)

    def __repr__(self):
        return f"HospitalCapacity('{self.hospital_id}')"


#### 응급 토큰 (환자 이송 1건)
class EmergencyToken(db.Model):
    __tablename__ = 'emergency_token'

    # 컬럼 정의
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    token_code = db.Column(db.String(16), unique=True, nullable=False, default=_new_token_code)
    ambulance_id = db.Column(db.String(36), db.ForeignKey('ambulance.id'), nullable=False, index=True) # FK

    # 토큰 생성 시점의 구급차 위치
    ambulance_origin_lat = db.Column(db.Float, nullable=True)
    ambulance_origin_lng = db.Column(db.Float, nullable=True)

    # 환자 위치
    pickup_lat = db.Column(db.Float, nullable=False)
    pickup_lng = db.Column(db.Float, nullable=False)
    pickup_address = db.Column(db.Text, nullable=True)

    # 배정 병원
    hospital_id = db.Column(db.String(36), nullable=True, index=True)
    hospital_name = db.Column(db.String(255), nullable=True)
    hospital_lat = db.Column(db.Float, nullable=True)
    hospital_lng = db.Column(db.Float, nullable=True)

    # 응급 유형
    emergency_type = db.Column(db.String(100), nullable=True)
    medical_keyword = db.Column(db.String(100), nullable=True)

    # 구간 1: 구급차 → 환자
    route_to_patient = db.Column(db.JSON, nullable=True)
    route_to_patient_distance_meters = db.Column(db.Float, nullable=True)
    route_to_patient_duration_seconds = db.Column(db.Float, nullable=True)

    # 구간 2: 환자 → 병원
    route_to_hospital = db.Column(db.JSON, nullable=True)
    route_to_hospital_distance_meters = db.Column(db.Float, nullable=True)
    route_to_hospital_duration_seconds = db.Column(db.Float, nullable=True)

    # 레거시 필드 (구버전 클라이언트 호환)
    selected_route = db.Column(db.JSON, nullable=True)
    route_type = db.Column(db.String(20), nullable=True)
    route_distance_meters = db.Column(db.Float, nullable=True)
    route_duration_seconds = db.Column(db.Float, nullable=True)

    # 상태
    status = db.Column(db.String(20), nullable=False, default='pending', index=True)
    decline_reason = db.Column(db.Text, nullable=True)

    # 시간 기록
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)
    assigned_at = db.Column(db.DateTime, nullable=True)
    started_at = db.Column(db.DateTime, nullable=True)
    arrived_at_patient_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_TOKEN_STATUSES

    def leg_to_patient(self):
        return RouteLeg.from_dict(self.route_to_patient) if self.route_to_patient else None

    def leg_to_hospital(self):
        return RouteLeg.from_dict(self.route_to_hospital) if self.route_to_hospital else None

    def to_dict(self):
        return {
            "id": self.id,
            "token_code": self.token_code,
            "ambulance_id": self.ambulance_id,
            "ambulance_origin_lat": self.ambulance_origin_lat,
            "ambulance_origin_lng": self.ambulance_origin_lng,
            "pickup_lat": self.pickup_lat,
            "pickup_lng": self.pickup_lng,
            "pickup_address": self.pickup_address,
            "hospital_id": self.hospital_id,
            "hospital_name": self.hospital_name,
            "hospital_lat": self.hospital_lat,
            "hospital_lng": self.hospital_lng,
            "emergency_type": self.emergency_type,
            "medical_keyword": self.medical_keyword,
            "route_to_patient": self.route_to_patient,
            "route_to_patient_distance_meters": self.route_to_patient_distance_meters,
            "route_to_patient_duration_seconds": self.route_to_patient_duration_seconds,
            "route_to_hospital": self.route_to_hospital,
            "route_to_hospital_distance_meters": self.route_to_hospital_distance_meters,
            "route_to_hospital_duration_seconds": self.route_to_hospital_duration_seconds,
            "selected_route": self.selected_route,
            "route_type": self.route_type,
            "route_distance_meters": self.route_distance_meters,
            "route_duration_seconds": self.route_duration_seconds,
            "status": self.status,
            "decline_reason": self.decline_reason,
            "created_at": _iso(self.created_at),
            "assigned_at": _iso(self.assigned_at),
            "started_at": _iso(self.started_at),
            "arrived_at_patient_at": _iso(self.arrived_at_patient_at),
            "completed_at": _iso(self.completed_at),
        }

    def __repr__(self):
        return f"EmergencyToken('{self.token_code}', Status='{self.status}')"
