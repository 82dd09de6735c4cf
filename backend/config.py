#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Backend 설정 파일
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# .env 파일 로드 (상위 디렉토리에서 찾기)
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(dotenv_path=env_path)


def _env_float(name: str, default: float) -> float:
    """환경변수를 float로 읽기 (없거나 잘못된 값이면 기본값)"""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        print(f"⚠️  {name} 값이 숫자가 아닙니다: {raw!r} (기본값 {default} 사용)")
        return default


# 외부 API URL (키 불필요)
OSRM_BASE_URL = os.getenv("OSRM_BASE_URL", "https://router.project-osrm.org")
NOMINATIM_USER_AGENT = os.getenv("NOMINATIM_USER_AGENT", "ambulance-dispatch-backend")
NOMINATIM_TIMEOUT = _env_float("NOMINATIM_TIMEOUT", 10)

# 병원 수용 능력 시뮬레이션 주기 (초)
CAPACITY_TICK_SECONDS = _env_float("CAPACITY_TICK_SECONDS", 90)

# 전문 분야 추론 설정
SPECIALTY_MIN_SCORE = int(_env_float("SPECIALTY_MIN_SCORE", 2))
SPECIALTY_TEXT_POINTS = int(_env_float("SPECIALTY_TEXT_POINTS", 2))
SPECIALTY_UPDATE_POINTS = int(_env_float("SPECIALTY_UPDATE_POINTS", 3))
SPECIALTY_UPDATE_WINDOW_DAYS = int(_env_float("SPECIALTY_UPDATE_WINDOW_DAYS", 30))

# 병원 추천 점수 가중치
RECOMMEND_WEIGHTS = {
    "exact_match": _env_float("RECOMMEND_EXACT_MATCH", 100),
    "keyword_text": _env_float("RECOMMEND_KEYWORD_TEXT", 20),
    "trauma_bonus": _env_float("RECOMMEND_TRAUMA_BONUS", 10),
    "distance_ceiling_km": _env_float("RECOMMEND_DISTANCE_CEILING_KM", 50),
}

# 전문 분야별 키워드 (소문자)
SPECIALTY_KEYWORDS = {
    "Cardiac": ["cardiology", "heart", "cardiac", "cath lab", "cardiovascular"],
    "Oncology": ["cancer", "oncology", "chemotherapy", "radiation", "tumor"],
    "Neuro": ["neurology", "stroke", "brain", "neurological", "neuro"],
    "Trauma": ["trauma", "emergency", "accident", "surgery", "icu"],
    "Maternity": ["maternity", "obstetrics", "gynecology", "neonatal", "delivery"],
    "Orthopedics": ["orthopedic", "bone", "joint", "fracture", "spine"],
    "Pediatric": ["pediatric", "children", "nicu", "child", "infant"],
    "Respiratory": ["pulmonary", "respiratory", "lung", "breathing", "ventilator"],
}

# 병원명 기반 기본 전문 분야 (저장된 전문 분야가 없을 때)
NAME_SPECIALTY_FALLBACKS = [
    (("pgimer", "aiims"), ["Cardiac", "Neuro", "Trauma", "Oncology", "Pediatric"]),
    (("fortis", "max", "apollo"), ["Cardiac", "Trauma", "Orthopedics", "Maternity"]),
    (("gmch", "sms"), ["Trauma", "Maternity", "Pediatric"]),
]
DEFAULT_SPECIALTIES = ["Trauma", "Cardiac"]

# 응급 유형 → 의료 키워드
EMERGENCY_TYPES = [
    {"id": "heart-attack", "label": "Heart Attack", "keyword": "Cardiac"},
    {"id": "accident", "label": "Accident / Trauma", "keyword": "Trauma"},
    {"id": "stroke", "label": "Stroke", "keyword": "Neuro"},
    {"id": "pregnancy", "label": "Pregnancy / Delivery", "keyword": "Maternity"},
    {"id": "burns", "label": "Burns", "keyword": "Burns"},
    {"id": "respiratory", "label": "Respiratory Emergency", "keyword": "Respiratory"},
    {"id": "pediatric", "label": "Pediatric Emergency", "keyword": "Pediatric"},
    {"id": "general", "label": "General Emergency", "keyword": "General"},
]

HOSPITAL_UPDATE_TYPES = ("department", "equipment", "specialist", "capacity", "accreditation")

# 기본 병원 목록 (실시간 디렉토리에 없는 병원은 이 목록에서 보충)
DEFAULT_HOSPITALS = [
    # Chandigarh
    {"id": "00000000-0000-0000-0000-000000000001", "name": "PGIMER Chandigarh", "lat": 30.7649, "lng": 76.7757},
    {"id": "00000000-0000-0000-0000-000000000002", "name": "GMCH Sector 32", "lat": 30.7422, "lng": 76.7676},
    {"id": "00000000-0000-0000-0000-000000000003", "name": "Fortis Hospital Mohali", "lat": 30.7133, "lng": 76.6912},
    {"id": "00000000-0000-0000-0000-000000000004", "name": "Max Super Speciality", "lat": 30.7046, "lng": 76.7179},
    {"id": "00000000-0000-0000-0000-000000000005", "name": "Ivy Hospital", "lat": 30.7081, "lng": 76.7104},
    {"id": "00000000-0000-0000-0000-000000000006", "name": "Alchemist Hospital", "lat": 30.7254, "lng": 76.7408},
    # Delhi
    {"id": "00000000-0000-0000-0000-000000000020", "name": "AIIMS Delhi", "lat": 28.5672, "lng": 77.2100},
    {"id": "00000000-0000-0000-0000-000000000021", "name": "Safdarjung Hospital", "lat": 28.5738, "lng": 77.2088},
    {"id": "00000000-0000-0000-0000-000000000022", "name": "Ram Manohar Lohia Hospital", "lat": 28.6358, "lng": 77.2244},
    {"id": "00000000-0000-0000-0000-000000000023", "name": "Sir Ganga Ram Hospital", "lat": 28.6454, "lng": 77.1907},
    {"id": "00000000-0000-0000-0000-000000000024", "name": "Max Saket Delhi", "lat": 28.5245, "lng": 77.2066},
    {"id": "00000000-0000-0000-0000-000000000025", "name": "Fortis Shalimar Bagh", "lat": 28.7196, "lng": 77.1647},
    {"id": "00000000-0000-0000-0000-000000000026", "name": "Apollo Delhi", "lat": 28.5672, "lng": 77.2773},
    {"id": "00000000-0000-0000-0000-000000000027", "name": "BLK Super Speciality", "lat": 28.6507, "lng": 77.2334},
    # Jaipur
    {"id": "00000000-0000-0000-0000-000000000030", "name": "SMS Hospital Jaipur", "lat": 26.9124, "lng": 75.7873},
    {"id": "00000000-0000-0000-0000-000000000031", "name": "Fortis Escorts Jaipur", "lat": 26.8467, "lng": 75.8056},
    {"id": "00000000-0000-0000-0000-000000000032", "name": "Narayana Hospital Jaipur", "lat": 26.8467, "lng": 75.8156},
    {"id": "00000000-0000-0000-0000-000000000033", "name": "Manipal Hospital Jaipur", "lat": 26.9800, "lng": 75.7600},
    {"id": "00000000-0000-0000-0000-000000000034", "name": "Max Hospital Jaipur", "lat": 26.9000, "lng": 75.8000},
    {"id": "00000000-0000-0000-0000-000000000035", "name": "CK Birla Hospital", "lat": 26.9200, "lng": 75.8200},
    {"id": "00000000-0000-0000-0000-000000000036", "name": "Eternal Hospital Jaipur", "lat": 26.8200, "lng": 75.8500},
]

# Flask 서버 설정
FLASK_PORT = int(_env_float("FLASK_PORT", 5001))
FLASK_SECRET_KEY = os.getenv("FLASK_SECRET_KEY", "dev-secret-key-change-in-production")
CORS_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:5174",
    "http://localhost:3000",
    "https://localhost:5173",
    "https://localhost:5174",
]
# 데이터베이스 설정
# - 기본값: backend/instance/site.db (이 파일 기준 상대 경로)
BASE_DIR = Path(__file__).resolve().parent
DEFAULT_DB_PATH = BASE_DIR / "instance" / "site.db"
DATABASE_URI = os.getenv("DATABASE_URI", f"sqlite:///{DEFAULT_DB_PATH}")
