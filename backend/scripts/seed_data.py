#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
데이터베이스 시드 데이터 생성 스크립트
병원/사용자/구급차 목업 데이터를 데이터베이스에 추가합니다.
"""

import sys
from pathlib import Path

# 프로젝트 루트를 Python 경로에 추가
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from app import create_app
from config import DEFAULT_HOSPITALS
from models import db, Operator, Ambulance, Hospital
from services.specialty_service import reconcile_specialties
from utils.password import hash_password

DEFAULT_PASSWORD = "password123"

OPERATORS = [
    {"email": "admin@dispatch.local", "full_name": "Dispatch Admin", "role": "admin"},
    {"email": "pgimer@dispatch.local", "full_name": "PGIMER Emergency Desk", "role": "hospital",
     "hospital_id": "00000000-0000-0000-0000-000000000001"},
    {"email": "aiims@dispatch.local", "full_name": "AIIMS Emergency Desk", "role": "hospital",
     "hospital_id": "00000000-0000-0000-0000-000000000020"},
    {"email": "driver1@dispatch.local", "full_name": "Driver One", "role": "ambulance"},
    {"email": "driver2@dispatch.local", "full_name": "Driver Two", "role": "ambulance"},
    {"email": "driver3@dispatch.local", "full_name": "Driver Three", "role": "ambulance"},
]

AMBULANCES = [
    {"vehicle_number": "CH01-AMB-1001", "driver": "driver1@dispatch.local", "lat": 30.7333, "lng": 76.7794},
    {"vehicle_number": "CH01-AMB-1002", "driver": "driver2@dispatch.local", "lat": 30.7046, "lng": 76.7179},
    {"vehicle_number": "DL01-AMB-2001", "driver": "driver3@dispatch.local", "lat": 28.6139, "lng": 77.2090},
]


def seed_hospitals():
    """기본 병원 목록 생성"""
    created = 0
    for seed in DEFAULT_HOSPITALS:
        # 이미 존재하는지 확인
        if db.session.get(Hospital, seed["id"]) is not None:
            print(f"⚠️  {seed['name']}는 이미 존재합니다. 건너뜁니다.")
            continue
        db.session.add(Hospital(
            id=seed["id"],
            name=seed["name"],
            latitude=seed["lat"],
            longitude=seed["lng"],
            specialties=[],
            capabilities={},
        ))
        created += 1

    db.session.commit()
    print(f"✅ 총 {created}개의 병원 데이터가 생성되었습니다.")


def seed_operators():
    """관리자/병원/구급차 기사 계정 생성"""
    hashed_password = hash_password(DEFAULT_PASSWORD)
    for data in OPERATORS:
        if Operator.query.filter_by(email=data["email"]).first():
            print(f"⚠️  {data['email']}는 이미 존재합니다. 건너뜁니다.")
            continue

        hospital_id = data.get("hospital_id")
        hospital = db.session.get(Hospital, hospital_id) if hospital_id else None
        db.session.add(Operator(
            email=data["email"],
            password=hashed_password,  # 해시된 비밀번호 저장
            full_name=data["full_name"],
            role=data["role"],
            hospital_id=hospital_id,
            organization_name=hospital.name if hospital else None,
        ))
        print(f"✅ {data['email']} 계정 생성 완료 (역할: {data['role']})")

    db.session.commit()


def seed_ambulances():
    """구급차 생성 (기사 배정)"""
    for data in AMBULANCES:
        if Ambulance.query.filter_by(vehicle_number=data["vehicle_number"]).first():
            print(f"⚠️  {data['vehicle_number']}는 이미 존재합니다. 건너뜁니다.")
            continue

        driver = Operator.query.filter_by(email=data["driver"]).first()
        db.session.add(Ambulance(
            vehicle_number=data["vehicle_number"],
            driver_id=driver.id if driver else None,
            current_lat=data["lat"],
            current_lng=data["lng"],
            vehicle_health={"battery_percent": 100},
        ))
        print(f"✅ {data['vehicle_number']} 구급차 생성 완료")

    db.session.commit()


def main():
    """메인 함수"""
    print("=" * 60)
    print("🌱 데이터베이스 시드 데이터 생성 시작")
    print("=" * 60)

    app = create_app()
    with app.app_context():
        print("\n📦 병원 데이터 생성 중...")
        seed_hospitals()

        print("\n📦 사용자 계정 생성 중...")
        seed_operators()

        print("\n📦 구급차 데이터 생성 중...")
        seed_ambulances()

        print("\n📦 병원 전문 분야 계산 중...")
        changed = reconcile_specialties()
        print(f"✅ {len(changed)}개 병원 전문 분야 갱신")

        print("\n" + "=" * 60)
        print("✅ 시드 데이터 생성 완료!")
        print("=" * 60)
        print("\n💡 참고:")
        print(f"   - 모든 계정 기본 비밀번호: {DEFAULT_PASSWORD}")
        print("   - 비밀번호는 해시되어 저장되었습니다.")
        print("   - 실제 운영 시에는 더 강력한 비밀번호를 사용하세요.")


if __name__ == "__main__":
    main()
