#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
병원 수용 능력 시뮬레이터

병원별 병상/ICU/도착 예정 구급차 수를 주기적으로 조금씩 변동시킨다.
실제 병원 데이터가 아닌 대시보드용 모의 데이터다.
"""

import random
import threading
from datetime import datetime
from typing import Dict, Optional

from config import CAPACITY_TICK_SECONDS
from models import db, HospitalCapacity, CapacityCounters

# 병원 유형별 (병상 범위, ICU 범위)
BED_RANGES = {
    "government": ((200, 300), (30, 50)),
    "private_super": ((150, 300), (25, 50)),
    "private": ((50, 130), (10, 25)),
}


def classify_hospital_type(hospital_name: Optional[str]) -> str:
    """병원명으로 유형 분류 (government / private_super / private)"""
    name = (hospital_name or "").lower()
    if any(word in name for word in ("government", "civil", "district")):
        return "government"
    if any(word in name for word in ("super", "max", "apollo", "fortis")):
        return "private_super"
    return "private"


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


class InMemoryCapacityStore:
    """프로세스 메모리 저장소 (재시작하면 사라짐)"""

    def __init__(self):
        self.data: Dict[str, dict] = {}

    def load(self) -> Dict[str, CapacityCounters]:
        return {hid: CapacityCounters.from_dict(c) for hid, c in self.data.items()}

    def save(self, capacities: Dict[str, CapacityCounters]):
        self.data = {hid: c.to_dict() for hid, c in capacities.items()}


class SQLCapacityStore:
    """hospital_capacity 테이블 저장소 (재시작 후에도 유지)"""

    def __init__(self, app):
        self.app = app

    def load(self) -> Dict[str, CapacityCounters]:
        with self.app.app_context():
            capacities = {}
            for row in HospitalCapacity.query.all():
                try:
                    capacities[row.hospital_id] = row.to_counters()
                except Exception as e:
                    # 손상된 행은 건너뛰고 다음 조회 때 새로 초기화
                    print(f"⚠️  수용 능력 데이터 무시 ({row.hospital_id}): {e}")
            return capacities

    def save(self, capacities: Dict[str, CapacityCounters]):
        with self.app.app_context():
            try:
                now = datetime.now()
                for hospital_id, counters in capacities.items():
                    row = db.session.get(HospitalCapacity, hospital_id)
                    if row is None:
                        row = HospitalCapacity(hospital_id=hospital_id)
                        db.session.add(row)
                    row.counters = counters.to_dict()
                    row.updated_at = now
                db.session.commit()
            except Exception as e:
                db.session.rollback()
                print(f"❌ 수용 능력 저장 실패: {e}")


class CapacitySimulator:
    """병원 수용 능력 시뮬레이터 (start/stop으로 백그라운드 실행)"""

    def __init__(self, store=None, rng: Optional[random.Random] = None, interval_seconds: float = CAPACITY_TICK_SECONDS):
        self.store = store or InMemoryCapacityStore()
        self.rng = rng or random.Random()
        self.interval_seconds = interval_seconds
        self.capacities: Dict[str, CapacityCounters] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def load(self):
        """저장소에서 이전 상태 복원"""
        loaded = self.store.load()
        with self._lock:
            self.capacities.update(loaded)
        print(f"✅ 병원 수용 능력 {len(loaded)}건 로드")

    def _initialize(self, hospital_name: Optional[str]) -> CapacityCounters:
        hospital_type = classify_hospital_type(hospital_name)
        (bed_low, bed_high), (icu_low, icu_high) = BED_RANGES[hospital_type]
        total_beds = self.rng.randint(bed_low, bed_high)
        icu_beds = self.rng.randint(icu_low, icu_high)

        occupied_beds = int(total_beds * (0.4 + self.rng.random() * 0.4))
        occupied_icu = int(icu_beds * (0.3 + self.rng.random() * 0.5))
        incoming = self.rng.randint(1, 3) if self.rng.random() < 0.3 else 0

        return CapacityCounters(
            total_beds=total_beds,
            available_beds=total_beds - occupied_beds,
            icu_beds=icu_beds,
            icu_available=icu_beds - occupied_icu,
            occupied_beds=occupied_beds,
            incoming_ambulances=incoming,
            occupancy_percentage=round(occupied_beds / total_beds * 100),
            hospital_type=hospital_type,
        )

    def get_capacity(self, hospital_id: str, hospital_name: Optional[str] = None) -> CapacityCounters:
        """병원 수용 능력 조회 (처음 조회 시 초기화 후 저장)"""
        with self._lock:
            counters = self.capacities.get(hospital_id)
            if counters is not None:
                return counters
            counters = self._initialize(hospital_name)
            self.capacities[hospital_id] = counters
            snapshot = dict(self.capacities)
        self.store.save(snapshot)
        return counters

    def all_capacities(self) -> Dict[str, CapacityCounters]:
        with self._lock:
            return dict(self.capacities)

    def _step(self, current: CapacityCounters) -> CapacityCounters:
        available = _clamp(current.available_beds + self.rng.randint(-3, 3), 0, current.total_beds)
        icu_available = _clamp(current.icu_available + self.rng.randint(-1, 1), 0, current.icu_beds)
        incoming = max(0, current.incoming_ambulances + self.rng.randint(-1, 1))
        occupied = current.total_beds - available

        return CapacityCounters(
            total_beds=current.total_beds,
            available_beds=available,
            icu_beds=current.icu_beds,
            icu_available=icu_available,
            occupied_beds=occupied,
            incoming_ambulances=incoming,
            occupancy_percentage=round(occupied / current.total_beds * 100),
            hospital_type=current.hospital_type,
        )

    def tick(self):
        """모든 병원 수용 능력을 한 단계 변동시키고 저장"""
        with self._lock:
            for hospital_id, current in list(self.capacities.items()):
                self.capacities[hospital_id] = self._step(current)
            snapshot = dict(self.capacities)
        self.store.save(snapshot)

    def _run(self):
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.tick()
            except Exception as e:
                print(f"❌ 수용 능력 시뮬레이션 오류: {e}")

    def start(self):
        """저장된 상태를 읽고 백그라운드 시뮬레이션 시작"""
        if self._thread is not None and self._thread.is_alive():
            return
        self.load()
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="capacity-simulator", daemon=True)
        self._thread.start()
        print(f"✅ 수용 능력 시뮬레이터 시작 ({self.interval_seconds}초 간격)")

    def stop(self):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        print("수용 능력 시뮬레이터 중지")
