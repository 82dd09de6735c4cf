#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
저장소 경계에서 검증되는 타입 레코드
JSON 컬럼에 저장되는 경로/수용 능력 데이터를 명시적인 구조로 다룬다.
"""

from dataclasses import dataclass, asdict, field
from typing import Any, Dict, Optional, Tuple

from utils.errors import ValidationError

ROUTE_KINDS = ("fastest", "shortest")


def _as_float(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{name} 값이 숫자가 아닙니다.")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} 값이 숫자가 아닙니다.")


@dataclass(frozen=True)
class RouteLeg:
    """한 구간의 경로 (구급차→환자 또는 환자→병원)"""

    coordinates: Tuple[Tuple[float, float], ...]
    distance_meters: float
    duration_seconds: float
    kind: str = "fastest"

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RouteLeg":
        """
        dict → RouteLeg 변환

        'distance'/'duration'/'type' 키(경로 API 원본 형식)도 허용한다.
        """
        if not isinstance(data, dict):
            raise ValidationError("경로 데이터가 없습니다.")

        raw_coords = data.get("coordinates")
        if not isinstance(raw_coords, (list, tuple)) or len(raw_coords) < 2:
            raise ValidationError("경로 좌표는 2개 이상이어야 합니다.")
        coords = []
        for point in raw_coords:
            if not isinstance(point, (list, tuple)) or len(point) != 2:
                raise ValidationError("경로 좌표 형식이 잘못되었습니다.")
            coords.append((_as_float(point[0], "lat"), _as_float(point[1], "lng")))

        distance = data.get("distance_meters", data.get("distance"))
        duration = data.get("duration_seconds", data.get("duration"))
        distance = _as_float(distance, "distance_meters")
        duration = _as_float(duration, "duration_seconds")
        if distance < 0 or duration < 0:
            raise ValidationError("경로 거리/시간은 음수일 수 없습니다.")

        kind = data.get("kind", data.get("type")) or "fastest"
        if kind not in ROUTE_KINDS:
            raise ValidationError(f"경로 유형은 {ROUTE_KINDS} 중 하나여야 합니다.")

        return cls(coordinates=tuple(coords), distance_meters=distance, duration_seconds=duration, kind=kind)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "coordinates": [list(p) for p in self.coordinates],
            "distance_meters": self.distance_meters,
            "duration_seconds": self.duration_seconds,
            "kind": self.kind,
        }


@dataclass
class CapacityCounters:
    """병원 하나의 병상/ICU/도착 예정 구급차 카운터"""

    total_beds: int
    available_beds: int
    icu_beds: int
    icu_available: int
    occupied_beds: int
    incoming_ambulances: int
    occupancy_percentage: int
    hospital_type: str = field(default="private")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CapacityCounters":
        try:
            counters = cls(
                total_beds=int(data["total_beds"]),
                available_beds=int(data["available_beds"]),
                icu_beds=int(data["icu_beds"]),
                icu_available=int(data["icu_available"]),
                occupied_beds=int(data["occupied_beds"]),
                incoming_ambulances=int(data["incoming_ambulances"]),
                occupancy_percentage=int(data["occupancy_percentage"]),
                hospital_type=data.get("hospital_type") or "private",
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"수용 능력 데이터가 잘못되었습니다: {e}")
        if counters.total_beds <= 0 or counters.icu_beds < 0:
            raise ValidationError("병상 수가 잘못되었습니다.")
        if not (0 <= counters.available_beds <= counters.total_beds):
            raise ValidationError("가용 병상 수가 범위를 벗어났습니다.")
        if not (0 <= counters.icu_available <= counters.icu_beds):
            raise ValidationError("가용 ICU 수가 범위를 벗어났습니다.")
        if counters.incoming_ambulances < 0:
            raise ValidationError("도착 예정 구급차 수는 음수일 수 없습니다.")
        return counters

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
