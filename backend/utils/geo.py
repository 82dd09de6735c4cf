#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""지오 계산 및 경로/지오코딩 유틸리티 함수"""

import math
from typing import Optional, List, Dict, Any

from geopy.exc import GeopyError
from geopy.geocoders import Nominatim

from config import OSRM_BASE_URL, NOMINATIM_USER_AGENT, NOMINATIM_TIMEOUT
from models.records import RouteLeg, ROUTE_KINDS
from utils.errors import UpstreamError, ValidationError
from utils.http import http_get_json

EARTH_RADIUS_M = 6371000  # 지구 반지름 (m)

_geocoder = None


def calculate_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """두 좌표 간 거리 계산 (m, haversine)"""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2)
    # 부동소수 오차로 1을 넘지 않도록
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def calculate_eta(distance_meters: float, speed_kmh: float) -> float:
    """
    예상 도착 시간 (초)

    속도가 0 이하이면 0을 반환한다. 0은 '알 수 없음'이지 '도착'이 아니다.
    """
    if speed_kmh <= 0:
        return 0
    speed_ms = speed_kmh * (1000 / 3600)
    return distance_meters / speed_ms


def format_eta(seconds: float) -> str:
    """ETA 표시 문자열"""
    if seconds <= 0:
        return "Calculating..."
    mins = int(seconds // 60)
    secs = int(seconds % 60)
    if mins < 1:
        return f"{secs} sec"
    return f"{mins} min {secs} sec"


def get_route_direction(heading: float) -> str:
    """진행 방향(도) → N_S / E_W / S_N / W_E"""
    heading = heading % 360  # 음수도 0~360으로 정규화
    if heading >= 315 or heading < 45:
        return "N_S"
    if heading < 135:
        return "E_W"
    if heading < 225:
        return "S_N"
    return "W_E"


def get_driving_route_osrm(from_lat: float, from_lng: float, to_lat: float, to_lng: float, kind: str = "fastest") -> RouteLeg:
    """OSRM 길찾기 - 경로 좌표, 거리(m), 소요 시간(초)"""
    if kind not in ROUTE_KINDS:
        raise ValidationError(f"경로 유형은 {ROUTE_KINDS} 중 하나여야 합니다.")
    url = f"{OSRM_BASE_URL.rstrip('/')}/route/v1/driving/{from_lng},{from_lat};{to_lng},{to_lat}"
    params = {"overview": "full", "geometries": "geojson"}
    data = http_get_json(url, params=params)

    if data.get("code") != "Ok" or not data.get("routes"):
        print(f"⚠️  OSRM 경로 없음: code={data.get('code')}")
        raise UpstreamError("경로를 찾을 수 없습니다.")

    route = data["routes"][0]
    try:
        # GeoJSON은 [lng, lat] 순서
        coords = [[c[1], c[0]] for c in route["geometry"]["coordinates"]]
        return RouteLeg.from_dict({
            "coordinates": coords,
            "distance_meters": route["distance"],
            "duration_seconds": route["duration"],
            "kind": kind,
        })
    except (KeyError, IndexError, TypeError, ValidationError) as e:
        raise UpstreamError(f"OSRM 응답 형식 오류: {e}") from e


def get_geocoder() -> Nominatim:
    """Nominatim 지오코더 (프로세스당 1개)"""
    global _geocoder
    if _geocoder is None:
        _geocoder = Nominatim(user_agent=NOMINATIM_USER_AGENT, timeout=NOMINATIM_TIMEOUT)
    return _geocoder


def reverse_geocode(lat: float, lng: float) -> Optional[str]:
    """좌표 → 주소 변환 (표시용)"""
    try:
        location = get_geocoder().reverse((lat, lng), exactly_one=True)
    except GeopyError as e:
        print(f"Nominatim reverse 오류: {e}")
        raise UpstreamError("주소 조회에 실패했습니다.") from e
    if location is None:
        return None
    return location.address


def geocode(query: str, limit: int = 5) -> List[Dict[str, Any]]:
    """주소/장소 검색 → 좌표 후보 목록"""
    try:
        locations = get_geocoder().geocode(query, exactly_one=False, limit=limit)
    except GeopyError as e:
        print(f"Nominatim search 오류: {e}")
        raise UpstreamError("위치 검색에 실패했습니다.") from e
    return [
        {"address": loc.address, "lat": loc.latitude, "lng": loc.longitude}
        for loc in (locations or [])
    ]
