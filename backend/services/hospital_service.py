#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""병원 관련 비즈니스 로직 서비스"""

from typing import Optional, Dict, Any, List

from config import (
    DEFAULT_HOSPITALS, SPECIALTY_KEYWORDS, NAME_SPECIALTY_FALLBACKS,
    DEFAULT_SPECIALTIES, RECOMMEND_WEIGHTS, EMERGENCY_TYPES
)
from models import Hospital
from utils.geo import calculate_distance


def _seed_payload(seed: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": seed["id"],
        "name": seed["name"],
        "address": seed.get("address"),
        "lat": seed["lat"],
        "lng": seed["lng"],
        "specialties": list(seed.get("specialties") or []),
        "capabilities": {},
        "last_updated_specialties": None,
    }


def list_hospitals() -> List[Dict[str, Any]]:
    """
    병원 디렉토리 조회

    DB 병원이 우선이며, 기본 목록 중 DB에 같은 이름이 없는 병원만 뒤에 붙인다.
    조회만 하고 아무것도 쓰지 않는다.
    """
    live = [h.to_dict() for h in Hospital.query.order_by(Hospital.name).all() if h.name]
    live_names = {h["name"] for h in live}
    seeds = [_seed_payload(s) for s in DEFAULT_HOSPITALS if s["name"] not in live_names]
    return live + seeds


def find_hospital(hospital_id: str) -> Optional[Dict[str, Any]]:
    """디렉토리에서 병원 하나 조회 (DB → 기본 목록 순)"""
    for hospital in list_hospitals():
        if hospital["id"] == hospital_id:
            return hospital
    return None


def resolve_specialties(hospital: Dict[str, Any]) -> List[str]:
    """저장된 전문 분야, 없으면 병원명 기반 기본값 (빈 목록은 반환하지 않음)"""
    specialties = list(hospital.get("specialties") or [])
    if specialties:
        return specialties

    name = (hospital.get("name") or "").lower()
    for patterns, fallback in NAME_SPECIALTY_FALLBACKS:
        if any(p in name for p in patterns):
            return list(fallback)
    return list(DEFAULT_SPECIALTIES)


def resolve_keyword(value: Optional[str]) -> Optional[str]:
    """응급 유형 ID/라벨 → 의료 키워드 (그 외 값은 사용자 지정 키워드로 그대로 사용)"""
    if not value:
        return None
    for emergency_type in EMERGENCY_TYPES:
        if value in (emergency_type["id"], emergency_type["label"]):
            return emergency_type["keyword"]
    return value


def score_hospital(patient_lat: float, patient_lng: float, keyword: Optional[str], hospital: Dict[str, Any], weights: Optional[Dict[str, float]] = None) -> Dict[str, Any]:
    """병원 하나의 매칭 점수 계산"""
    w = dict(RECOMMEND_WEIGHTS)
    if weights:
        w.update(weights)

    distance = calculate_distance(patient_lat, patient_lng, hospital["lat"], hospital["lng"])
    specialties = resolve_specialties(hospital)

    score = 0.0
    reason = ""
    if keyword and keyword in specialties:
        score = w["exact_match"]
        reason = f"Specialized in {keyword}"
    else:
        # 키워드 관련 문구가 병원명/주소에 있으면 가산점
        related = SPECIALTY_KEYWORDS.get(keyword or "", [])
        hospital_text = f"{hospital.get('name') or ''} {hospital.get('address') or ''}".lower()
        for phrase in related:
            if phrase in hospital_text:
                score += w["keyword_text"]
                reason = f"Has {phrase} capabilities"

        # 일반 응급 대응 능력
        if "Trauma" in specialties and keyword != "Trauma":
            score += w["trauma_bonus"]
            reason = reason or "General emergency capabilities"

    # 거리 가산점 (가까울수록 높음, 상한 거리 밖이면 0)
    score += max(0.0, w["distance_ceiling_km"] - distance / 1000)

    return {
        "hospital": hospital,
        "specialties": specialties,
        "match_score": score,
        "distance_meters": distance,
        "reason": reason or "General hospital",
    }


def _located(hospitals: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """좌표를 숫자로 바꿀 수 있는 병원만 (좌표는 float로 정규화)"""
    located = []
    for h in hospitals or []:
        try:
            lat, lng = float(h.get("lat")), float(h.get("lng"))
        except (TypeError, ValueError):
            continue
        located.append(dict(h, lat=lat, lng=lng))
    return located


def recommend(patient_lat: float, patient_lng: float, keyword: Optional[str], hospitals: List[Dict[str, Any]], weights: Optional[Dict[str, float]] = None) -> Dict[str, Optional[Dict[str, Any]]]:
    """
    환자 위치와 의료 키워드로 병원 추천

    Returns:
        {"best": 점수 최고 병원, "nearest": 거리 최단 병원} (병원이 없으면 둘 다 None)
    """
    located = _located(hospitals)
    if not located:
        return {"best": None, "nearest": None}

    matches = [score_hospital(patient_lat, patient_lng, keyword, h, weights) for h in located]

    # 동점이면 입력 순서상 먼저 나온 병원
    best = matches[0]
    nearest = matches[0]
    for match in matches[1:]:
        if match["match_score"] > best["match_score"]:
            best = match
        if match["distance_meters"] < nearest["distance_meters"]:
            nearest = match

    return {"best": best, "nearest": nearest}


def hospitals_by_distance(from_lat: float, from_lng: float, hospitals: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """거리순 병원 목록"""
    with_distance = [
        dict(h, distance_meters=calculate_distance(from_lat, from_lng, h["lat"], h["lng"]))
        for h in hospitals
    ]
    return sorted(with_distance, key=lambda h: h["distance_meters"])
