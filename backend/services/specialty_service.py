#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""병원 전문 분야 추론 및 재계산 작업"""

import json
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from config import (
    SPECIALTY_KEYWORDS, SPECIALTY_MIN_SCORE, SPECIALTY_TEXT_POINTS,
    SPECIALTY_UPDATE_POINTS, SPECIALTY_UPDATE_WINDOW_DAYS, HOSPITAL_UPDATE_TYPES
)
from models import db, Hospital, HospitalUpdate
from utils.errors import ValidationError, NotFoundError


def _update_fields(update: Any):
    """HospitalUpdate 모델 또는 dict에서 (유형, 데이터) 추출"""
    if isinstance(update, dict):
        return update.get("update_type"), update.get("update_data")
    return update.update_type, update.update_data


def infer_specialties(hospital_text: Optional[str], updates: Iterable[Any]) -> Dict[str, List[str]]:
    """
    병원명/주소와 최근 변경 기록에서 전문 분야 추론

    Args:
        hospital_text: 병원명 + 주소
        updates: HospitalUpdate 목록 (모델 또는 dict)

    Returns:
        {"specialties": [...], "evidence": [...]}
    """
    text = (hospital_text or "").lower()
    # 변경 기록은 직렬화해서 키워드 검색
    update_texts = []
    for update in updates or []:
        update_type, update_data = _update_fields(update)
        serialized = json.dumps(update_data, sort_keys=True, ensure_ascii=False, default=str).lower()
        update_texts.append((update_type, serialized))

    specialties = []
    evidence = []
    for specialty, keywords in SPECIALTY_KEYWORDS.items():
        score = 0
        matched = []

        for keyword in keywords:
            if keyword in text:
                score += SPECIALTY_TEXT_POINTS
                matched.append(keyword)

        for update_type, serialized in update_texts:
            for keyword in keywords:
                if keyword in serialized:
                    score += SPECIALTY_UPDATE_POINTS
                    matched.append(f"{update_type}: {keyword}")

        if score >= SPECIALTY_MIN_SCORE:
            specialties.append(specialty)
            evidence.append(f"{specialty}: {', '.join(matched)}")

    return {"specialties": specialties, "evidence": evidence}


def add_hospital_update(hospital_id: str, update_type: str, update_data: Any, notifier=None, now_fn: Optional[Callable[[], datetime]] = None) -> HospitalUpdate:
    """병원 변경 기록 추가 (추가만 가능, 수정/삭제 없음)"""
    if update_type not in HOSPITAL_UPDATE_TYPES:
        raise ValidationError(f"update_type은 {', '.join(HOSPITAL_UPDATE_TYPES)} 중 하나여야 합니다.")
    if update_data is None:
        raise ValidationError("update_data가 필요합니다.")
    if db.session.get(Hospital, hospital_id) is None:
        raise NotFoundError("병원을 찾을 수 없습니다.")

    update = HospitalUpdate(
        hospital_id=hospital_id,
        update_type=update_type,
        update_data=update_data,
        created_at=now_fn() if now_fn else datetime.now(),
    )
    db.session.add(update)
    db.session.commit()

    if notifier is not None:
        notifier.publish('hospital_updates', 'INSERT', new=update.to_dict())
    return update


def reconcile_specialties(hospital_ids: Optional[List[str]] = None, notifier=None, now_fn: Optional[Callable[[], datetime]] = None) -> List[str]:
    """
    전문 분야 재계산 작업

    최근 변경 기록(기본 30일)으로 전문 분야를 다시 추론하고,
    결과가 달라진 병원만 저장한다. 여러 번 실행해도 결과는 같다.

    Returns:
        전문 분야가 바뀐 병원 ID 목록
    """
    now = now_fn() if now_fn else datetime.now()
    since = now - timedelta(days=SPECIALTY_UPDATE_WINDOW_DAYS)

    query = Hospital.query
    if hospital_ids is not None:
        query = query.filter(Hospital.id.in_(hospital_ids))
    hospitals = query.all()
    if not hospitals:
        return []

    recent = HospitalUpdate.query.filter(
        HospitalUpdate.hospital_id.in_([h.id for h in hospitals]),
        HospitalUpdate.created_at >= since,
    ).order_by(HospitalUpdate.created_at.desc()).all()

    by_hospital: Dict[str, List[HospitalUpdate]] = {}
    for update in recent:
        by_hospital.setdefault(update.hospital_id, []).append(update)

    changed = []
    for hospital in hospitals:
        hospital_text = f"{hospital.name} {hospital.address or ''}"
        result = infer_specialties(hospital_text, by_hospital.get(hospital.id, []))
        if sorted(result["specialties"]) != sorted(hospital.specialties or []):
            hospital.specialties = result["specialties"]
            hospital.last_updated_specialties = now
            changed.append(hospital.id)

    if changed:
        db.session.commit()
        print(f"✅ 전문 분야 갱신: {len(changed)}개 병원")
        if notifier is not None:
            for hospital in hospitals:
                if hospital.id in changed:
                    notifier.publish('hospitals', 'UPDATE', new=hospital.to_dict())
    return changed
