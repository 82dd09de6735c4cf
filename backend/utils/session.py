#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
세션 기반 요청자 조회 및 라우트 공통 응답 헬퍼
"""

from typing import Optional

from flask import jsonify, session

from models import db, Operator
from services.realtime import SocketIONotifier
from services.token_service import Actor, TokenService
from utils.errors import DispatchError, AuthorizationError


def current_actor() -> Optional[Actor]:
    """세션의 로그인 정보 → Actor (로그인하지 않았으면 None)"""
    actor_id = session.get('actor_id')
    if not actor_id:
        return None

    operator = db.session.get(Operator, actor_id)
    if operator is None:
        # 삭제된 사용자 세션
        session.clear()
        return None
    return Actor(id=operator.id, role=operator.role, hospital_id=operator.hospital_id)


def require_actor() -> Actor:
    actor = current_actor()
    if actor is None:
        raise AuthorizationError("로그인이 필요합니다.")
    return actor


def token_service() -> TokenService:
    """현재 요청자 기준 TokenService"""
    return TokenService(current_actor(), notifier=SocketIONotifier())


def error_response(error: DispatchError, action: str):
    """
    도메인 예외 → JSON 응답

    외부/저장소 오류는 원문을 노출하지 않고 실패한 동작만 알린다.
    """
    if error.status_code >= 500:
        return jsonify({"error": f"{action} 중 오류가 발생했습니다."}), error.status_code
    return jsonify({"error": str(error)}), error.status_code


def service_failure(service: TokenService, action: str):
    """TokenService가 False/None을 반환했을 때의 응답"""
    if service.last_error is None:
        return jsonify({"error": f"{action}에 실패했습니다."}), 500
    return error_response(service.last_error, action)
