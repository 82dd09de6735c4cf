#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""인증 관련 라우트"""

from flask import request, jsonify, session
from models import db, Operator
from utils.password import verify_password
from utils.session import current_actor


def _operator_payload(operator):
    return {
        "id": operator.id,
        "email": operator.email,
        "full_name": operator.full_name,
        "role": operator.role,
        "organization_name": operator.organization_name,
        "hospital_id": operator.hospital_id,
    }


def register_auth_routes(app):
    """인증 라우트 등록"""

    @app.route('/api/auth/login', methods=['POST', 'OPTIONS'])
    def api_login():
        """구급차 기사 / 병원 / 관리자 로그인"""
        if request.method == 'OPTIONS':
            return '', 200

        try:
            data = request.get_json(silent=True) or {}
            email = (data.get('email') or '').strip().lower()
            password = data.get('password')

            if not email or not password:
                return jsonify({"error": "email과 password가 필요합니다."}), 400

            # DB에서 사용자 조회
            operator = Operator.query.filter_by(email=email).first()
            if not operator or not verify_password(password, operator.password):
                return jsonify({"error": "이메일 또는 비밀번호가 일치하지 않습니다."}), 401

            # 요청한 역할과 다르면 거부 (역할별 로그인 화면)
            role = data.get('role')
            if role and role != operator.role:
                return jsonify({"error": f"{role} 계정이 아닙니다."}), 403

            # 세션에 로그인 정보 저장
            session.clear()
            session['actor_id'] = operator.id
            session['role'] = operator.role

            payload = _operator_payload(operator)
            payload["message"] = "로그인 성공"
            return jsonify(payload), 200

        except Exception as e:
            db.session.rollback()
            import traceback
            error_detail = traceback.format_exc()
            print(f"로그인 오류: {error_detail}")
            return jsonify({"error": "로그인 중 오류가 발생했습니다."}), 500

    @app.route('/api/auth/logout', methods=['POST', 'OPTIONS'])
    def api_logout():
        """로그아웃"""
        if request.method == 'OPTIONS':
            return '', 200

        session.clear()
        return jsonify({"message": "로그아웃되었습니다."}), 200

    @app.route('/api/auth/me', methods=['GET'])
    def api_get_current_user():
        """현재 로그인한 사용자 정보 조회"""
        actor = current_actor()
        if actor is None:
            # 로그인되지 않은 경우에도 200을 반환하되, user 정보는 null
            return jsonify({
                "user": None,
                "error": "로그인이 필요합니다."
            }), 200

        operator = db.session.get(Operator, actor.id)
        return jsonify({"user": _operator_payload(operator)}), 200
