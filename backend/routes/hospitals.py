#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""병원 조회/추천/전문 분야 관련 라우트"""

from flask import request, jsonify

from config import EMERGENCY_TYPES
from models import db
from services.hospital_service import (
    list_hospitals, find_hospital, recommend, resolve_keyword,
    resolve_specialties, hospitals_by_distance
)
from services.realtime import SocketIONotifier
from services.specialty_service import add_hospital_update, reconcile_specialties
from utils.errors import DispatchError
from utils.session import require_actor, error_response


def register_hospitals_routes(app, simulator):
    """병원 라우트 등록 (simulator: CapacitySimulator)"""

    @app.route('/api/hospitals', methods=['GET'])
    def api_list_hospitals():
        """병원 디렉토리 (lat/lng를 주면 거리순)"""
        try:
            hospitals = list_hospitals()
            lat = request.args.get('lat', type=float)
            lng = request.args.get('lng', type=float)
            if lat is not None and lng is not None:
                hospitals = hospitals_by_distance(lat, lng, hospitals)
            for hospital in hospitals:
                hospital["resolved_specialties"] = resolve_specialties(hospital)
            return jsonify({"hospitals": hospitals, "count": len(hospitals)}), 200
        except Exception as e:
            db.session.rollback()
            print(f"❌ 병원 목록 조회 오류: {e}")
            return jsonify({"error": "병원 목록 조회 중 오류가 발생했습니다."}), 500

    @app.route('/api/hospitals/emergency-types', methods=['GET'])
    def api_emergency_types():
        """응급 유형 목록 (id/label/keyword)"""
        return jsonify({"emergency_types": EMERGENCY_TYPES}), 200

    @app.route('/api/hospitals/recommend', methods=['POST', 'OPTIONS'])
    def api_recommend_hospital():
        """환자 위치 + 응급 유형으로 병원 추천 (best / nearest)"""
        if request.method == 'OPTIONS':
            return '', 200

        try:
            data = request.get_json(silent=True)
            if not data:
                return jsonify({"error": "요청 데이터가 없습니다."}), 400
            try:
                lat = float(data.get('lat'))
                lng = float(data.get('lng'))
            except (TypeError, ValueError):
                return jsonify({"error": "lat와 lng 파라미터가 필요합니다."}), 400

            # 응급 유형(id/라벨) 또는 직접 입력한 키워드
            keyword = data.get('medical_keyword') or resolve_keyword(data.get('emergency_type'))
            result = recommend(lat, lng, keyword, list_hospitals())
            result["medical_keyword"] = keyword
            return jsonify(result), 200
        except Exception as e:
            db.session.rollback()
            print(f"❌ 병원 추천 오류: {e}")
            return jsonify({"error": "병원 추천 중 오류가 발생했습니다."}), 500

    @app.route('/api/hospitals/<hospital_id>/updates', methods=['POST', 'OPTIONS'])
    def api_add_hospital_update(hospital_id):
        """병원 변경 기록 추가 후 해당 병원 전문 분야 재계산"""
        if request.method == 'OPTIONS':
            return '', 200

        try:
            actor = require_actor()
            if not actor.is_admin and not (actor.role == 'hospital' and actor.hospital_id == hospital_id):
                return jsonify({"error": "본인 병원의 정보만 등록할 수 있습니다."}), 403

            data = request.get_json(silent=True)
            if not data:
                return jsonify({"error": "요청 데이터가 없습니다."}), 400

            notifier = SocketIONotifier()
            update = add_hospital_update(
                hospital_id, data.get('update_type'), data.get('update_data'), notifier=notifier
            )
            changed = reconcile_specialties([hospital_id], notifier=notifier)
            return jsonify({
                "update": update.to_dict(),
                "specialties_changed": hospital_id in changed,
                "hospital": find_hospital(hospital_id),
            }), 201
        except DispatchError as e:
            db.session.rollback()
            return error_response(e, "병원 정보 등록")
        except Exception as e:
            db.session.rollback()
            print(f"❌ 병원 정보 등록 오류: {e}")
            return jsonify({"error": "병원 정보 등록 중 오류가 발생했습니다."}), 500

    @app.route('/api/hospitals/reconcile-specialties', methods=['POST', 'OPTIONS'])
    def api_reconcile_specialties():
        """전체 병원 전문 분야 재계산 (관리자)"""
        if request.method == 'OPTIONS':
            return '', 200

        try:
            actor = require_actor()
            if not actor.is_admin:
                return jsonify({"error": "관리자만 실행할 수 있습니다."}), 403

            data = request.get_json(silent=True) or {}
            changed = reconcile_specialties(data.get('hospital_ids'), notifier=SocketIONotifier())
            return jsonify({"changed": changed, "count": len(changed)}), 200
        except DispatchError as e:
            db.session.rollback()
            return error_response(e, "전문 분야 재계산")
        except Exception as e:
            db.session.rollback()
            print(f"❌ 전문 분야 재계산 오류: {e}")
            return jsonify({"error": "전문 분야 재계산 중 오류가 발생했습니다."}), 500

    @app.route('/api/hospitals/capacity', methods=['GET'])
    def api_all_capacities():
        """병원 디렉토리 전체 수용 능력 (처음 조회하는 병원은 초기화)"""
        try:
            capacities = {}
            for hospital in list_hospitals():
                counters = simulator.get_capacity(hospital["id"], hospital["name"])
                capacities[hospital["id"]] = dict(counters.to_dict(), hospital_name=hospital["name"])
            return jsonify({"capacities": capacities, "count": len(capacities)}), 200
        except Exception as e:
            db.session.rollback()
            print(f"❌ 수용 능력 조회 오류: {e}")
            return jsonify({"error": "수용 능력 조회 중 오류가 발생했습니다."}), 500

    @app.route('/api/hospitals/<hospital_id>/capacity', methods=['GET'])
    def api_hospital_capacity(hospital_id):
        """병원 하나의 수용 능력"""
        hospital = find_hospital(hospital_id)
        if hospital is None:
            return jsonify({"error": "병원을 찾을 수 없습니다."}), 404
        counters = simulator.get_capacity(hospital_id, hospital["name"])
        return jsonify(dict(counters.to_dict(), hospital_id=hospital_id, hospital_name=hospital["name"])), 200
