#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""구급차 관련 라우트"""

from flask import request, jsonify

from models import db
from services.ambulance_service import list_fleet, update_location
from services.realtime import SocketIONotifier
from utils.errors import DispatchError
from utils.session import current_actor, require_actor, token_service, service_failure, error_response


def register_ambulances_routes(app):
    """구급차 라우트 등록"""

    @app.route('/api/ambulances', methods=['GET'])
    def api_list_ambulances():
        """구급차 목록 + 관제 상태 (구급차 기사는 본인 구급차만)"""
        try:
            actor = require_actor()
            driver_id = actor.id if actor.role == 'ambulance' else None
            fleet = list_fleet(driver_id=driver_id)
            status = request.args.get('fleet_status')
            if status:
                fleet = [a for a in fleet if a["fleet_status"] == status]
            return jsonify({"ambulances": fleet, "count": len(fleet)}), 200
        except DispatchError as e:
            return error_response(e, "구급차 목록 조회")
        except Exception as e:
            db.session.rollback()
            print(f"❌ 구급차 목록 조회 오류: {e}")
            return jsonify({"error": "구급차 목록 조회 중 오류가 발생했습니다."}), 500

    @app.route('/api/ambulances/<ambulance_id>/location', methods=['POST', 'OPTIONS'])
    def api_update_ambulance_location(ambulance_id):
        """구급차 위치 갱신 (route_direction 자동 계산)"""
        if request.method == 'OPTIONS':
            return '', 200

        try:
            data = request.get_json(silent=True)
            if not data:
                return jsonify({"error": "요청 데이터가 없습니다."}), 400

            ambulance = update_location(
                current_actor(), ambulance_id,
                data.get('lat'), data.get('lng'),
                heading=data.get('heading'), speed=data.get('speed'),
                notifier=SocketIONotifier(),
            )
            return jsonify(ambulance.to_dict()), 200
        except DispatchError as e:
            db.session.rollback()
            return error_response(e, "위치 갱신")
        except Exception as e:
            db.session.rollback()
            print(f"❌ 위치 갱신 오류: {e}")
            return jsonify({"error": "위치 갱신 중 오류가 발생했습니다."}), 500

    @app.route('/api/ambulances/<ambulance_id>/release', methods=['POST', 'OPTIONS'])
    def api_release_ambulance(ambulance_id):
        """진행 중 요청을 취소하고 구급차를 대기 상태로 되돌림"""
        if request.method == 'OPTIONS':
            return '', 200

        service = token_service()
        if not service.release_ambulance(ambulance_id):
            return service_failure(service, "구급차 해제")
        return jsonify({"ambulance_id": ambulance_id, "message": "구급차가 해제되었습니다."}), 200
