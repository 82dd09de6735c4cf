#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""응급 토큰 관련 라우트"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

from flask import request, jsonify

from models import db, Ambulance
from services.hospital_service import find_hospital, resolve_keyword
from utils.errors import DispatchError, ValidationError, NotFoundError
from utils.geo import calculate_distance, calculate_eta, format_eta, get_driving_route_osrm
from utils.session import current_actor, token_service, service_failure, error_response


def _parse_datetime(value, name):
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{name}은(는) ISO 8601 형식이어야 합니다.")


def _hospital_or_404(hospital_id):
    if not hospital_id:
        raise ValidationError("hospital_id가 필요합니다.")
    hospital = find_hospital(str(hospital_id))
    if hospital is None:
        raise NotFoundError("병원을 찾을 수 없습니다.")
    return hospital


def _fetch_legs(origin_lat, origin_lng, pickup_lat, pickup_lng, hospital, kind):
    """OSRM으로 구급차→환자, 환자→병원 두 구간 동시 조회"""
    with ThreadPoolExecutor(max_workers=2) as executor:
        to_patient = executor.submit(get_driving_route_osrm, origin_lat, origin_lng, pickup_lat, pickup_lng, kind)
        to_hospital = executor.submit(get_driving_route_osrm, pickup_lat, pickup_lng, hospital["lat"], hospital["lng"], kind)
        return to_patient.result(), to_hospital.result()


def register_tokens_routes(app):
    """응급 토큰 라우트 등록"""

    @app.route('/api/tokens', methods=['POST', 'OPTIONS'])
    def api_create_token():
        """구급차 기사 응급 요청 생성 (pending)"""
        if request.method == 'OPTIONS':
            return '', 200

        data = request.get_json(silent=True)
        if not data:
            return jsonify({"error": "요청 데이터가 없습니다."}), 400
        if not data.get('ambulance_id'):
            return jsonify({"error": "ambulance_id가 필요합니다."}), 400

        service = token_service()
        token = service.create_by_vehicle(
            data.get('ambulance_id'),
            data.get('pickup_lat'),
            data.get('pickup_lng'),
            pickup_address=data.get('pickup_address'),
            origin_lat=data.get('origin_lat'),
            origin_lng=data.get('origin_lng'),
        )
        if token is None:
            return service_failure(service, "응급 요청 생성")
        return jsonify(token.to_dict()), 201

    @app.route('/api/tokens/hospital', methods=['POST', 'OPTIONS'])
    def api_create_token_by_hospital():
        """병원이 구급차를 지정해 바로 배차 (route_selected)"""
        if request.method == 'OPTIONS':
            return '', 200

        actor = current_actor()
        if actor is None or actor.role not in ('hospital', 'admin'):
            return jsonify({"error": "병원 계정만 배차할 수 있습니다."}), 403

        try:
            data = request.get_json(silent=True)
            if not data:
                return jsonify({"error": "요청 데이터가 없습니다."}), 400

            ambulance = db.session.get(Ambulance, data.get('ambulance_id') or '')
            if ambulance is None:
                return jsonify({"error": "구급차를 찾을 수 없습니다."}), 404
            origin_lat = data.get('ambulance_lat', ambulance.current_lat)
            origin_lng = data.get('ambulance_lng', ambulance.current_lng)
            if origin_lat is None or origin_lng is None:
                return jsonify({"error": "구급차 현재 위치를 알 수 없습니다."}), 400
            pickup_lat = data.get('pickup_lat')
            pickup_lng = data.get('pickup_lng')
            if pickup_lat is None or pickup_lng is None:
                return jsonify({"error": "pickup_lat와 pickup_lng가 필요합니다."}), 400

            hospital = _hospital_or_404(data.get('hospital_id'))
            # 경로를 못 가져오면 토큰을 만들지 않음
            to_patient, to_hospital = _fetch_legs(
                float(origin_lat), float(origin_lng), float(pickup_lat), float(pickup_lng),
                hospital, data.get('route_kind') or 'fastest'
            )
        except DispatchError as e:
            return error_response(e, "병원 응급 배차")
        except (TypeError, ValueError):
            return jsonify({"error": "좌표는 숫자여야 합니다."}), 400

        emergency_type = data.get('emergency_type')
        service = token_service()
        token = service.create_by_hospital(
            ambulance.id, origin_lat, origin_lng, pickup_lat, pickup_lng,
            data.get('pickup_address'), hospital, to_patient, to_hospital,
            emergency_type=emergency_type,
            medical_keyword=data.get('medical_keyword') or resolve_keyword(emergency_type),
        )
        if token is None:
            return service_failure(service, "병원 응급 배차")
        return jsonify(token.to_dict()), 201

    @app.route('/api/tokens', methods=['GET'])
    def api_list_tokens():
        """응급 토큰 목록 (최신순)"""
        try:
            since = _parse_datetime(request.args.get('since'), 'since')
            until = _parse_datetime(request.args.get('until'), 'until')
            limit = request.args.get('limit', default=100, type=int)
        except DispatchError as e:
            return error_response(e, "응급 요청 목록 조회")

        service = token_service()
        tokens = service.list_tokens(
            status=request.args.get('status'),
            hospital_id=request.args.get('hospital_id'),
            since=since,
            until=until,
            limit=max(1, min(limit, 500)),
        )
        if service.last_error is not None:
            return service_failure(service, "응급 요청 목록 조회")
        return jsonify({"tokens": [t.to_dict() for t in tokens], "count": len(tokens)}), 200

    @app.route('/api/tokens/active', methods=['GET'])
    def api_active_token():
        """구급차의 진행 중 토큰"""
        ambulance_id = request.args.get('ambulance_id')
        if not ambulance_id:
            return jsonify({"error": "ambulance_id 파라미터가 필요합니다."}), 400

        service = token_service()
        token = service.active_token_for(ambulance_id)
        if service.last_error is not None:
            return service_failure(service, "진행 중 요청 조회")
        return jsonify({"token": token.to_dict() if token else None}), 200

    @app.route('/api/tokens/<token_id>', methods=['GET'])
    def api_get_token(token_id):
        """응급 토큰 상세"""
        service = token_service()
        token = service.get_token(token_id)
        if token is None:
            return service_failure(service, "응급 요청 조회")
        return jsonify(token.to_dict()), 200

    @app.route('/api/tokens/<token_id>/assign', methods=['POST', 'OPTIONS'])
    def api_assign_token(token_id):
        """병원 수락: 병원 + 두 구간 경로 첨부"""
        if request.method == 'OPTIONS':
            return '', 200

        actor = current_actor()
        if actor is None or actor.role not in ('hospital', 'admin'):
            return jsonify({"error": "병원 계정만 배정할 수 있습니다."}), 403

        data = request.get_json(silent=True) or {}
        service = token_service()
        try:
            hospital = _hospital_or_404(data.get('hospital_id'))
            route_to_patient = data.get('route_to_patient')
            route_to_hospital = data.get('route_to_hospital')
            if not route_to_patient or not route_to_hospital:
                # 경로가 없으면 서버에서 조회
                token = service.get_token(token_id)
                if token is None:
                    return service_failure(service, "병원 배정")
                origin_lat = token.ambulance_origin_lat
                origin_lng = token.ambulance_origin_lng
                if origin_lat is None or origin_lng is None:
                    ambulance = db.session.get(Ambulance, token.ambulance_id)
                    if ambulance is not None:
                        origin_lat, origin_lng = ambulance.current_lat, ambulance.current_lng
                if origin_lat is None or origin_lng is None:
                    return jsonify({"error": "구급차 위치를 알 수 없어 경로를 계산할 수 없습니다."}), 400
                route_to_patient, route_to_hospital = _fetch_legs(
                    origin_lat, origin_lng, token.pickup_lat, token.pickup_lng,
                    hospital, data.get('route_kind') or 'fastest'
                )
        except DispatchError as e:
            return error_response(e, "병원 배정")

        if not service.assign_hospital_with_routes(token_id, hospital, route_to_patient, route_to_hospital):
            return service_failure(service, "병원 배정")
        return jsonify(service.get_token(token_id).to_dict()), 200

    @app.route('/api/tokens/<token_id>/assign-legacy', methods=['POST', 'OPTIONS'])
    def api_assign_token_legacy(token_id):
        """(구버전) 경로 없이 병원만 배정"""
        if request.method == 'OPTIONS':
            return '', 200

        data = request.get_json(silent=True) or {}
        try:
            hospital = _hospital_or_404(data.get('hospital_id'))
        except DispatchError as e:
            return error_response(e, "병원 배정")

        service = token_service()
        if not service.assign_hospital(token_id, hospital):
            return service_failure(service, "병원 배정")
        return jsonify(service.get_token(token_id).to_dict()), 200

    @app.route('/api/tokens/<token_id>/route', methods=['POST', 'OPTIONS'])
    def api_set_token_route(token_id):
        """(구버전) 단일 경로 선택"""
        if request.method == 'OPTIONS':
            return '', 200

        data = request.get_json(silent=True) or {}
        if not data.get('route'):
            return jsonify({"error": "route가 필요합니다."}), 400

        service = token_service()
        if not service.set_route(token_id, data.get('route')):
            return service_failure(service, "경로 설정")
        return jsonify(service.get_token(token_id).to_dict()), 200

    @app.route('/api/tokens/<token_id>/decline', methods=['POST', 'OPTIONS'])
    def api_decline_token(token_id):
        """병원 거절"""
        if request.method == 'OPTIONS':
            return '', 200

        data = request.get_json(silent=True) or {}
        service = token_service()
        if not service.decline(token_id, data.get('reason')):
            return service_failure(service, "응급 요청 거절")
        return jsonify(service.get_token(token_id).to_dict()), 200

    # 구급차 측 단계 전이 (본문 없음)
    step_actions = {
        'start': ('start_journey', "출동 시작"),
        'arrived': ('arrived_at_patient', "환자 도착 처리"),
        'next-leg': ('start_to_hospital', "병원 이송 시작"),
        'acknowledge-decline': ('acknowledge_decline', "거절 확인"),
    }

    @app.route('/api/tokens/<token_id>/<step>', methods=['POST', 'OPTIONS'])
    def api_token_step(token_id, step):
        """구급차 단계 전이: start / arrived / next-leg / acknowledge-decline"""
        if request.method == 'OPTIONS':
            return '', 200
        if step not in step_actions:
            return jsonify({"error": "알 수 없는 동작입니다."}), 404

        method_name, label = step_actions[step]
        service = token_service()
        if not getattr(service, method_name)(token_id):
            return service_failure(service, label)
        return jsonify(service.get_token(token_id).to_dict()), 200

    @app.route('/api/tokens/<token_id>/complete', methods=['POST', 'OPTIONS'])
    def api_complete_token(token_id):
        """병원 도착 확인"""
        if request.method == 'OPTIONS':
            return '', 200

        data = request.get_json(silent=True) or {}
        if not data.get('ambulance_id'):
            return jsonify({"error": "ambulance_id가 필요합니다."}), 400

        service = token_service()
        if not service.complete(token_id, data.get('ambulance_id')):
            return service_failure(service, "이송 완료 처리")
        return jsonify(service.get_token(token_id).to_dict()), 200

    @app.route('/api/tokens/<token_id>/cancel', methods=['POST', 'OPTIONS'])
    def api_cancel_token(token_id):
        """응급 요청 취소 (구급차/병원 모두 가능)"""
        if request.method == 'OPTIONS':
            return '', 200

        data = request.get_json(silent=True) or {}
        if not data.get('ambulance_id'):
            return jsonify({"error": "ambulance_id가 필요합니다."}), 400

        service = token_service()
        if not service.cancel(token_id, data.get('ambulance_id')):
            return service_failure(service, "응급 요청 취소")
        return jsonify(service.get_token(token_id).to_dict()), 200

    @app.route('/api/tokens/<token_id>/eta', methods=['GET'])
    def api_token_eta(token_id):
        """현재 구급차 위치 기준 다음 목적지까지 거리/ETA"""
        service = token_service()
        token = service.get_token(token_id)
        if token is None:
            return service_failure(service, "ETA 조회")

        ambulance = db.session.get(Ambulance, token.ambulance_id)
        if ambulance is None or ambulance.current_lat is None or ambulance.current_lng is None:
            return jsonify({"error": "구급차 현재 위치를 알 수 없습니다."}), 404

        # 환자 탑승 후에는 병원이 목적지
        if token.status in ('at_patient', 'to_hospital') and token.hospital_lat is not None:
            target = "hospital"
            dest_lat, dest_lng = token.hospital_lat, token.hospital_lng
            planned = token.leg_to_hospital()
        else:
            target = "patient"
            dest_lat, dest_lng = token.pickup_lat, token.pickup_lng
            planned = token.leg_to_patient()

        distance = calculate_distance(ambulance.current_lat, ambulance.current_lng, dest_lat, dest_lng)
        eta = calculate_eta(distance, ambulance.speed or 0)
        return jsonify({
            "token_id": token.id,
            "target": target,
            "distance_meters": distance,
            "eta_seconds": eta,
            "eta_text": format_eta(eta),
            # 배정 당시 계산된 해당 구간 경로 시간 (경로가 없으면 None)
            "planned_duration_seconds": planned.duration_seconds if planned else None,
        }), 200
