#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""지오코딩/경로 관련 라우트"""

from flask import request, jsonify

from utils.errors import DispatchError
from utils.geo import reverse_geocode, geocode, get_driving_route_osrm, format_eta
from utils.session import error_response


def register_geo_routes(app):
    """지오코딩 라우트 등록"""

    @app.route('/api/geo/reverse', methods=['GET'])
    def api_reverse_geocode():
        """좌표 → 주소 변환 API"""
        lat = request.args.get('lat', type=float)
        lng = request.args.get('lng', type=float)
        if lat is None or lng is None:
            return jsonify({"error": "lat와 lng 파라미터가 필요합니다."}), 400

        try:
            address = reverse_geocode(lat, lng)
        except DispatchError as e:
            return error_response(e, "주소 조회")
        if address:
            return jsonify({"address": address}), 200
        return jsonify({"error": "주소를 찾을 수 없습니다."}), 404

    @app.route('/api/geo/search', methods=['GET'])
    def api_geo_search():
        """주소/장소 → 좌표 후보 검색 API"""
        # 여러 파라미터 이름 지원
        query = request.args.get('q') or request.args.get('query') or request.args.get('address')
        if not query:
            return jsonify({"error": "검색어 파라미터(q, query, 또는 address)가 필요합니다."}), 400
        limit = max(1, min(request.args.get('limit', default=5, type=int), 20))

        try:
            results = geocode(query, limit=limit)
        except DispatchError as e:
            return error_response(e, "위치 검색")
        return jsonify({"results": results, "count": len(results)}), 200

    @app.route('/api/geo/route', methods=['GET'])
    def api_geo_route():
        """경로 조회 API (OSRM 길찾기)"""
        origin_lat = request.args.get('origin_lat', type=float)
        origin_lng = request.args.get('origin_lng', type=float)
        dest_lat = request.args.get('dest_lat', type=float)
        dest_lng = request.args.get('dest_lng', type=float)
        if None in (origin_lat, origin_lng, dest_lat, dest_lng):
            return jsonify({"error": "origin_lat, origin_lng, dest_lat, dest_lng 파라미터가 필요합니다."}), 400

        kind = request.args.get('kind', 'fastest')
        try:
            leg = get_driving_route_osrm(origin_lat, origin_lng, dest_lat, dest_lng, kind)
        except DispatchError as e:
            print(f"경로 조회 오류: {e}")
            return error_response(e, "경로 조회")

        result = leg.to_dict()
        result["eta_text"] = format_eta(leg.duration_seconds)
        return jsonify(result), 200
