#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Flask Application
구급차 배차 / 병원 매칭 백엔드
"""

import sys

from flask import Flask, jsonify
from flask_cors import CORS

# 설정 파일 import
from config import (
    FLASK_PORT, FLASK_SECRET_KEY, CORS_ORIGINS, DATABASE_URI, DEFAULT_DB_PATH
)
# SQLAlchemy 모델 import
from models import db
from services.capacity_service import CapacitySimulator, SQLCapacityStore
from services.realtime import socketio, register_realtime_handlers

# 라우트 등록 (모듈화된 라우트 사용)
from routes.auth import register_auth_routes
from routes.tokens import register_tokens_routes
from routes.ambulances import register_ambulances_routes
from routes.hospitals import register_hospitals_routes
from routes.geo import register_geo_routes


def create_app(test_config=None, simulator=None):
    """
    Flask 앱 생성

    Args:
        test_config: 기본 설정 위에 덮어쓸 설정 dict (테스트용)
        simulator: CapacitySimulator (없으면 hospital_capacity 테이블 저장소로 생성)
    """
    app = Flask(__name__)
    app.config['SECRET_KEY'] = FLASK_SECRET_KEY
    # SQLAlchemy 설정
    app.config['SQLALCHEMY_DATABASE_URI'] = DATABASE_URI
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    if test_config:
        app.config.update(test_config)

    if app.config['SQLALCHEMY_DATABASE_URI'] == f"sqlite:///{DEFAULT_DB_PATH}":
        DEFAULT_DB_PATH.parent.mkdir(parents=True, exist_ok=True)

    # CORS 설정
    CORS(app, origins=CORS_ORIGINS, supports_credentials=True, methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'], allow_headers=['Content-Type', 'Authorization'])

    db.init_app(app)

    # SocketIO 초기화 (threading 모드, 로그 최소화)
    socketio.init_app(
        app,
        cors_allowed_origins=CORS_ORIGINS,
        async_mode='threading',
        logger=False,
        engineio_logger=False,
        ping_timeout=60,
        ping_interval=25,
    )
    register_realtime_handlers(socketio)

    if simulator is None:
        simulator = CapacitySimulator(SQLCapacityStore(app))
    app.extensions['capacity_simulator'] = simulator

    # 라우트 등록
    register_auth_routes(app)
    register_tokens_routes(app)
    register_ambulances_routes(app)
    register_hospitals_routes(app, simulator)
    register_geo_routes(app)

    # 서버 상태 확인
    @app.route('/api/health')
    def health():
        return jsonify({"status": "ok"}), 200

    # 데이터베이스 테이블 생성 (앱 시작 시)
    with app.app_context():
        db.create_all()

    return app


if __name__ == '__main__':
    PORT = FLASK_PORT

    print("=" * 60)
    print(" Ambulance Dispatch Flask Server 시작")
    print("=" * 60)
    print(f" URL: http://localhost:{PORT}")
    print(f" Database: {DATABASE_URI}")
    print("=" * 60)

    app = create_app()
    print("✅ Database tables created!")

    simulator = app.extensions['capacity_simulator']
    simulator.start()

    # 출력 버퍼링 비활성화 (로그가 즉시 표시되도록)
    sys.stdout.flush()
    sys.stderr.flush()

    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=PORT,
            debug=False,
            allow_unsafe_werkzeug=True,
            use_reloader=False
        )
    except Exception as e:
        import traceback
        print(f"❌ SocketIO 서버 시작 실패: {e}")
        traceback.print_exc()
        sys.exit(1)
    finally:
        simulator.stop()
