#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
실시간 변경 알림
테이블/이벤트 단위로 INSERT/UPDATE/DELETE 페이로드를 구독자에게 전달한다.
"""

from typing import Any, Dict, List, Optional

from flask_socketio import SocketIO

# SocketIO 객체 (app.py에서 init_app으로 연결)
socketio = SocketIO()

CHANGE_EVENT = 'postgres_changes'


def _room(table: str) -> str:
    return f'table_{table}'


class SocketIONotifier:
    """Flask-SocketIO로 변경 이벤트 전송"""

    def __init__(self, sio: Optional[SocketIO] = None):
        self.sio = sio or socketio

    def publish(self, table: str, event: str, new: Optional[Dict[str, Any]] = None, old: Optional[Dict[str, Any]] = None):
        if self.sio.server is None:
            # init_app 전 (스크립트 등)
            return
        payload = {"table": table, "event": event, "new": new, "old": old}
        try:
            self.sio.emit(CHANGE_EVENT, payload, to=_room(table))
        except Exception as e:
            # 알림 실패가 상태 변경을 되돌리지는 않음 (관찰자는 폴링으로 보정)
            print(f"⚠️  실시간 알림 전송 실패 ({table}/{event}): {e}")


class RecordingNotifier:
    """메모리에 이벤트를 기록하는 알림기 (테스트/스크립트용)"""

    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    def publish(self, table: str, event: str, new: Optional[Dict[str, Any]] = None, old: Optional[Dict[str, Any]] = None):
        self.events.append({"table": table, "event": event, "new": new, "old": old})

    def of(self, table: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e["table"] == table]


def register_realtime_handlers(sio: SocketIO):
    """구독/해제 소켓 이벤트 등록"""
    from flask_socketio import emit, join_room, leave_room

    @sio.on('connect')
    def handle_connect():
        print('클라이언트 연결됨')

    @sio.on('disconnect')
    def handle_disconnect():
        print('클라이언트 연결 해제됨')

    @sio.on('subscribe')
    def handle_subscribe(data):
        table = (data or {}).get('table')
        if table:
            join_room(_room(table))
            emit('subscribed', {'table': table})

    @sio.on('unsubscribe')
    def handle_unsubscribe(data):
        table = (data or {}).get('table')
        if table:
            leave_room(_room(table))
            emit('unsubscribed', {'table': table})
