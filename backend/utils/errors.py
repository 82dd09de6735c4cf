#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""디스패치 도메인 예외"""


class DispatchError(Exception):
    """모든 디스패치 예외의 기반 클래스"""

    status_code = 500


class ValidationError(DispatchError):
    """필수 값 누락 또는 잘못된 입력"""

    status_code = 400


class AuthorizationError(DispatchError):
    """요청자의 역할로는 허용되지 않는 작업"""

    status_code = 403


class NotFoundError(DispatchError):
    """토큰/병원/구급차 ID를 찾을 수 없음"""

    status_code = 404


class ConflictError(DispatchError):
    """현재 상태에서 허용되지 않는 전이, 또는 조건부 업데이트가 0건 반영됨"""

    status_code = 409


class UpstreamError(DispatchError):
    """저장소/경로/지오코딩 외부 서비스 실패"""

    status_code = 502
