#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""HTTP 유틸리티 함수"""

from typing import Optional, Dict, Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from utils.errors import UpstreamError

# 세션 생성 (연결 풀 재사용 및 재시도 설정)
_session = None


def get_session():
    """재사용 가능한 requests 세션 생성"""
    global _session
    if _session is None:
        _session = requests.Session()
        # 재시도 전략 설정 (429 에러는 재시도하지 않음 - 공개 API 제한 때문)
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[500, 502, 503, 504],  # 429 제외
            allowed_methods=["GET"]
        )
        adapter = HTTPAdapter(max_retries=retry_strategy, pool_connections=10, pool_maxsize=10)
        _session.mount("http://", adapter)
        _session.mount("https://", adapter)
    return _session


def http_get_json(url: str, params: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """HTTP GET 후 JSON 반환 (실패 시 UpstreamError)"""
    timeout = (10, 30)  # 연결 타임아웃 10초, 읽기 타임아웃 30초
    session = get_session()
    try:
        resp = session.get(url, params=params or {}, headers=headers, timeout=timeout)
        if resp.status_code == 429:
            print(f"⚠️  API 호출 제한 도달 (429): {url}")
        resp.raise_for_status()
        return resp.json()
    except requests.exceptions.RequestException as e:
        print(f"HTTP 요청 최종 실패: {url} - {e}")
        raise UpstreamError(f"외부 서비스 요청 실패: {url}") from e
    except ValueError as e:
        # JSON 디코딩 실패
        raise UpstreamError(f"외부 서비스 응답 형식 오류: {url}") from e

