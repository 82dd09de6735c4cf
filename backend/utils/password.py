#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
비밀번호 해싱 유틸리티
"""

from werkzeug.security import generate_password_hash, check_password_hash

from utils.errors import ValidationError

MIN_PASSWORD_LENGTH = 6


def hash_password(password: str) -> str:
    """
    비밀번호를 해시로 변환

    Args:
        password: 평문 비밀번호 (6자 이상)

    Returns:
        해시된 비밀번호 문자열
    """
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"비밀번호는 {MIN_PASSWORD_LENGTH}자 이상이어야 합니다.")
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """저장된 해시와 비교 (해시가 없으면 항상 실패)"""
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)
