# rescue_feed/utils/__init__.py
"""
유틸리티 모듈 패키지

시간 처리와 페이지네이션 커서처럼 프로젝트 전체에서 공통으로 사용되는 함수들을 포함합니다.
"""

from .datetime_utils import DateTimeUtils
from .cursor import CaseCursor, encode_cursor, decode_cursor

__all__ = [
    'DateTimeUtils',
    'CaseCursor', 'encode_cursor', 'decode_cursor'
]
