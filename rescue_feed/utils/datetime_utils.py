# rescue_feed/utils/datetime_utils.py
"""
프로젝트 전체에서 일관된 시간 처리를 위한 유틸리티 모듈

- 모든 시간은 UTC timezone-aware datetime 으로 다룹니다.
- Firestore Timestamp <-> datetime 변환을 한 곳에서 처리합니다.
- 피드 정렬/커서에 쓰이는 ISO 문자열과 epoch 밀리초 변환을 제공합니다.
"""

import logging
from datetime import datetime, date, timezone, time, timedelta
from enum import Enum
from typing import Any, Union
from dateutil import parser as dateutil_parser

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
ONE_MICROSECOND = timedelta(microseconds=1)


class DateTimeUtils:
    """시간/날짜 처리를 위한 중앙화된 유틸리티 클래스"""

    @staticmethod
    def now() -> datetime:
        """현재 시간을 UTC timezone-aware datetime으로 반환"""
        return datetime.now(timezone.utc)

    @staticmethod
    def ensure_utc(dt: datetime) -> datetime:
        """naive datetime은 UTC로 간주하고, aware datetime은 UTC로 변환합니다."""
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    @staticmethod
    def parse_iso_datetime(iso_string: str) -> datetime:
        """
        ISO 포맷 문자열을 datetime 객체로 파싱

        지원 포맷:
        - 2024-01-15T10:30:00Z
        - 2024-01-15T10:30:00+09:00
        - 2024-01-15T10:30:00.123456Z
        - 2024-01-15T10:30:00
        """
        try:
            if not iso_string:
                raise ValueError("빈 문자열은 파싱할 수 없습니다")

            if iso_string.endswith('Z'):
                iso_string = iso_string[:-1] + '+00:00'

            dt = dateutil_parser.isoparse(iso_string)
            return DateTimeUtils.ensure_utc(dt)

        except Exception as e:
            logger.error(f"ISO datetime 파싱 실패: {iso_string} - {e}")
            raise ValueError(f"잘못된 ISO 날짜 형식입니다: {iso_string}")

    @staticmethod
    def to_iso_string(dt: datetime) -> str:
        """datetime 객체를 'Z' 접미사가 붙은 ISO 문자열로 변환 (마이크로초 고정 6자리)"""
        try:
            dt = DateTimeUtils.ensure_utc(dt)
            # 커서/활동 ID가 문자열 비교에서도 안정적이도록 timespec을 고정합니다.
            return dt.isoformat(timespec='microseconds').replace('+00:00', 'Z')
        except Exception as e:
            logger.error(f"ISO 문자열 변환 실패: {dt} - {e}")
            raise ValueError(f"datetime 객체를 ISO 문자열로 변환할 수 없습니다: {dt}")

    @staticmethod
    def for_firestore(obj: Any) -> Any:
        """
        Firestore 저장을 위해 객체의 날짜/시간 필드를 변환

        변환 규칙:
        - date -> datetime (00:00:00 UTC)
        - timezone-naive datetime -> timezone-aware datetime (UTC)
        - Enum -> value
        - dict/list 내부 재귀적 변환
        """
        if isinstance(obj, datetime):
            return DateTimeUtils.ensure_utc(obj)
        if isinstance(obj, date):
            return datetime.combine(obj, time.min).replace(tzinfo=timezone.utc)
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, dict):
            return {k: DateTimeUtils.for_firestore(v) for k, v in obj.items()}
        if isinstance(obj, (list, tuple)):
            return [DateTimeUtils.for_firestore(item) for item in obj]
        return obj

    @staticmethod
    def from_firestore(obj: Any) -> Any:
        """
        Firestore에서 읽은 데이터의 datetime 필드를 UTC aware datetime으로 변환

        Firestore의 DatetimeWithNanoseconds 는 datetime 의 하위 클래스이므로
        일반 datetime 으로 다시 만들어 비교/정렬 시 타입이 섞이지 않도록 합니다.
        """
        try:
            if isinstance(obj, datetime):
                obj = DateTimeUtils.ensure_utc(obj)
                return datetime(obj.year, obj.month, obj.day, obj.hour, obj.minute,
                                obj.second, obj.microsecond, tzinfo=timezone.utc)
            if isinstance(obj, dict):
                return {k: DateTimeUtils.from_firestore(v) for k, v in obj.items()}
            if isinstance(obj, list):
                return [DateTimeUtils.from_firestore(item) for item in obj]
            return obj
        except Exception as e:
            logger.error(f"Firestore 읽기 변환 실패: {obj} ({type(obj)}) - {e}")
            # 변환 실패 시 원본 객체 반환 (로그만 남김)
            return obj

    @staticmethod
    def from_timestamp_ms(timestamp_ms: Union[int, float]) -> datetime:
        """Unix timestamp (밀리초)를 UTC datetime 객체로 변환"""
        if isinstance(timestamp_ms, bool) or not isinstance(timestamp_ms, (int, float)):
            raise ValueError("timestamp_ms는 숫자여야 합니다")
        try:
            return EPOCH + timedelta(milliseconds=timestamp_ms)
        except OverflowError:
            raise ValueError(f"표현할 수 없는 timestamp_ms 입니다: {timestamp_ms}")

    @staticmethod
    def strictly_after(candidate: datetime, previous: datetime) -> datetime:
        """candidate 가 previous 이후가 아니면 previous 보다 1µs 뒤의 시각을 반환합니다."""
        if candidate > previous:
            return candidate
        return previous + ONE_MICROSECOND
