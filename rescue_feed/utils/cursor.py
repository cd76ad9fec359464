# rescue_feed/utils/cursor.py
"""
케이스 목록 키셋(keyset) 페이지네이션 커서.

커서는 이전 페이지 마지막 항목의 (created_at, case_id) 를 담은 불투명 문자열입니다.
created_at 이 같은 케이스가 여러 개여도 case_id 로 순서가 고정되므로
페이지 경계에서 항목이 누락되거나 중복되지 않습니다.
"""

import base64
import binascii
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from rescue_feed.core.errors import ValidationError
from rescue_feed.utils.datetime_utils import DateTimeUtils

_SEPARATOR = "|"


@dataclass(frozen=True)
class CaseCursor:
    created_at: datetime
    # 구버전(타임스탬프만 있는) 커서는 case_id 가 없으며 "created_at 보다 엄격히 이전"을 의미합니다.
    case_id: Optional[str] = None


def encode_cursor(created_at: datetime, case_id: str) -> str:
    raw = f"{DateTimeUtils.to_iso_string(created_at)}{_SEPARATOR}{case_id}"
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def decode_cursor(cursor: str) -> CaseCursor:
    """
    커서 문자열을 해석합니다.

    지원 형식:
    - encode_cursor 가 만든 불투명 커서
    - epoch 밀리초 숫자 문자열 (예: "1700000000000")
    - ISO 타임스탬프 문자열
    """
    if not cursor or not cursor.strip():
        raise ValidationError("커서가 비어 있습니다.", error_code="INVALID_CURSOR")
    cursor = cursor.strip()

    if cursor.isascii() and cursor.isdigit():
        try:
            return CaseCursor(created_at=DateTimeUtils.from_timestamp_ms(int(cursor)))
        except ValueError:
            raise ValidationError(f"잘못된 커서입니다: {cursor}", error_code="INVALID_CURSOR")

    # ':' 는 url-safe base64 알파벳에 없으므로 ISO 타임스탬프로 취급합니다.
    if ":" in cursor:
        try:
            return CaseCursor(created_at=DateTimeUtils.parse_iso_datetime(cursor))
        except ValueError:
            raise ValidationError(f"잘못된 커서입니다: {cursor}", error_code="INVALID_CURSOR")

    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        raw = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
        created_raw, case_id = raw.split(_SEPARATOR, 1)
        if not case_id:
            raise ValueError("empty case_id")
        return CaseCursor(created_at=DateTimeUtils.parse_iso_datetime(created_raw), case_id=case_id)
    except (binascii.Error, UnicodeError, ValueError):
        raise ValidationError(f"잘못된 커서입니다: {cursor}", error_code="INVALID_CURSOR")
