# rescue_feed/api/cases/services.py
import logging
from dataclasses import asdict
from datetime import datetime
from typing import Optional, Dict, Any, List, Callable

from rescue_feed.api.cases.lifecycle import (
    normalize_stage, parse_stage, assert_transition, is_closed,
    transition_update_text, DEFAULT_CLOSED_REASONS,
)
from rescue_feed.core.errors import DomainError, NotFoundError, UnauthorizedError, ConflictError, ValidationError
from rescue_feed.models.case import CaseUpdate, UpdateType, EvidenceType, AuthorRole
from rescue_feed.models.community import UserRole
from rescue_feed.services.entity_store import EntityStore, CASES, USERS
from rescue_feed.services.storage_service import StorageService
from rescue_feed.utils.cursor import decode_cursor, encode_cursor
from rescue_feed.utils.datetime_utils import DateTimeUtils

MAX_UPDATE_TEXT_LENGTH = 2000
MAX_UPDATE_IMAGES = 10

# (created_at desc, case_id desc) 의 전순서로 스캔합니다.
CASE_LIST_ORDER = [('created_at', True), ('case_id', True)]


class CaseService:
    """
    케이스 조회, 커서 기반 목록, 라이프사이클 전이, 업데이트 추가를 담당하는 서비스 클래스.
    케이스 문서 변경은 모두 EntityStore.run_transaction 안에서 이루어집니다.
    """

    def __init__(self, store: EntityStore, storage_service: Optional[StorageService] = None,
                 clock: Callable[[], datetime] = DateTimeUtils.now):
        self.store = store
        self.storage_service = storage_service
        self.clock = clock

    # --- 조회 ---
    def get_case(self, case_id: str) -> Dict[str, Any]:
        return self._serialize_case(self._load_case(case_id))

    def list_cases(self, limit: int, cursor: Optional[str] = None, status: Optional[str] = None,
                   lifecycle_stage: Optional[str] = None, owner_user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        created_at 내림차순 (동률은 case_id 내림차순) 으로 한 페이지를 반환합니다.

        limit + 1 개를 조회해 다음 페이지 존재 여부를 판단하므로, 마지막 페이지가 정확히
        limit 개로 끝나도 빈 페이지를 한 번 더 요청하지 않습니다.
        """
        if limit < 1:
            raise ValidationError("limit 은 1 이상이어야 합니다.")

        filters = []
        if status:
            filters.append(('status', '==', status))
        if lifecycle_stage:
            filters.append(('lifecycle_stage', '==', parse_stage(lifecycle_stage).value))
        if owner_user_id:
            filters.append(('owner_user_id', '==', owner_user_id))

        start_after = None
        if cursor:
            position = decode_cursor(cursor)
            if position.case_id is None:
                # 타임스탬프만 있는 커서: 해당 시각보다 엄격히 이전의 케이스만
                filters.append(('created_at', '<', position.created_at))
            else:
                start_after = {'created_at': position.created_at, 'case_id': position.case_id}

        rows = self.store.query(CASES, filters, CASE_LIST_ORDER, start_after=start_after, limit=limit + 1)
        has_more = len(rows) > limit
        page = rows[:limit]

        next_cursor = None
        if has_more:
            last = page[-1]
            next_cursor = encode_cursor(last['created_at'], last['case_id'])

        return {
            "items": [self._serialize_case(row) for row in page],
            "has_more": has_more,
            "next_cursor": next_cursor,
        }

    # --- 변경 ---
    def transition_lifecycle(self, case_id: str, user_id: str, target_stage: str,
                             notes: Optional[str] = None, expected_stage: Optional[str] = None) -> Dict[str, Any]:
        """
        [트랜잭션] 케이스를 다음 라이프사이클 단계로 전환합니다.

        expected_stage 를 보내면 그 단계에서 출발하는 전이로만 처리하며, 그 사이 다른 요청이
        단계를 바꿨다면 ConflictError 를 발생시킵니다. 같은 단계에서 출발한 동시 요청은
        트랜잭션 안의 비교 후 기록으로 정확히 하나만 성공합니다.
        """
        case_data = self._load_case(case_id)
        author_role = self._resolve_author_role(case_data, user_id)
        target = parse_stage(target_stage)
        current = normalize_stage(case_data.get('lifecycle_stage'))
        observed = parse_stage(expected_stage) if expected_stage else current
        if observed != current:
            raise ConflictError(
                f"케이스 단계가 이미 '{current.value}' 로 변경되었습니다. 새로고침 후 다시 시도해주세요.")
        assert_transition(observed, target)
        notes = notes.strip() if notes and notes.strip() else None

        def _apply(latest: Optional[Dict[str, Any]]) -> Dict[str, Any]:
            if latest is None:
                raise NotFoundError("케이스를 찾을 수 없습니다.")
            latest_stage = normalize_stage(latest.get('lifecycle_stage'))
            if latest_stage != observed:
                raise ConflictError(
                    f"다른 요청이 먼저 케이스 단계를 '{latest_stage.value}' 로 변경했습니다. 새로고침 후 다시 시도해주세요.")

            now = self.clock()
            updates = list(latest.get('updates') or [])
            entry = CaseUpdate(
                date=self._next_update_date(updates, now),
                text=transition_update_text(target, notes),
                type=UpdateType.MILESTONE.value,
                author_role=author_role.value,
            )
            updates.append(asdict(entry))

            changes = {
                'lifecycle_stage': target.value,
                'lifecycle_updated_at': now,
                'updates': updates,
            }
            if is_closed(target):
                changes['closed_at'] = now
                changes['closed_reason'] = notes or DEFAULT_CLOSED_REASONS[target]
            return changes

        updated = self._run_case_transaction(case_id, _apply)
        logging.info(f"Case lifecycle transitioned (case_id: {case_id}): {observed.value} -> {target.value} by {user_id}")
        return self._serialize_case(updated)

    def add_case_update(self, case_id: str, user_id: str, text: str, update_type: str = UpdateType.UPDATE.value,
                        images: Optional[List[str]] = None, evidence_type: Optional[str] = None) -> Dict[str, Any]:
        """
        [트랜잭션] 케이스 타임라인에 업데이트를 추가합니다.
        종료된 케이스에도 후속 소식을 남길 수 있습니다. 새 항목의 date 는 기존 항목보다 항상 뒤입니다.
        """
        text = (text or "").strip()
        if not text:
            raise ValidationError("업데이트 내용은 비어 있을 수 없습니다.")
        if len(text) > MAX_UPDATE_TEXT_LENGTH:
            raise ValidationError(f"업데이트 내용은 {MAX_UPDATE_TEXT_LENGTH}자를 넘을 수 없습니다.")
        update_type = self._parse_enum(UpdateType, update_type, "업데이트 유형")
        evidence_type = self._parse_enum(EvidenceType, evidence_type, "증빙 유형") if evidence_type else None
        images = [ref for ref in (images or []) if ref]
        if len(images) > MAX_UPDATE_IMAGES:
            raise ValidationError(f"이미지는 최대 {MAX_UPDATE_IMAGES}장까지 첨부할 수 있습니다.")

        case_data = self._load_case(case_id)
        author_role = self._resolve_author_role(case_data, user_id)
        self._ensure_images_uploaded(images)

        def _apply(latest: Optional[Dict[str, Any]]) -> Dict[str, Any]:
            if latest is None:
                raise NotFoundError("케이스를 찾을 수 없습니다.")
            updates = list(latest.get('updates') or [])
            entry = CaseUpdate(
                date=self._next_update_date(updates, self.clock()),
                text=text,
                type=update_type.value,
                images=images,
                evidence_type=evidence_type.value if evidence_type else None,
                author_role=author_role.value,
            )
            updates.append(asdict(entry))
            return {'updates': updates}

        updated = self._run_case_transaction(case_id, _apply)
        logging.info(f"Case update added (case_id: {case_id}, type: {update_type.value}) by {user_id}")
        return self._serialize_case(updated)

    # --- 내부 헬퍼 ---
    def _load_case(self, case_id: str) -> Dict[str, Any]:
        case_data = self.store.get(CASES, case_id)
        if case_data is None:
            raise NotFoundError("케이스를 찾을 수 없습니다.")
        return case_data

    def _resolve_author_role(self, case_data: Dict[str, Any], user_id: str) -> AuthorRole:
        """케이스 관리 권한을 확인합니다. 소유자, 관리자/모더레이터, 같은 병원 소속 직원만 허용됩니다."""
        if user_id and case_data.get('owner_user_id') == user_id:
            return AuthorRole.OWNER

        user = self.store.get(USERS, user_id) if user_id else None
        if user:
            if user.get('role') in (UserRole.ADMIN.value, UserRole.MODERATOR.value):
                return AuthorRole.MODERATOR
            clinic_id = case_data.get('clinic_id')
            if clinic_id and user.get('clinic_id') == clinic_id:
                return AuthorRole.CLINIC

        logging.warning(f"Unauthorized case mutation attempt (case_id: {case_data.get('case_id')}, user_id: {user_id})")
        raise UnauthorizedError("이 케이스를 관리할 권한이 없습니다.")

    def _ensure_images_uploaded(self, images: List[str]) -> None:
        if not images or self.storage_service is None:
            return
        missing = [ref for ref in images if not self.storage_service.image_exists(ref)]
        if missing:
            raise ValidationError(f"업로드되지 않은 이미지가 포함되어 있습니다: {', '.join(missing)}")

    @staticmethod
    def _parse_enum(enum_cls, raw, label: str):
        try:
            return enum_cls(raw)
        except ValueError:
            allowed = ", ".join(member.value for member in enum_cls)
            raise ValidationError(f"알 수 없는 {label}입니다: {raw} (허용: {allowed})")

    @staticmethod
    def _next_update_date(updates: List[Dict[str, Any]], now: datetime) -> datetime:
        if not updates:
            return now
        return DateTimeUtils.strictly_after(now, max(u['date'] for u in updates))

    def _run_case_transaction(self, case_id: str, update_fn) -> Dict[str, Any]:
        try:
            return self.store.run_transaction(CASES, case_id, update_fn)
        except DomainError:
            raise
        except LookupError:
            raise NotFoundError("케이스를 찾을 수 없습니다.")
        except Exception as e:
            logging.error(f"케이스 트랜잭션 실패 (case_id: {case_id}): {e}", exc_info=True)
            raise

    def _serialize_case(self, case_data: Dict[str, Any]) -> Dict[str, Any]:
        """응답용 딕셔너리. 저장된 단계 값을 정규화하고 이미지 URL 과 기부 가능 여부를 덧붙입니다."""
        data = dict(case_data)
        stage = normalize_stage(data.get('lifecycle_stage'))
        data['lifecycle_stage'] = stage.value
        data['is_donation_allowed'] = not is_closed(stage)
        data['image_urls'] = self._resolve_images(data.get('images'))
        data['updates'] = [
            dict(update, image_urls=self._resolve_images(update.get('images')))
            for update in data.get('updates') or []
        ]
        return data

    def _resolve_images(self, refs: Optional[List[str]]) -> List[str]:
        if not refs or self.storage_service is None:
            return []
        try:
            return self.storage_service.get_image_urls(refs)
        except Exception as e:
            logging.warning(f"이미지 URL 변환 실패: {e}")
            return []

