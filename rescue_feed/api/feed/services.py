# rescue_feed/api/feed/services.py
import logging
from datetime import timedelta
from typing import Any, Dict, Iterable, Iterator, List, Optional

from rescue_feed.api.cases.lifecycle import normalize_stage
from rescue_feed.models.activity import Activity, ActivityType
from rescue_feed.models.case import Fundraising
from rescue_feed.models.community import AdoptionStatus
from rescue_feed.models.donation import DonationStatus
from rescue_feed.services.entity_store import (
    EntityStore, CASES, DONATIONS, ADOPTIONS, ACHIEVEMENTS, USERS, ANNOUNCEMENTS
)
from rescue_feed.services.storage_service import StorageService
from rescue_feed.utils.datetime_utils import DateTimeUtils

logger = logging.getLogger(__name__)

# 모금 마일스톤은 케이스 생성 직후에 정렬되도록 created_at + 1ms 로 합성합니다.
# 같은 시각의 실제 업데이트와 겹치면 ActivityType 우선순위로 순서가 결정됩니다.
MILESTONE_OFFSET = timedelta(milliseconds=1)
HALFWAY_RATIO = 0.5
FUNDED_RATIO = 1.0

ACHIEVEMENT_LABELS = {
    "first_donation": "Made first donation!",
    "monthly_donor": "Became a monthly donor",
    "helped_10": "Helped 10 animals!",
    "helped_50": "Helped 50 animals!",
    "helped_100": "Helped 100 animals!",
    "big_heart": "Big Heart award",
    "early_supporter": "Early supporter badge",
    "community_hero": "Community Hero!",
}


class FeedService:
    """
    통합 활동(스토리) 피드를 만드는 읽기 전용 서비스.

    각 소스(기부, 케이스 생성/업데이트, 입양, 업적, 공지)를 limit 개씩 따로 조회한 뒤
    Activity 로 정규화하고, 한 번에 정렬/절단한 다음 사용자/케이스 정보를 일괄 조회로 채웁니다.

    - 정렬: timestamp 내림차순, 동률이면 유형 우선순위 → source_id 오름차순.
    - 소스별 상위 limit 개만 보므로 전역 상위 K 는 근사치입니다. (예: 최근 limit 개 밖의
      오래된 케이스에 새 업데이트가 달리면 전역 피드에는 나타나지 않습니다.)
    - 수집 후 정렬 방식이라 비용은 O(후보 수 · log 후보 수) 입니다.
    - 참조된 사용자/케이스가 없으면 해당 enrichment 필드만 None 이 되고 항목은 유지됩니다.
    """

    def __init__(self, store: EntityStore, storage_service: Optional[StorageService] = None,
                 default_limit: int = 10, max_limit: int = 50):
        self.store = store
        self.storage_service = storage_service
        self.default_limit = default_limit
        self.max_limit = max_limit

    # --- 공개 조회 API ---
    def get_global_feed(self, limit: Optional[int] = None) -> List[Activity]:
        """전체 커뮤니티 피드: 완료된 기부, 케이스 생성/업데이트, 완료된 입양, 시스템 공지."""
        limit = self._clamp(limit)
        activities: List[Activity] = []

        donations = self.store.query(
            DONATIONS, [('status', '==', DonationStatus.COMPLETED.value)], [('created_at', True)], limit=limit)
        activities.extend(self._donation_activity(d, reveal_identity=False) for d in donations)

        cases = self.store.query(CASES, order_by=[('created_at', True)], limit=limit)
        for case_data in cases:
            activities.extend(self._case_activities(case_data))

        adoptions = self.store.query(
            ADOPTIONS, [('status', '==', AdoptionStatus.ADOPTED.value)], [('created_at', True)], limit=limit)
        activities.extend(self._adoption_activity(a) for a in adoptions)

        activities.extend(self._announcement_activities(limit))

        page = self._rank(activities, limit)
        return self._enrich(page, known_cases={c['case_id']: c for c in cases})

    def get_user_feed(self, user_id: str, limit: Optional[int] = None,
                      viewer_id: Optional[str] = None) -> List[Activity]:
        """
        특정 사용자의 피드: 본인이 등록한 케이스(+업데이트), 본인의 완료된 기부, 획득한 업적.
        익명 기부는 본인(viewer_id == user_id)이 볼 때만 포함됩니다.
        """
        limit = self._clamp(limit)
        if self.store.get(USERS, user_id) is None:
            logger.info(f"User feed requested for unknown user: {user_id}")
            return []

        activities: List[Activity] = []
        cases = self.store.query(
            CASES, [('owner_user_id', '==', user_id)], [('created_at', True)], limit=limit)
        for case_data in cases:
            activities.extend(self._case_activities(case_data))

        is_self = viewer_id is not None and viewer_id == user_id
        donations = self.store.query(
            DONATIONS,
            [('user_id', '==', user_id), ('status', '==', DonationStatus.COMPLETED.value)],
            [('created_at', True)],
            limit=limit,
        )
        for donation in donations:
            if donation.get('anonymous') and not is_self:
                continue
            activities.append(self._donation_activity(donation, reveal_identity=True))

        achievements = self.store.query(
            ACHIEVEMENTS, [('user_id', '==', user_id)], [('unlocked_at', True)], limit=limit)
        activities.extend(self._achievement_activity(a) for a in achievements)

        page = self._rank(activities, limit)
        return self._enrich(page, known_cases={c['case_id']: c for c in cases})

    def get_case_feed(self, case_id: str, limit: Optional[int] = None) -> List[Activity]:
        """
        특정 케이스의 피드: 생성, 모든 업데이트, 완료된 기부(익명이면 신원 제거),
        조회 시점에 모금 현황으로 합성한 마일스톤.
        """
        limit = self._clamp(limit)
        case_data = self.store.get(CASES, case_id)
        if case_data is None:
            logger.info(f"Case feed requested for unknown case: {case_id}")
            return []

        activities = list(self._case_activities(case_data))
        milestone = self._milestone_activity(case_data)
        if milestone:
            activities.append(milestone)

        donations = self.store.query(
            DONATIONS,
            [('case_id', '==', case_id), ('status', '==', DonationStatus.COMPLETED.value)],
            [('created_at', True)],
            limit=limit,
        )
        activities.extend(self._donation_activity(d, reveal_identity=False) for d in donations)

        page = self._rank(activities, limit)
        return self._enrich(page, known_cases={case_id: case_data})

    def get_system_announcements(self, limit: Optional[int] = None) -> List[Activity]:
        """운영팀이 큐레이션한 공지 목록. 빈 피드를 대신 채우는 용도가 아닙니다."""
        limit = self._clamp(limit)
        return self._rank(list(self._announcement_activities(limit)), limit)

    # --- 정규화 ---
    def _clamp(self, limit: Optional[int]) -> int:
        if limit is None:
            limit = self.default_limit
        return max(1, min(int(limit), self.max_limit))

    @staticmethod
    def _case_activities(case_data: Dict[str, Any]) -> Iterator[Activity]:
        """케이스 생성 1건 + 업데이트 항목마다 1건씩으로 펼칩니다."""
        case_id = case_data['case_id']
        owner_id = case_data.get('owner_user_id')
        yield Activity.build(
            ActivityType.CASE_CREATED, case_id, case_data['created_at'],
            user_id=owner_id, case_id=case_id,
            payload={
                "title": case_data.get('title'),
                "status": case_data.get('status'),
                "summary": (case_data.get('description') or "")[:100],
            },
        )
        for update in case_data.get('updates') or []:
            images = update.get('images') or []
            yield Activity.build(
                ActivityType.CASE_UPDATE,
                f"{case_id}-{DateTimeUtils.to_iso_string(update['date'])}",
                update['date'],
                user_id=owner_id, case_id=case_id,
                payload={
                    "text": update.get('text'),
                    "update_type": update.get('type'),
                    "evidence_type": update.get('evidence_type'),
                    "image_ref": images[0] if images else None,
                },
            )

    @staticmethod
    def _milestone_activity(case_data: Dict[str, Any]) -> Optional[Activity]:
        fundraising = Fundraising.from_dict(case_data.get('fundraising'))
        ratio = fundraising.ratio
        if ratio is None or ratio < HALFWAY_RATIO:
            return None

        if ratio >= FUNDED_RATIO:
            kind, title = "funded", "Fully funded!"
        else:
            kind, title = "halfway", "Halfway there!"
        case_id = case_data['case_id']
        return Activity.build(
            ActivityType.MILESTONE, f"{case_id}-{kind}", case_data['created_at'] + MILESTONE_OFFSET,
            case_id=case_id,
            payload={
                "kind": kind,
                "title": title,
                "percent": int(ratio * 100),
                "current": fundraising.current,
                "goal": fundraising.goal,
                "currency": fundraising.currency,
            },
        )

    @staticmethod
    def _donation_activity(donation: Dict[str, Any], reveal_identity: bool) -> Activity:
        anonymous = bool(donation.get('anonymous'))
        user_id = donation.get('user_id') if (reveal_identity or not anonymous) else None
        return Activity.build(
            ActivityType.DONATION, donation['donation_id'], donation['created_at'],
            user_id=user_id, case_id=donation.get('case_id'),
            payload={
                "amount": donation.get('amount'),
                "currency": donation.get('currency'),
                "anonymous": anonymous,
            },
        )

    @staticmethod
    def _adoption_activity(adoption: Dict[str, Any]) -> Activity:
        return Activity.build(
            ActivityType.ADOPTION, adoption['adoption_id'], adoption['created_at'],
            user_id=adoption.get('user_id'),
            payload={"name": adoption.get('name'), "animal_type": adoption.get('animal_type')},
        )

    @staticmethod
    def _achievement_activity(achievement: Dict[str, Any]) -> Activity:
        achievement_type = achievement.get('type')
        return Activity.build(
            ActivityType.ACHIEVEMENT, achievement['achievement_id'], achievement['unlocked_at'],
            user_id=achievement.get('user_id'),
            payload={
                "achievement_type": achievement_type,
                "label": ACHIEVEMENT_LABELS.get(achievement_type, achievement_type),
            },
        )

    def _announcement_activities(self, limit: int) -> Iterator[Activity]:
        rows = self.store.query(
            ANNOUNCEMENTS, [('active', '==', True)], [('published_at', True)], limit=limit)
        for row in rows:
            yield Activity.build(
                ActivityType.SYSTEM_ANNOUNCEMENT, row['announcement_id'], row['published_at'],
                payload={"title": row.get('title'), "subtitle": row.get('subtitle'), "emoji": row.get('emoji')},
            )

    @staticmethod
    def _rank(activities: Iterable[Activity], limit: int) -> List[Activity]:
        """timestamp 내림차순 + 고정 보조 키로 정렬하고 중복 ID 를 제거한 뒤 limit 개로 자릅니다."""
        ordered = sorted(activities, key=Activity.sort_key)
        # 안정 정렬이므로 같은 timestamp 끼리는 위의 보조 키 순서가 유지됩니다.
        ordered.sort(key=lambda activity: activity.timestamp, reverse=True)

        page, seen = [], set()
        for activity in ordered:
            if activity.activity_id in seen:
                continue
            seen.add(activity.activity_id)
            page.append(activity)
            if len(page) == limit:
                break
        return page

    # --- enrichment ---
    def _enrich(self, activities: List[Activity],
                known_cases: Optional[Dict[str, Dict[str, Any]]] = None) -> List[Activity]:
        """참조된 사용자/케이스를 컬렉션별 한 번의 일괄 조회로 채웁니다 (N+1 조회 방지)."""
        cases = dict(known_cases or {})
        user_ids = {a.user_id for a in activities if a.user_id}
        missing_case_ids = {a.case_id for a in activities if a.case_id and a.case_id not in cases}

        users = self.store.get_many(USERS, user_ids) if user_ids else {}
        if missing_case_ids:
            cases.update(self.store.get_many(CASES, missing_case_ids))

        case_views: Dict[str, Optional[Dict[str, Any]]] = {}
        for activity in activities:
            if activity.user_id:
                user = users.get(activity.user_id)
                if user is None:
                    logger.warning(f"Feed enrichment: user not found (user_id: {activity.user_id}, activity: {activity.activity_id})")
                activity.enrichment.user = self._user_view(user)

            case_view = None
            if activity.case_id:
                if activity.case_id not in case_views:
                    case_data = cases.get(activity.case_id)
                    if case_data is None:
                        logger.warning(f"Feed enrichment: case not found (case_id: {activity.case_id}, activity: {activity.activity_id})")
                    case_views[activity.case_id] = self._case_view(case_data)
                case_view = case_views[activity.case_id]
                activity.enrichment.case = case_view

            if activity.type is ActivityType.CASE_UPDATE:
                image_url = self._resolve_image(activity.payload.pop('image_ref', None))
                activity.payload['image_url'] = image_url or (case_view or {}).get('image_url')
        return activities

    @staticmethod
    def _user_view(user: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if user is None:
            return None
        return {"user_id": user.get('user_id'), "name": user.get('name'), "avatar_url": user.get('avatar_url')}

    def _case_view(self, case_data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if case_data is None:
            return None
        images = case_data.get('images') or []
        return {
            "case_id": case_data.get('case_id'),
            "title": case_data.get('title'),
            "status": case_data.get('status'),
            "lifecycle_stage": normalize_stage(case_data.get('lifecycle_stage')).value,
            "image_url": self._resolve_image(images[0] if images else None),
        }

    def _resolve_image(self, image_ref: Optional[str]) -> Optional[str]:
        if not image_ref or self.storage_service is None:
            return None
        try:
            return self.storage_service.get_image_url(image_ref)
        except Exception as e:
            logger.warning(f"Feed enrichment: image URL could not be resolved (ref: {image_ref}): {e}")
            return None

