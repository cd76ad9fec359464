# rescue_feed/models/case.py
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any

from rescue_feed.utils.datetime_utils import DateTimeUtils


class CaseStatus(Enum):
    """케이스의 의료적 긴급도."""
    CRITICAL = "critical"
    URGENT = "urgent"
    RECOVERING = "recovering"
    ADOPTED = "adopted"


class LifecycleStage(Enum):
    """구조부터 종료까지 케이스가 거치는 단계. 전이 규칙은 api/cases/lifecycle.py 참고."""
    ACTIVE_TREATMENT = "active_treatment"
    SEEKING_ADOPTION = "seeking_adoption"
    CLOSED_SUCCESS = "closed_success"
    CLOSED_TRANSFERRED = "closed_transferred"
    CLOSED_OTHER = "closed_other"


class UpdateType(Enum):
    MEDICAL = "medical"
    MILESTONE = "milestone"
    UPDATE = "update"
    SUCCESS = "success"


class EvidenceType(Enum):
    BILL = "bill"
    LAB_RESULT = "lab_result"
    CLINIC_PHOTO = "clinic_photo"
    OTHER = "other"


class AuthorRole(Enum):
    OWNER = "owner"
    CLINIC = "clinic"
    MODERATOR = "moderator"


@dataclass
class Fundraising:
    """모금 현황. current 가 goal 을 넘는 초과 모금도 허용됩니다."""
    goal: float
    current: float = 0
    currency: str = "EUR"

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Fundraising":
        data = data or {}
        return cls(goal=data.get('goal') or 0, current=data.get('current') or 0,
                   currency=data.get('currency') or "EUR")

    @property
    def ratio(self) -> Optional[float]:
        if not self.goal or self.goal <= 0:
            return None
        return self.current / self.goal


@dataclass
class CaseUpdate:
    """케이스 타임라인 항목. updates 배열은 date 오름차순으로 추가만 됩니다."""
    date: datetime
    text: str
    type: str = UpdateType.UPDATE.value
    images: List[str] = field(default_factory=list)
    evidence_type: Optional[str] = None
    author_role: Optional[str] = None


@dataclass
class Case:
    """
    Firestore 'cases' 컬렉션의 문서 구조를 정의하는 데이터클래스.
    """
    case_id: str
    owner_user_id: str
    title: str
    description: str
    fundraising: Fundraising
    status: str = CaseStatus.CRITICAL.value
    lifecycle_stage: str = LifecycleStage.ACTIVE_TREATMENT.value
    story: Optional[str] = None
    images: List[str] = field(default_factory=list)
    updates: List[CaseUpdate] = field(default_factory=list)
    clinic_id: Optional[str] = None
    created_at: datetime = field(default_factory=DateTimeUtils.now)
    lifecycle_updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    closed_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
