# rescue_feed/models/activity.py
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any


class ActivityType(Enum):
    """피드 항목 유형. priority 는 같은 시각의 항목을 정렬할 때 쓰는 고정 순위입니다 (작을수록 먼저)."""
    SYSTEM_ANNOUNCEMENT = ("system_announcement", 0)
    DONATION = ("donation", 1)
    MILESTONE = ("milestone", 2)
    CASE_UPDATE = ("case_update", 3)
    ADOPTION = ("adoption", 4)
    ACHIEVEMENT = ("achievement", 5)
    CASE_CREATED = ("case_created", 6)

    def __init__(self, label: str, priority: int):
        self.label = label
        self.priority = priority


@dataclass
class ActivityEnrichment:
    user: Optional[Dict[str, Any]] = None
    case: Optional[Dict[str, Any]] = None


@dataclass
class Activity:
    """
    여러 엔티티(기부, 케이스, 입양, 업적, 공지)를 하나의 형태로 정규화한 읽기 전용 피드 항목.
    저장되지 않으며 매 조회 시 계산됩니다. activity_id 는 같은 데이터에 대해 항상 같습니다.
    """
    activity_id: str
    type: ActivityType
    source_id: str
    timestamp: datetime
    user_id: Optional[str] = None
    case_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    enrichment: ActivityEnrichment = field(default_factory=ActivityEnrichment)

    @classmethod
    def build(cls, activity_type: ActivityType, source_id: str, timestamp: datetime, **kwargs) -> "Activity":
        return cls(
            activity_id=f"{activity_type.label}-{source_id}",
            type=activity_type,
            source_id=source_id,
            timestamp=timestamp,
            **kwargs
        )

    def sort_key(self):
        """timestamp 를 제외한 보조 정렬 키 (유형 우선순위, source_id)."""
        return self.type.priority, self.source_id
