# rescue_feed/models/community.py
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from rescue_feed.utils.datetime_utils import DateTimeUtils


class UserRole(Enum):
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


class AdoptionStatus(Enum):
    AVAILABLE = "available"
    PENDING = "pending"
    ADOPTED = "adopted"


@dataclass
class User:
    """
    Firestore 'users' 컬렉션의 문서 구조를 정의하는 데이터클래스.
    """
    user_id: str
    name: str
    avatar_url: Optional[str] = None
    role: str = UserRole.USER.value
    clinic_id: Optional[str] = None  # 클리닉 직원인 경우 소속 클리닉


@dataclass
class Adoption:
    """Firestore 'adoptions' 컬렉션 문서. 긴급 케이스와 별개인 입양 흐름."""
    adoption_id: str
    user_id: str
    name: str
    animal_type: str
    status: str = AdoptionStatus.AVAILABLE.value
    created_at: datetime = field(default_factory=DateTimeUtils.now)


@dataclass
class Achievement:
    """Firestore 'achievements' 컬렉션 문서."""
    achievement_id: str
    user_id: str
    type: str
    unlocked_at: datetime = field(default_factory=DateTimeUtils.now)


@dataclass
class Announcement:
    """운영팀이 큐레이션하는 시스템 공지 ('announcements' 컬렉션)."""
    announcement_id: str
    title: str
    subtitle: str
    published_at: datetime
    emoji: Optional[str] = None
    active: bool = True
