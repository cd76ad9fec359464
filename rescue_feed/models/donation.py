# rescue_feed/models/donation.py
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from rescue_feed.utils.datetime_utils import DateTimeUtils


class DonationStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


@dataclass
class Donation:
    """
    Firestore 'donations' 컬렉션의 문서 구조.
    anonymous 여도 원본 문서에는 user_id 가 남으며, 피드에서만 신원을 가립니다.
    """
    donation_id: str
    user_id: str
    amount: float
    currency: str
    case_id: Optional[str] = None
    status: str = DonationStatus.PENDING.value
    anonymous: bool = False
    created_at: datetime = field(default_factory=DateTimeUtils.now)
