# rescue_feed/api/cases/lifecycle.py
"""
케이스 라이프사이클 상태 머신.

    active_treatment ──► seeking_adoption ──► closed_success
           │                                  closed_transferred
           └──────────────────────────────►   closed_other

전이는 단방향이며 closed_* 단계에서는 어떤 단계로도 나갈 수 없습니다.
허용 전이는 이 모듈의 ALLOWED_TRANSITIONS 한 곳에서만 정의합니다.
"""

from typing import Dict, FrozenSet, Optional

from rescue_feed.core.errors import InvalidTransitionError, ValidationError
from rescue_feed.models.case import LifecycleStage

INITIAL_STAGE = LifecycleStage.ACTIVE_TREATMENT

CLOSED_STAGES: FrozenSet[LifecycleStage] = frozenset({
    LifecycleStage.CLOSED_SUCCESS,
    LifecycleStage.CLOSED_TRANSFERRED,
    LifecycleStage.CLOSED_OTHER,
})

ALLOWED_TRANSITIONS: Dict[LifecycleStage, FrozenSet[LifecycleStage]] = {
    LifecycleStage.ACTIVE_TREATMENT: frozenset({LifecycleStage.SEEKING_ADOPTION}) | CLOSED_STAGES,
    LifecycleStage.SEEKING_ADOPTION: CLOSED_STAGES,
    LifecycleStage.CLOSED_SUCCESS: frozenset(),
    LifecycleStage.CLOSED_TRANSFERRED: frozenset(),
    LifecycleStage.CLOSED_OTHER: frozenset(),
}

# notes 가 없을 때 closed_reason 에 기록되는 기본값
DEFAULT_CLOSED_REASONS: Dict[LifecycleStage, str] = {
    LifecycleStage.CLOSED_SUCCESS: "success",
    LifecycleStage.CLOSED_TRANSFERRED: "transferred",
    LifecycleStage.CLOSED_OTHER: "other",
}

_TRANSITION_MESSAGES: Dict[LifecycleStage, str] = {
    LifecycleStage.SEEKING_ADOPTION: "Treatment finished - now looking for a home",
    LifecycleStage.CLOSED_SUCCESS: "Case closed: success",
    LifecycleStage.CLOSED_TRANSFERRED: "Case closed: transferred",
    LifecycleStage.CLOSED_OTHER: "Case closed",
}


def normalize_stage(raw: Optional[str]) -> LifecycleStage:
    """저장된 값이 없거나 알 수 없는 값이면 초기 단계로 간주합니다."""
    try:
        return LifecycleStage(raw)
    except ValueError:
        return INITIAL_STAGE


def parse_stage(raw) -> LifecycleStage:
    """요청으로 들어온 단계 값을 검증합니다."""
    if isinstance(raw, LifecycleStage):
        return raw
    try:
        return LifecycleStage(raw)
    except ValueError:
        allowed = ", ".join(stage.value for stage in LifecycleStage)
        raise ValidationError(f"알 수 없는 라이프사이클 단계입니다: {raw} (허용: {allowed})")


def is_closed(stage: LifecycleStage) -> bool:
    return stage in CLOSED_STAGES


def can_transition(current: LifecycleStage, target: LifecycleStage) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def assert_transition(current: LifecycleStage, target: LifecycleStage) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)


def transition_update_text(target: LifecycleStage, notes: Optional[str]) -> str:
    """전이 시 updates 에 남길 마일스톤 문구."""
    text = _TRANSITION_MESSAGES[target]
    if notes:
        text = f"{text} - {notes}"
    return text
