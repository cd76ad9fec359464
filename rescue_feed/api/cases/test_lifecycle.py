# rescue_feed/api/cases/test_lifecycle.py
import pytest

from rescue_feed.api.cases.lifecycle import (
    ALLOWED_TRANSITIONS, CLOSED_STAGES, INITIAL_STAGE,
    normalize_stage, parse_stage, can_transition, assert_transition, transition_update_text,
)
from rescue_feed.core.errors import InvalidTransitionError, ValidationError
from rescue_feed.models.case import LifecycleStage as S


@pytest.mark.parametrize("current,target", [
    (S.ACTIVE_TREATMENT, S.SEEKING_ADOPTION),
    (S.ACTIVE_TREATMENT, S.CLOSED_SUCCESS),
    (S.ACTIVE_TREATMENT, S.CLOSED_TRANSFERRED),
    (S.ACTIVE_TREATMENT, S.CLOSED_OTHER),
    (S.SEEKING_ADOPTION, S.CLOSED_SUCCESS),
    (S.SEEKING_ADOPTION, S.CLOSED_TRANSFERRED),
    (S.SEEKING_ADOPTION, S.CLOSED_OTHER),
])
def test_allowed_transitions(current, target):
    assert can_transition(current, target)
    assert_transition(current, target)


def test_every_other_pair_is_rejected():
    allowed = {
        (S.ACTIVE_TREATMENT, S.SEEKING_ADOPTION),
        (S.SEEKING_ADOPTION, S.CLOSED_SUCCESS),
        (S.SEEKING_ADOPTION, S.CLOSED_TRANSFERRED),
        (S.SEEKING_ADOPTION, S.CLOSED_OTHER),
    } | {(S.ACTIVE_TREATMENT, closed) for closed in CLOSED_STAGES}

    for current in S:
        for target in S:
            if (current, target) in allowed:
                continue
            with pytest.raises(InvalidTransitionError):
                assert_transition(current, target)


def test_closed_stages_are_terminal():
    for stage in CLOSED_STAGES:
        assert ALLOWED_TRANSITIONS[stage] == frozenset()


def test_no_backward_or_self_transition():
    assert not can_transition(S.SEEKING_ADOPTION, S.ACTIVE_TREATMENT)
    assert not can_transition(S.ACTIVE_TREATMENT, S.ACTIVE_TREATMENT)


def test_normalize_stage_defaults_to_initial():
    assert normalize_stage(None) is INITIAL_STAGE
    assert normalize_stage("something_old") is INITIAL_STAGE
    assert normalize_stage("seeking_adoption") is S.SEEKING_ADOPTION


def test_parse_stage_rejects_unknown_value():
    assert parse_stage("closed_other") is S.CLOSED_OTHER
    with pytest.raises(ValidationError):
        parse_stage("archived")


def test_transition_update_text_includes_notes():
    assert transition_update_text(S.CLOSED_SUCCESS, None) == "Case closed: success"
    assert transition_update_text(S.CLOSED_SUCCESS, "Adopted by a family").endswith("Adopted by a family")
