# rescue_feed/api/cases/test_services.py
import threading
from datetime import timedelta

import pytest

from rescue_feed.api.cases.services import CaseService
from rescue_feed.core.errors import (
    ConflictError, InvalidTransitionError, NotFoundError, UnauthorizedError, ValidationError
)
from rescue_feed.services.entity_store import InMemoryEntityStore, CASES
from rescue_feed.utils.cursor import encode_cursor
from rescue_feed.utils.datetime_utils import DateTimeUtils

ms = DateTimeUtils.from_timestamp_ms


@pytest.fixture
def service(store, storage):
    return CaseService(store, storage_service=storage)


def _collect_all_pages(service, limit, **filters):
    seen, cursor, pages = [], None, 0
    while True:
        page = service.list_cases(limit, cursor=cursor, **filters)
        pages += 1
        seen.extend(item['case_id'] for item in page['items'])
        if not page['has_more']:
            assert page['next_cursor'] is None
            return seen, pages
        cursor = page['next_cursor']


# --- 목록 / 페이지네이션 ---
def test_list_cases_newest_first(service, make_case):
    make_case("a", 1000)
    make_case("b", 3000)
    make_case("c", 2000)

    page = service.list_cases(10)

    assert [c['case_id'] for c in page['items']] == ["b", "c", "a"]
    assert page['has_more'] is False
    assert page['next_cursor'] is None


def test_pagination_with_duplicate_timestamps_visits_every_case_once(service, make_case):
    for i in range(7):
        make_case(f"dup-{i}", 5000)
    for i in range(4):
        make_case(f"old-{i}", 1000 + i)

    seen, _ = _collect_all_pages(service, limit=3)

    assert len(seen) == 11
    assert len(set(seen)) == 11
    assert seen[:7] == sorted([f"dup-{i}" for i in range(7)], reverse=True)


def test_exact_multiple_of_limit_needs_no_extra_request(service, make_case):
    for i in range(6):
        make_case(f"case-{i}", 1000 + i)

    seen, pages = _collect_all_pages(service, limit=3)

    assert len(seen) == 6
    assert pages == 2


def test_list_cases_filters(service, make_case):
    make_case("mine", 1000, owner_user_id="u1")
    make_case("other", 2000, owner_user_id="u2")
    make_case("adopting", 3000, owner_user_id="u1", lifecycle_stage="seeking_adoption")

    page = service.list_cases(10, owner_user_id="u1", lifecycle_stage="active_treatment")

    assert [c['case_id'] for c in page['items']] == ["mine"]


def test_legacy_timestamp_cursor_returns_strictly_older(service, make_case):
    make_case("a", 1000)
    make_case("b", 2000)
    make_case("c", 2000)

    page = service.list_cases(10, cursor="2000")

    assert [c['case_id'] for c in page['items']] == ["a"]


@pytest.mark.parametrize("cursor", ["%%%garbage", "99999999999999999999"])
def test_malformed_cursor_raises_validation_error(service, make_case, cursor):
    make_case("a", 1000)
    with pytest.raises(ValidationError) as exc_info:
        service.list_cases(10, cursor=cursor)
    assert exc_info.value.error_code == "INVALID_CURSOR"


def test_cursor_to_deleted_case_still_continues(service, store, make_case):
    make_case("a", 1000)
    make_case("b", 2000)
    # "z" 케이스는 삭제되어 존재하지 않지만 커서의 위치(created_at, case_id)만으로 이어서 조회됨
    cursor = encode_cursor(ms(2000), "z")

    page = service.list_cases(10, cursor=cursor)

    assert [c['case_id'] for c in page['items']] == ["b", "a"]


def test_list_item_shape(service, make_case):
    make_case("a", 1000, images=["cases/a/cover.jpg"], lifecycle_stage="closed_success")

    item = service.list_cases(1)['items'][0]

    assert item['image_urls'] == ["https://storage.test/cases/a/cover.jpg"]
    assert item['is_donation_allowed'] is False


def test_get_case_not_found(service):
    with pytest.raises(NotFoundError):
        service.get_case("missing")


# --- 라이프사이클 전이 ---
def test_transition_to_closed_records_reason_and_milestone(service, make_case):
    make_case("c1", 1000)
    before = DateTimeUtils.now()

    updated = service.transition_lifecycle("c1", "owner-1", "closed_success")

    assert updated['lifecycle_stage'] == "closed_success"
    assert updated['closed_reason'] == "success"
    assert updated['closed_at'] >= before
    assert updated['lifecycle_updated_at'] == updated['closed_at']
    assert updated['is_donation_allowed'] is False
    milestone = updated['updates'][-1]
    assert milestone['type'] == "milestone"
    assert milestone['author_role'] == "owner"


def test_transition_notes_become_closed_reason(service, make_case):
    make_case("c1", 1000, lifecycle_stage="seeking_adoption")

    updated = service.transition_lifecycle("c1", "owner-1", "closed_transferred", notes="  Moved to Berlin shelter ")

    assert updated['closed_reason'] == "Moved to Berlin shelter"


def test_transition_to_seeking_adoption_keeps_case_open(service, make_case):
    make_case("c1", 1000)

    updated = service.transition_lifecycle("c1", "owner-1", "seeking_adoption")

    assert updated['lifecycle_stage'] == "seeking_adoption"
    assert updated.get('closed_at') is None
    assert updated['is_donation_allowed'] is True


def test_invalid_transition_leaves_case_unchanged(service, store, make_case):
    make_case("c1", 1000, lifecycle_stage="closed_other")
    snapshot = store.get(CASES, "c1")

    with pytest.raises(InvalidTransitionError):
        service.transition_lifecycle("c1", "owner-1", "seeking_adoption")

    assert store.get(CASES, "c1") == snapshot


def test_unknown_target_stage_is_validation_error(service, make_case):
    make_case("c1", 1000)
    with pytest.raises(ValidationError):
        service.transition_lifecycle("c1", "owner-1", "archived")


def test_transition_missing_case(service):
    with pytest.raises(NotFoundError):
        service.transition_lifecycle("missing", "owner-1", "closed_other")


def test_non_manager_is_rejected(service, store, make_case, make_user):
    make_case("c1", 1000)
    make_user("stranger")
    snapshot = store.get(CASES, "c1")

    with pytest.raises(UnauthorizedError):
        service.transition_lifecycle("c1", "stranger", "closed_success")

    assert store.get(CASES, "c1") == snapshot


def test_moderator_and_clinic_staff_can_manage(service, make_case, make_user):
    make_case("c1", 1000, clinic_id="clinic-9")
    make_user("mod", role="moderator")
    make_user("vet", clinic_id="clinic-9")

    service.transition_lifecycle("c1", "vet", "seeking_adoption")
    updated = service.transition_lifecycle("c1", "mod", "closed_success")

    assert [u['author_role'] for u in updated['updates']] == ["clinic", "moderator"]


def test_stale_expected_stage_is_conflict(service, make_case):
    make_case("c1", 1000)

    service.transition_lifecycle("c1", "owner-1", "closed_success", expected_stage="active_treatment")
    with pytest.raises(ConflictError):
        service.transition_lifecycle("c1", "owner-1", "closed_other", expected_stage="active_treatment")


class _BarrierStore(InMemoryEntityStore):
    """두 요청이 모두 케이스를 읽은 뒤에야 진행되도록 get 에서 대기합니다."""

    def __init__(self, parties):
        super().__init__()
        self.barrier = threading.Barrier(parties, timeout=5)
        self.armed = False

    def get(self, collection, doc_id):
        doc = super().get(collection, doc_id)
        if self.armed and collection == CASES:
            self.barrier.wait()
        return doc


def test_concurrent_transitions_exactly_one_wins():
    store = _BarrierStore(parties=2)
    service = CaseService(store)
    store.set(CASES, "c1", {
        "case_id": "c1", "owner_user_id": "owner-1", "title": "t", "description": "d",
        "lifecycle_stage": "active_treatment", "fundraising": {"goal": 100}, "updates": [],
        "created_at": ms(1000),
    })
    store.armed = True
    results, errors = [], []

    def _attempt(target):
        try:
            results.append(service.transition_lifecycle("c1", "owner-1", target))
        except ConflictError as e:
            errors.append(e)

    threads = [threading.Thread(target=_attempt, args=(t,)) for t in ("closed_success", "closed_other")]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert len(results) == 1
    assert len(errors) == 1
    store.armed = False
    final = store.get(CASES, "c1")
    assert final['lifecycle_stage'] == results[0]['lifecycle_stage']
    assert len(final['updates']) == 1


# --- 업데이트 추가 ---
def test_add_update_appends_in_order(service, make_case):
    make_case("c1", 1000)
    frozen = DateTimeUtils.now()
    service.clock = lambda: frozen

    service.add_case_update("c1", "owner-1", "Surgery went well", update_type="medical")
    updated = service.add_case_update("c1", "owner-1", "Eating again")

    dates = [u['date'] for u in updated['updates']]
    assert [u['text'] for u in updated['updates']] == ["Surgery went well", "Eating again"]
    assert dates[1] > dates[0]
    assert dates[1] - dates[0] == timedelta(microseconds=1)


def test_add_update_rejects_blank_text(service, make_case):
    make_case("c1", 1000)
    with pytest.raises(ValidationError):
        service.add_case_update("c1", "owner-1", "   ")


def test_add_update_rejects_unknown_type(service, make_case):
    make_case("c1", 1000)
    with pytest.raises(ValidationError):
        service.add_case_update("c1", "owner-1", "hello", update_type="gossip")


def test_add_update_requires_uploaded_images(service, make_case):
    make_case("c1", 1000)

    with pytest.raises(ValidationError):
        service.add_case_update("c1", "owner-1", "Bill attached", images=["cases/c1/missing.jpg"])

    updated = service.add_case_update("c1", "owner-1", "X-ray", images=["cases/c1/xray.jpg"],
                                      evidence_type="clinic_photo")
    entry = updated['updates'][-1]
    assert entry['evidence_type'] == "clinic_photo"
    assert entry['image_urls'] == ["https://storage.test/cases/c1/xray.jpg"]


def test_add_update_allowed_on_closed_case(service, make_case):
    make_case("c1", 1000, lifecycle_stage="closed_success")

    updated = service.add_case_update("c1", "owner-1", "Happy in the new home", update_type="success")

    assert updated['lifecycle_stage'] == "closed_success"
    assert updated['updates'][-1]['type'] == "success"


def test_add_update_by_stranger_is_rejected(service, make_case):
    make_case("c1", 1000)
    with pytest.raises(UnauthorizedError):
        service.add_case_update("c1", "stranger", "hi")
