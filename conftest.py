# conftest.py
from dataclasses import asdict

import pytest
from flask_jwt_extended import create_access_token

from rescue_feed import create_app
from rescue_feed.models.case import Case, Fundraising
from rescue_feed.models.community import User
from rescue_feed.models.donation import Donation
from rescue_feed.services.entity_store import InMemoryEntityStore, CASES, USERS, DONATIONS
from rescue_feed.utils.datetime_utils import DateTimeUtils


def ms(value: int):
    """epoch 밀리초를 UTC datetime 으로 (테스트 데이터 작성용)."""
    return DateTimeUtils.from_timestamp_ms(value)


class FakeStorageService:
    """Firebase Storage 없이 이미지 참조를 URL 로 바꿔주는 테스트용 StorageService."""

    def __init__(self, uploaded=()):
        self.uploaded = set(uploaded)

    def get_image_url(self, image_ref):
        if not image_ref:
            return None
        return f"https://storage.test/{image_ref}"

    def get_image_urls(self, image_refs):
        return [self.get_image_url(ref) for ref in image_refs or [] if ref]

    def image_exists(self, image_ref):
        return image_ref in self.uploaded


@pytest.fixture
def store():
    return InMemoryEntityStore()


@pytest.fixture
def storage():
    return FakeStorageService(uploaded={"cases/c1/xray.jpg"})


@pytest.fixture
def make_case(store):
    def _make_case(case_id, created_at_ms, owner_user_id="owner-1", goal=1000, current=0, **extra):
        data = Case(
            case_id=case_id,
            owner_user_id=owner_user_id,
            title=f"Case {case_id}",
            description="Hit by a car, needs surgery",
            fundraising=Fundraising(goal=goal, current=current),
            created_at=ms(created_at_ms),
        ).to_dict()
        data.update(extra)
        store.set(CASES, case_id, data)
        return data
    return _make_case


@pytest.fixture
def make_user(store):
    def _make_user(user_id, name=None, role="user", clinic_id=None):
        data = asdict(User(user_id=user_id, name=name or user_id, role=role, clinic_id=clinic_id))
        store.set(USERS, user_id, data)
        return data
    return _make_user


@pytest.fixture
def make_donation(store):
    def _make_donation(donation_id, case_id, user_id, amount, created_at_ms, anonymous=False, status="completed"):
        data = asdict(Donation(donation_id=donation_id, user_id=user_id, amount=amount, currency="EUR",
                               case_id=case_id, status=status, anonymous=anonymous, created_at=ms(created_at_ms)))
        store.set(DONATIONS, donation_id, data)
        return data
    return _make_donation


@pytest.fixture
def app(store, storage):
    app = create_app('testing', store=store, storage_service=storage)
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(app):
    def _auth_headers(user_id):
        with app.app_context():
            token = create_access_token(identity=user_id)
        return {"Authorization": f"Bearer {token}"}
    return _auth_headers
