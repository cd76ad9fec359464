# rescue_feed/services/test_storage_service.py
from unittest import mock

import pytest

from rescue_feed.services.storage_service import StorageService


@pytest.fixture
def storage_service():
    service = StorageService()
    service.bucket = mock.Mock()
    service.bucket.blob.return_value.public_url = "https://cdn.test/cases/c1/a.jpg"
    return service


def test_get_image_url(storage_service):
    assert storage_service.get_image_url(None) is None
    assert storage_service.get_image_url("https://elsewhere.test/x.jpg") == "https://elsewhere.test/x.jpg"
    assert storage_service.get_image_url("cases/c1/a.jpg") == "https://cdn.test/cases/c1/a.jpg"
    storage_service.bucket.blob.assert_called_with("cases/c1/a.jpg")


def test_get_image_urls_skips_empty(storage_service):
    assert storage_service.get_image_urls(["", "cases/c1/a.jpg"]) == ["https://cdn.test/cases/c1/a.jpg"]


def test_image_exists(storage_service):
    storage_service.bucket.blob.return_value.exists.return_value = False
    assert storage_service.image_exists("cases/c1/a.jpg") is False
    assert storage_service.image_exists("https://elsewhere.test/x.jpg") is True


def test_uninitialized_service_raises():
    with pytest.raises(RuntimeError):
        StorageService().get_image_url("cases/c1/a.jpg")


def test_init_app_requires_bucket_name():
    app = mock.Mock()
    app.config = {}
    with pytest.raises(ValueError):
        StorageService().init_app(app)
