# rescue_feed/services/storage_service.py
import logging
from typing import Iterable, List, Optional
from flask import Flask
from firebase_admin import storage


class StorageService:
    """
    Firebase Storage 관련 로직을 담당하는 서비스 클래스입니다.
    케이스/업데이트 이미지의 저장 경로(blob 이름)를 클라이언트가 받아갈 수 있는 URL로 변환합니다.
    """

    def __init__(self):
        """
        클래스 인스턴스 생성 시 버킷을 None으로 초기화합니다.
        실제 버킷 객체는 init_app 메서드를 통해 주입됩니다.
        """
        self.bucket = None

    def init_app(self, app: Flask):
        """
        Flask 앱 초기화 과정에서 호출되어 Storage 버킷을 설정합니다.

        :param app: Flask 애플리케이션 객체
        """
        bucket_name = app.config.get('FIREBASE_STORAGE_BUCKET')
        if not bucket_name:
            raise ValueError("FIREBASE_STORAGE_BUCKET 설정이 .env 또는 설정 파일에 필요합니다.")

        self.bucket = storage.bucket(bucket_name)
        logging.info("StorageService: Firebase Storage 서비스가 성공적으로 초기화되었습니다.")

    def _require_bucket(self):
        if not self.bucket:
            raise RuntimeError("StorageService가 초기화되지 않았습니다. init_app을 먼저 호출해주세요.")
        return self.bucket

    def get_image_url(self, image_ref: Optional[str]) -> Optional[str]:
        """
        저장된 이미지 참조를 조회 가능한 URL로 변환합니다.
        이미 http(s) URL 인 참조는 그대로 반환하고, 빈 참조는 None 을 반환합니다.

        :param image_ref: Storage blob 경로 (예: "cases/{case_id}/abc.jpg") 또는 URL
        :return: 공개 URL 또는 None
        """
        if not image_ref:
            return None
        if image_ref.startswith(("http://", "https://")):
            return image_ref
        return self._require_bucket().blob(image_ref).public_url

    def get_image_urls(self, image_refs: Iterable[str]) -> List[str]:
        """여러 이미지 참조를 URL 목록으로 변환합니다. 변환되지 않는 참조는 건너뜁니다."""
        urls = []
        for ref in image_refs or []:
            url = self.get_image_url(ref)
            if url:
                urls.append(url)
        return urls

    def image_exists(self, image_ref: str) -> bool:
        """업로드가 끝난 이미지인지 확인합니다. URL 형태의 참조는 외부 이미지로 보고 허용합니다."""
        if image_ref.startswith(("http://", "https://")):
            return True
        try:
            return self._require_bucket().blob(image_ref).exists()
        except RuntimeError:
            raise
        except Exception as e:
            logging.error(f"Storage 이미지 존재 확인 실패 (ref: {image_ref}): {e}", exc_info=True)
            return False
