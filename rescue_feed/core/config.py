# rescue_feed/core/config.py

import os


def _int_env(key: str, default: int) -> int:
    value = os.getenv(key)
    return int(value) if value else default


class Config:
    """모든 환경 설정의 기반이 되는 공통 설정 클래스입니다."""
    # JWT 토큰 서명 키. 케이스 변경 API의 사용자 식별(get_jwt_identity)에 사용됩니다.
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY')
    FIREBASE_STORAGE_BUCKET = os.getenv('FIREBASE_STORAGE_BUCKET')

    # 'firestore' (기본) 또는 'memory' (로컬 개발용 인메모리 저장소)
    STORE_BACKEND = os.getenv('STORE_BACKEND', 'firestore')

    # 피드/목록 조회 개수 제한
    FEED_DEFAULT_LIMIT = _int_env('FEED_DEFAULT_LIMIT', 10)
    FEED_MAX_LIMIT = _int_env('FEED_MAX_LIMIT', 50)
    CASES_DEFAULT_LIMIT = _int_env('CASES_DEFAULT_LIMIT', 12)
    CASES_MAX_LIMIT = _int_env('CASES_MAX_LIMIT', 30)


class DevelopmentConfig(Config):
    """개발 환경을 위한 설정 클래스입니다."""
    DEBUG = True
    FIREBASE_CREDENTIALS_PATH = os.getenv('DEV_FIREBASE_CREDENTIALS_PATH')


class TestingConfig(Config):
    """테스트 환경을 위한 설정 클래스입니다."""
    TESTING = True
    DEBUG = False
    FIREBASE_CREDENTIALS_PATH = os.getenv('TEST_FIREBASE_CREDENTIALS_PATH')
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'testing-secret-key-with-enough-length')


class ProductionConfig(Config):
    """운영 환경 설정. Firestore 만 사용합니다."""
    DEBUG = False
    FIREBASE_CREDENTIALS_PATH = os.getenv('FIREBASE_CREDENTIALS_PATH')
    STORE_BACKEND = 'firestore'


# FLASK_ENV 값에 따라 create_app 에서 설정 클래스를 선택합니다.
config_by_name = dict(
    development=DevelopmentConfig,
    testing=TestingConfig,
    production=ProductionConfig
)
