# rescue_feed/__init__.py

# =====================================================================================
# 1. 환경 변수 로드 (가장 먼저 실행)
# =====================================================================================
from dotenv import load_dotenv
load_dotenv()

# =====================================================================================
# 2. 모듈 임포트 (Module Imports)
# =====================================================================================
import os
import logging
from flask import Flask, jsonify
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
import firebase_admin
from firebase_admin import credentials

# - 설정 및 오류
from rescue_feed.core.config import config_by_name
from rescue_feed.core.errors import DomainError

# - API 블루프린트
from rescue_feed.api.feed.routes import feed_bp
from rescue_feed.api.cases.routes import cases_bp

# - 서비스
from rescue_feed.services.entity_store import FirestoreEntityStore, InMemoryEntityStore
from rescue_feed.services.storage_service import StorageService
from rescue_feed.api.feed.services import FeedService
from rescue_feed.api.cases.services import CaseService


def _init_firebase(app: Flask) -> None:
    if firebase_admin._apps:
        return
    cred_path = app.config.get('FIREBASE_CREDENTIALS_PATH')
    if not cred_path or not os.path.exists(cred_path):
        raise FileNotFoundError(f"Firebase 인증 파일을 찾을 수 없습니다: {cred_path}")
    cred = credentials.Certificate(cred_path)
    firebase_admin.initialize_app(cred, {
        'storageBucket': app.config['FIREBASE_STORAGE_BUCKET']
    })


def create_app(config_name=None, store=None, storage_service=None):
    """
    Flask 애플리케이션 팩토리 함수.

    :param config_name: 'development' | 'testing' | 'production'. 없으면 FLASK_ENV 값을 사용합니다.
    :param store: 주입할 EntityStore. 없으면 STORE_BACKEND 설정에 따라 생성합니다.
    :param storage_service: 주입할 StorageService. 없으면 Firebase 가 초기화된 경우에만 생성합니다.
    """
    # =====================================================================================
    # 3. Flask 앱 생성 및 기본 설정
    # =====================================================================================
    config_name = config_name or os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])
    app.json.ensure_ascii = False

    # =====================================================================================
    # 4. 확장 기능 및 외부 서비스 초기화
    # =====================================================================================
    JWTManager(app)

    if store is None:
        if app.config['STORE_BACKEND'] == 'memory':
            logging.warning("STORE_BACKEND=memory: 데이터가 프로세스 메모리에만 보관됩니다.")
            store = InMemoryEntityStore()
        else:
            _init_firebase(app)
            store = FirestoreEntityStore()

    if storage_service is None and firebase_admin._apps and app.config.get('FIREBASE_STORAGE_BUCKET'):
        try:
            storage_service = StorageService()
            storage_service.init_app(app)
        except Exception as e:
            logging.error(f"Failed to initialize storage service: {e}")
            raise
    if storage_service is None:
        logging.warning("Storage service is not configured. Image URLs will be omitted.")

    # =====================================================================================
    # 5. 서비스 인스턴스 생성 및 'app.services'에 저장 (의존성 주입)
    # =====================================================================================
    app.services = {
        'store': store,
        'storage': storage_service,
    }
    app.services['feed'] = FeedService(
        store=store,
        storage_service=storage_service,
        default_limit=app.config['FEED_DEFAULT_LIMIT'],
        max_limit=app.config['FEED_MAX_LIMIT']
    )
    app.services['cases'] = CaseService(store=store, storage_service=storage_service)
    logging.info("Feed and case services initialized successfully")

    # =====================================================================================
    # 6. 블루프린트 등록
    # =====================================================================================
    app.register_blueprint(feed_bp, url_prefix='/api/feed')
    app.register_blueprint(cases_bp, url_prefix='/api/cases')

    # =====================================================================================
    # 7. 전역 에러 핸들러 설정
    # =====================================================================================
    @app.errorhandler(ValidationError)
    def handle_marshmallow_validation(err):
        response = {"error_code": "VALIDATION_ERROR", "details": err.messages}
        return jsonify(response), 400

    @app.errorhandler(DomainError)
    def handle_domain_error(err):
        return jsonify(err.to_dict()), err.http_status

    @app.errorhandler(HTTPException)
    def handle_http_exception(err):
        response = {"error_code": err.name.upper().replace(' ', '_'), "message": err.description}
        return jsonify(response), err.code

    @app.errorhandler(Exception)
    def handle_generic_exception(err):
        # 다른 핸들러에서 처리되지 않은 모든 예외를 여기서 처리
        logging.error(f"An unhandled exception occurred: {err}", exc_info=True)
        response = {"error_code": "INTERNAL_SERVER_ERROR", "message": "서버 내부에서 예상치 못한 오류가 발생했습니다."}
        return jsonify(response), 500

    # =====================================================================================
    # 8. 로깅 및 앱 반환
    # =====================================================================================
    if not app.debug:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]')

    logging.info(f"Flask app created for '{config_name}' environment.")

    return app
