# rescue_feed/api/feed/routes.py
import logging
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity

from rescue_feed.core.errors import DomainError
from .schemas import ActivityResponseSchema

feed_bp = Blueprint('feed_bp', __name__)


def _requested_limit() -> int:
    # 범위 밖의 값은 FeedService 가 [1, FEED_MAX_LIMIT] 로 보정합니다.
    return request.args.get('limit', current_app.config['FEED_DEFAULT_LIMIT'], type=int)


@feed_bp.route('/global', methods=['GET'])
def get_global_feed():
    """커뮤니티 전체 활동 피드."""
    feed_service = current_app.services['feed']
    try:
        activities = feed_service.get_global_feed(_requested_limit())
        return jsonify(ActivityResponseSchema(many=True).dump(activities)), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception as e:
        logging.error(f"Global feed API error: {e}", exc_info=True)
        return jsonify({"error_code": "FETCH_FAILED", "message": "피드 조회 중 오류가 발생했습니다."}), 500


@feed_bp.route('/users/<string:user_id>', methods=['GET'])
@jwt_required(optional=True)
def get_user_feed(user_id: str):
    """특정 사용자의 활동 피드. 로그인한 본인이 조회할 때만 익명 기부가 포함됩니다."""
    feed_service = current_app.services['feed']
    viewer_id = get_jwt_identity()
    try:
        activities = feed_service.get_user_feed(user_id, _requested_limit(), viewer_id=viewer_id)
        return jsonify(ActivityResponseSchema(many=True).dump(activities)), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception as e:
        logging.error(f"User feed API error (user_id: {user_id}): {e}", exc_info=True)
        return jsonify({"error_code": "FETCH_FAILED", "message": "피드 조회 중 오류가 발생했습니다."}), 500


@feed_bp.route('/cases/<string:case_id>', methods=['GET'])
def get_case_feed(case_id: str):
    feed_service = current_app.services['feed']
    try:
        activities = feed_service.get_case_feed(case_id, _requested_limit())
        return jsonify(ActivityResponseSchema(many=True).dump(activities)), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception as e:
        logging.error(f"Case feed API error (case_id: {case_id}): {e}", exc_info=True)
        return jsonify({"error_code": "FETCH_FAILED", "message": "피드 조회 중 오류가 발생했습니다."}), 500


@feed_bp.route('/announcements', methods=['GET'])
def get_announcements():
    feed_service = current_app.services['feed']
    try:
        activities = feed_service.get_system_announcements(_requested_limit())
        return jsonify(ActivityResponseSchema(many=True).dump(activities)), 200
    except Exception as e:
        logging.error(f"Announcements API error: {e}", exc_info=True)
        return jsonify({"error_code": "FETCH_FAILED", "message": "공지 조회 중 오류가 발생했습니다."}), 500
