# rescue_feed/api/cases/routes.py
import logging
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity
from marshmallow import ValidationError

from rescue_feed.core.errors import DomainError
from .schemas import (
    CaseListQuerySchema,
    LifecycleTransitionSchema,
    CaseUpdateCreateSchema,
    CaseResponseSchema,
    CasePageResponseSchema
)

cases_bp = Blueprint('cases_bp', __name__)


@cases_bp.route('', methods=['GET'])
def list_cases():
    """커서 기반 케이스 목록 조회 API. 다음 페이지는 응답의 next_cursor 로 요청합니다."""
    case_service = current_app.services['cases']
    try:
        params = CaseListQuerySchema().load(request.args)
        limit = params.pop('limit', current_app.config['CASES_DEFAULT_LIMIT'])
        page = case_service.list_cases(limit, **params)
        return jsonify(CasePageResponseSchema().dump(page)), 200
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception as e:
        logging.error(f"List cases API error: {e}", exc_info=True)
        return jsonify({"error_code": "FETCH_FAILED", "message": "케이스 목록 조회 중 오류가 발생했습니다."}), 500


@cases_bp.route('/<string:case_id>', methods=['GET'])
def get_case(case_id: str):
    case_service = current_app.services['cases']
    try:
        case_data = case_service.get_case(case_id)
        return jsonify(CaseResponseSchema().dump(case_data)), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception as e:
        logging.error(f"Get case API error (case_id: {case_id}): {e}", exc_info=True)
        return jsonify({"error_code": "FETCH_FAILED", "message": "케이스 조회 중 오류가 발생했습니다."}), 500


@cases_bp.route('/<string:case_id>/lifecycle', methods=['POST'])
@jwt_required()
def transition_lifecycle(case_id: str):
    """
    [관리자 전용] 케이스 라이프사이클 단계 전환 API.
    409 응답은 허용되지 않은 전이(INVALID_TRANSITION) 또는 동시 변경 충돌(CONFLICT)입니다.
    """
    user_id = get_jwt_identity()
    case_service = current_app.services['cases']
    try:
        data = LifecycleTransitionSchema().load(request.get_json() or {})
        updated_case = case_service.transition_lifecycle(
            case_id, user_id, data['target_stage'],
            notes=data.get('notes'), expected_stage=data.get('expected_stage'))
        return jsonify(CaseResponseSchema().dump(updated_case)), 200
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception as e:
        logging.error(f"Lifecycle transition API error (case_id: {case_id}): {e}", exc_info=True)
        return jsonify({"error_code": "TRANSITION_FAILED", "message": "단계 전환 중 오류가 발생했습니다."}), 500


@cases_bp.route('/<string:case_id>/updates', methods=['POST'])
@jwt_required()
def add_case_update(case_id: str):
    """[관리자 전용] 케이스 타임라인에 업데이트를 추가합니다. 종료된 케이스에도 작성할 수 있습니다."""
    user_id = get_jwt_identity()
    case_service = current_app.services['cases']
    try:
        data = CaseUpdateCreateSchema().load(request.get_json() or {})
        updated_case = case_service.add_case_update(
            case_id, user_id, data['text'],
            update_type=data['type'], images=data['images'], evidence_type=data.get('evidence_type'))
        return jsonify(CaseResponseSchema().dump(updated_case)), 201
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception as e:
        logging.error(f"Add case update API error (case_id: {case_id}): {e}", exc_info=True)
        return jsonify({"error_code": "UPDATE_FAILED", "message": "업데이트 추가 중 오류가 발생했습니다."}), 500
