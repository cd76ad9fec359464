# rescue_feed/api/cases/schemas.py
from marshmallow import Schema, fields, validate, pre_load, EXCLUDE
from flask import current_app

from rescue_feed.models.case import CaseStatus, LifecycleStage, UpdateType, EvidenceType


def _max_case_limit(value):
    max_limit = current_app.config.get('CASES_MAX_LIMIT', 30)
    return validate.Range(min=1, max=max_limit)(value)


class CaseListQuerySchema(Schema):
    """GET /api/cases 쿼리 파라미터 스키마."""
    class Meta:
        unknown = EXCLUDE

    limit = fields.Int(validate=_max_case_limit)
    cursor = fields.Str(validate=validate.Length(min=1))
    status = fields.Str(validate=validate.OneOf([e.value for e in CaseStatus]))
    lifecycle_stage = fields.Str(validate=validate.OneOf([e.value for e in LifecycleStage]))
    owner_user_id = fields.Str(validate=validate.Length(min=1))


class LifecycleTransitionSchema(Schema):
    """POST /api/cases/<case_id>/lifecycle 요청 스키마."""
    target_stage = fields.Str(required=True, validate=validate.OneOf([e.value for e in LifecycleStage]))
    notes = fields.Str(allow_none=True, validate=validate.Length(max=500))
    expected_stage = fields.Str(allow_none=True, validate=validate.OneOf([e.value for e in LifecycleStage]))


class CaseUpdateCreateSchema(Schema):
    """POST /api/cases/<case_id>/updates 요청 스키마."""
    text = fields.Str(required=True, validate=validate.Length(min=1, max=2000))
    type = fields.Str(load_default=UpdateType.UPDATE.value, validate=validate.OneOf([e.value for e in UpdateType]))
    images = fields.List(fields.Str(), load_default=list, validate=validate.Length(max=10))
    evidence_type = fields.Str(allow_none=True, validate=validate.OneOf([e.value for e in EvidenceType]))

    @pre_load
    def strip_text(self, data, **kwargs):
        if isinstance(data, dict) and isinstance(data.get('text'), str):
            data = dict(data, text=data['text'].strip())
        return data


class FundraisingSchema(Schema):
    goal = fields.Float()
    current = fields.Float()
    currency = fields.Str()


class CaseUpdateResponseSchema(Schema):
    date = fields.DateTime()
    text = fields.Str()
    type = fields.Str()
    image_urls = fields.List(fields.Str())
    evidence_type = fields.Str(allow_none=True)
    author_role = fields.Str(allow_none=True)


class CaseResponseSchema(Schema):
    """케이스 상세/목록 항목 응답 스키마."""
    case_id = fields.Str(dump_only=True)
    owner_user_id = fields.Str()
    title = fields.Str()
    description = fields.Str()
    story = fields.Str(allow_none=True)
    status = fields.Str()
    lifecycle_stage = fields.Str()
    is_donation_allowed = fields.Bool()
    fundraising = fields.Nested(FundraisingSchema)
    image_urls = fields.List(fields.Str())
    updates = fields.List(fields.Nested(CaseUpdateResponseSchema))
    clinic_id = fields.Str(allow_none=True)
    created_at = fields.DateTime()
    lifecycle_updated_at = fields.DateTime(allow_none=True)
    closed_at = fields.DateTime(allow_none=True)
    closed_reason = fields.Str(allow_none=True)


class CasePageResponseSchema(Schema):
    """커서 기반 케이스 목록 응답 스키마."""
    items = fields.List(fields.Nested(CaseResponseSchema))
    has_more = fields.Bool()
    next_cursor = fields.Str(allow_none=True)
