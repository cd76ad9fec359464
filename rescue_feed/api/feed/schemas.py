# rescue_feed/api/feed/schemas.py
from marshmallow import Schema, fields


class ActivityUserSchema(Schema):
    user_id = fields.Str()
    name = fields.Str(allow_none=True)
    avatar_url = fields.Str(allow_none=True)


class ActivityCaseSchema(Schema):
    case_id = fields.Str()
    title = fields.Str(allow_none=True)
    status = fields.Str(allow_none=True)
    lifecycle_stage = fields.Str()
    image_url = fields.Str(allow_none=True)


class ActivityResponseSchema(Schema):
    """
    피드 항목 응답 스키마.
    user / case 는 참조 엔티티가 삭제되었거나 익명 기부인 경우 null 입니다.
    """
    id = fields.Str(attribute='activity_id')
    type = fields.Function(lambda activity: activity.type.label)
    timestamp = fields.DateTime()
    user_id = fields.Str(allow_none=True)
    case_id = fields.Str(allow_none=True)
    payload = fields.Dict()
    user = fields.Nested(ActivityUserSchema, attribute='enrichment.user', allow_none=True)
    case = fields.Nested(ActivityCaseSchema, attribute='enrichment.case', allow_none=True)
