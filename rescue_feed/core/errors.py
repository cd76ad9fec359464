# rescue_feed/core/errors.py
"""
도메인 오류 분류.

각 오류는 API 응답에 쓰일 error_code 와 HTTP 상태 코드를 함께 가지며,
rescue_feed/__init__.py 의 전역 에러 핸들러가 이를 JSON 응답으로 변환합니다.
기존 코드가 PermissionError / ValueError 를 잡는 곳에서도 동작하도록
해당 내장 예외를 함께 상속합니다.
"""


class DomainError(Exception):
    """서비스 계층에서 호출자에게 명시적으로 전달되는 오류의 기반 클래스."""
    error_code = "DOMAIN_ERROR"
    http_status = 400

    def __init__(self, message: str, error_code: str = None):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> dict:
        return {"error_code": self.error_code, "message": self.message}


class NotFoundError(DomainError, LookupError):
    """참조된 케이스/사용자 등이 존재하지 않음."""
    error_code = "NOT_FOUND"
    http_status = 404


class InvalidTransitionError(DomainError):
    """허용되지 않은 라이프사이클 전이. 케이스는 변경되지 않습니다."""
    error_code = "INVALID_TRANSITION"
    http_status = 409

    def __init__(self, current_stage: str = None, target_stage: str = None, message: str = None,
                 error_code: str = None):
        # HTTP 클라이언트는 서버 응답의 message 만으로 이 오류를 다시 만듭니다.
        if message is None:
            message = f"'{current_stage}' 단계에서 '{target_stage}' 단계로 전환할 수 없습니다."
        super().__init__(message, error_code=error_code)
        self.current_stage = current_stage
        self.target_stage = target_stage


class UnauthorizedError(DomainError, PermissionError):
    """케이스 소유자/관리자가 아닌 사용자의 변경 시도."""
    error_code = "FORBIDDEN"
    http_status = 403


class ConflictError(DomainError):
    """동시 변경 경쟁에서 패배. 호출자는 다시 조회 후 재시도해야 합니다."""
    error_code = "CONFLICT"
    http_status = 409


class ValidationError(DomainError, ValueError):
    """빈 텍스트, 잘못된 커서 등 입력값 오류."""
    error_code = "VALIDATION_ERROR"
    http_status = 400
