# rescue_feed/client/api_client.py
import logging
from typing import Any, Dict, List, Optional

import requests

from rescue_feed.core.errors import (
    DomainError, NotFoundError, InvalidTransitionError, UnauthorizedError, ConflictError, ValidationError
)

# 서버의 error_code 를 같은 도메인 오류로 되돌립니다.
_ERRORS_BY_CODE = {
    "NOT_FOUND": NotFoundError,
    "FORBIDDEN": UnauthorizedError,
    "CONFLICT": ConflictError,
    "INVALID_TRANSITION": InvalidTransitionError,
    "VALIDATION_ERROR": ValidationError,
    "INVALID_CURSOR": ValidationError,
}


class CaseFeedClient:
    """
    케이스/피드 HTTP API 클라이언트.
    4xx 응답은 서버가 보낸 error_code 에 대응하는 DomainError 로 변환해 던집니다.
    """

    def __init__(self, base_url: str, access_token: Optional[str] = None, timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        if access_token:
            self.session.headers["Authorization"] = f"Bearer {access_token}"

    # --- 케이스 ---
    def list_cases(self, limit: int, cursor: Optional[str] = None, **filters) -> Dict[str, Any]:
        params = {"limit": limit}
        if cursor:
            params["cursor"] = cursor
        params.update({k: v for k, v in filters.items() if v is not None})
        return self._request("GET", "/api/cases", params=params)

    def get_case(self, case_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/cases/{case_id}")

    def transition_lifecycle(self, case_id: str, target_stage: str, notes: Optional[str] = None,
                             expected_stage: Optional[str] = None) -> Dict[str, Any]:
        body = {"target_stage": target_stage, "notes": notes, "expected_stage": expected_stage}
        return self._request("POST", f"/api/cases/{case_id}/lifecycle", json=body)

    def add_case_update(self, case_id: str, text: str, update_type: str = "update",
                        images: Optional[List[str]] = None, evidence_type: Optional[str] = None) -> Dict[str, Any]:
        body = {"text": text, "type": update_type, "images": images or [], "evidence_type": evidence_type}
        return self._request("POST", f"/api/cases/{case_id}/updates", json=body)

    # --- 피드 ---
    def get_global_feed(self, limit: int = 10) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/feed/global", params={"limit": limit})

    def get_user_feed(self, user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        return self._request("GET", f"/api/feed/users/{user_id}", params={"limit": limit})

    def get_case_feed(self, case_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        return self._request("GET", f"/api/feed/cases/{case_id}", params={"limit": limit})

    def get_announcements(self, limit: int = 10) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/feed/announcements", params={"limit": limit})

    def _request(self, method: str, path: str, **kwargs) -> Any:
        response = self.session.request(method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs)
        if 400 <= response.status_code < 500:
            try:
                body = response.json()
            except ValueError:
                body = {}
            error_code = body.get("error_code")
            message = body.get("message") or str(body.get("details") or response.reason)
            logging.warning(f"API request rejected ({method} {path}): {response.status_code} {error_code}")
            error_cls = _ERRORS_BY_CODE.get(error_code, DomainError)
            raise error_cls(message=message, error_code=error_code)
        response.raise_for_status()
        return response.json()
