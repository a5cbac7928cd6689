"""
Error taxonomy for SafeRoute.

Handler boundaries convert ValidationError/NotFoundError into outbound
error events; TransientStoreError and ExternalFetchError are absorbed at
the ingestion and periodic task boundaries.
"""

from typing import Any, Optional


class SafeRouteError(Exception):
    """SafeRoute 공통 예외"""

    def __init__(self, message: str, detail: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(SafeRouteError):
    """인바운드 이벤트 페이로드 검증 실패"""


class AuthError(SafeRouteError):
    """자격 증명 누락 또는 검증 실패"""

    MISSING = "missing_credential"
    INVALID = "invalid_credential"

    def __init__(self, reason: str, message: Optional[str] = None):
        super().__init__(message or reason, detail=reason)
        self.reason = reason


class NotFoundError(SafeRouteError):
    """존재하지 않는 위험/라이드/트립 참조"""


class TransientStoreError(SafeRouteError):
    """위험 저장소 일시 장애 (재시도 가능)"""


class ExternalFetchError(SafeRouteError):
    """외부 날씨/교통 소스 조회 실패"""
