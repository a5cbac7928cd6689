"""
Credential checks for the connection gateway.

Connection credentials are HS256 JWTs carrying a `userId` claim.
Admin broadcasts carry a shared admin token compared in constant time.
"""

import hmac
from typing import Optional
import jwt
from saferoute.core.errors import AuthError
from saferoute.observability import metrics
from saferoute.observability.logging_setup import get_logger

log = get_logger("saferoute.auth")

class TokenVerifier:
    """JWT 검증기"""

    def __init__(self, secret: str, algorithm: str = "HS256", admin_token: str = ""):
        self.secret = secret
        self.algorithm = algorithm
        self.admin_token = admin_token

    def verify(self, token: Optional[str]) -> str:
        """
        연결 자격 증명을 검증하고 사용자 id를 반환합니다.

        Args:
            token: JWT 문자열

        Returns:
            userId 클레임

        Raises:
            AuthError: 자격 증명 누락(missing_credential) 또는 검증 실패(invalid_credential)
        """
        if not token:
            metrics.auth_rejected.labels(reason=AuthError.MISSING).inc()
            raise AuthError(AuthError.MISSING, "authentication token required")
        if not self.secret:
            metrics.auth_rejected.labels(reason=AuthError.INVALID).inc()
            raise AuthError(AuthError.INVALID, "token verification not configured")

        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.PyJWTError as e:
            metrics.auth_rejected.labels(reason=AuthError.INVALID).inc()
            log.warning(f"토큰 검증 실패: {e}")
            raise AuthError(AuthError.INVALID, "invalid token") from e

        user_id = claims.get("userId")
        if not user_id:
            metrics.auth_rejected.labels(reason=AuthError.INVALID).inc()
            raise AuthError(AuthError.INVALID, "token has no userId")
        return str(user_id)

    def is_admin(self, credential: str) -> bool:
        """관리자 토큰 비교 (상수 시간). 토큰이 설정되지 않았으면 항상 거부합니다."""
        if not self.admin_token or not credential:
            return False
        return hmac.compare_digest(credential.encode(), self.admin_token.encode())

def issue_token(user_id: str, secret: str, algorithm: str = "HS256", **claims) -> str:
    """테스트/도구용 토큰 발급"""
    return jwt.encode({"userId": user_id, **claims}, secret, algorithm=algorithm)
