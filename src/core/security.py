import hmac

from core.config import settings

# --- 서비스 시크릿 ---
# 내부 호출(업로드 트리거, 배치 스윕, 운영 스크립트)은 사용자 토큰이 아니라
# 사전에 공유된 서비스 시크릿 하나로 인증한다.
#
# Authorization: Bearer <SERVICE_ROLE_KEY>
#
# 비교는 hmac.compare_digest로 한다 (문자열 비교 시간으로 시크릿 추측 방지)


def extract_bearer(header: str) -> str:
    """'Bearer <token>' → '<token>'. 접두사가 없으면 헤더 값 그대로."""
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token:
        return token.strip()
    return header.strip()


def verify_service_key(token: str, expected: str | None = None) -> bool:
    """토큰이 서비스 시크릿과 일치하는지 확인한다."""
    expected = expected if expected is not None else settings.SERVICE_ROLE_KEY
    if not token or not expected:
        return False
    return hmac.compare_digest(token.encode(), expected.encode())
