import httpx
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader

from core.config import settings
from core.exceptions import InvalidToken, MissingAuthorization
from core.security import extract_bearer, verify_service_key
from service.batch_service import HttpDispatcher
from service.storage_client import StorageClient

# APIKeyHeader:
# - Swagger UI에 "Authorize" 버튼을 자동 생성
# - Authorization 헤더 원문을 그대로 넘긴다 (auto_error=False → 없으면 None)
# - 없음(MISSING_AUTHORIZATION)과 불일치(INVALID_TOKEN)를 구분해서 응답하기 위함
service_key_header = APIKeyHeader(name="Authorization", auto_error=False)


def require_service_key(authorization: str | None = Depends(service_key_header)) -> None:
    """서비스 시크릿 검증. 다른 의존성/본문 파싱보다 먼저 실패해야 한다."""
    if not authorization:
        raise MissingAuthorization
    if not verify_service_key(extract_bearer(authorization)):
        raise InvalidToken


def get_storage(request: Request) -> StorageClient:
    return request.app.state.storage


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http


def get_dispatcher(http: httpx.AsyncClient = Depends(get_http_client)) -> HttpDispatcher:
    return HttpDispatcher(
        http,
        site_url=settings.SITE_URL,
        service_key=settings.SERVICE_ROLE_KEY,
        timeout=settings.DISPATCH_TIMEOUT_SECONDS,
    )
