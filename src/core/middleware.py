import time
import uuid

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from core.config import settings


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """모든 HTTP 요청을 로깅하는 미들웨어.

    기록 항목: 요청 ID, 메서드, 경로, 클라이언트 IP, 상태코드, 처리시간(ms)
    처리시간이 SLOW_REQUEST_MS를 초과하면 WARNING 레벨로 기록.
    배치 스윕의 자기 호출도 여기서 한 줄씩 남는다.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        start = time.perf_counter()

        with logger.contextualize(request_id=request_id):
            response = await call_next(request)

        elapsed_ms = (time.perf_counter() - start) * 1000
        client_ip = request.client.host if request.client else "unknown"
        line = (
            f"[{request_id}] {request.method} {request.url.path} | {client_ip} | "
            f"{response.status_code} | {elapsed_ms:.0f}ms"
        )

        if elapsed_ms > settings.SLOW_REQUEST_MS:
            logger.warning(f"{line} (slow)")
        else:
            logger.info(line)

        response.headers["X-Request-ID"] = request_id
        return response
